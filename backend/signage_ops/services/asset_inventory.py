"""Snapshot of every asset stored across the configured buckets.

The inventory is the only view of the blob store the matcher ever sees, so
it is built once per run and then treated as read-only data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..errors import ServiceUnavailableError, TransportError, ValidationError
from ..stores import BlobStore, StorageObject
from ..utils.slugs import normalize, stem

logger = logging.getLogger(__name__)

PLACEHOLDER_NAMES = frozenset({".emptyFolderPlaceholder"})


@dataclass(frozen=True, slots=True)
class Asset:
    bucket: str
    stored_name: str
    public_locator: str
    match_key: str = ""

    @property
    def canonical_reference(self) -> str:
        return f"{self.bucket}/{self.stored_name}"


@dataclass(frozen=True, slots=True)
class InventoryFailure:
    bucket: str
    error: str
    status_code: int | None = None


@dataclass(slots=True)
class AssetInventory:
    assets: dict[str, list[Asset]] = field(default_factory=dict)
    failures: list[InventoryFailure] = field(default_factory=list)
    truncated_buckets: list[str] = field(default_factory=list)

    def for_bucket(self, bucket: str) -> list[Asset]:
        return self.assets.get(bucket, [])

    @property
    def buckets(self) -> list[str]:
        return list(self.assets)

    @property
    def total(self) -> int:
        return sum(len(items) for items in self.assets.values())

    def counts(self) -> dict[str, int]:
        return {bucket: len(items) for bucket, items in self.assets.items()}

    def to_snapshot(self) -> dict[str, list[dict[str, str]]]:
        return {
            bucket: [
                {
                    "name": asset.stored_name,
                    "publicUrl": asset.public_locator,
                    "databaseReference": asset.canonical_reference,
                }
                for asset in items
            ]
            for bucket, items in self.assets.items()
        }

    @classmethod
    def from_snapshot(cls, payload: Mapping[str, Any]) -> "AssetInventory":
        if not isinstance(payload, Mapping):
            raise ValidationError("inventory snapshot must be a JSON object keyed by bucket")
        inventory = cls()
        for bucket, entries in payload.items():
            if not isinstance(entries, list):
                raise ValidationError(f"inventory snapshot bucket {bucket!r} is not a list")
            items: list[Asset] = []
            for entry in entries:
                # Bare strings are stored names without a public locator.
                if isinstance(entry, str):
                    name, public_locator = entry.strip(), ""
                elif isinstance(entry, Mapping):
                    name = str(entry.get("name") or "").strip()
                    public_locator = str(entry.get("publicUrl") or "")
                else:
                    raise ValidationError(
                        f"inventory snapshot bucket {bucket!r} has a malformed entry: {entry!r}"
                    )
                if not name:
                    continue
                items.append(make_asset(str(bucket), name, public_locator))
            inventory.assets[str(bucket)] = items
        return inventory


def make_asset(bucket: str, stored_name: str, public_locator: str) -> Asset:
    return Asset(
        bucket=bucket,
        stored_name=stored_name,
        public_locator=public_locator,
        match_key=normalize(stem(stored_name)),
    )


def _is_listable_file(entry: StorageObject) -> bool:
    return entry.is_file and entry.name not in PLACEHOLDER_NAMES


def build_inventory(
    storage: BlobStore,
    buckets: Sequence[str],
    *,
    page_size: int = 1000,
) -> AssetInventory:
    """List every bucket and materialize its assets in listing order.

    Per-bucket transport failures are recorded and leave an empty bucket in
    the inventory. Connection-level failures propagate.
    """

    inventory = AssetInventory()
    for bucket in buckets:
        try:
            entries = storage.list_objects(bucket, limit=page_size)
        except ServiceUnavailableError:
            raise
        except TransportError as exc:
            logger.error(
                "Failed to list bucket",
                extra={"bucket": bucket, "error": str(exc), "status_code": exc.status_code},
            )
            inventory.assets[bucket] = []
            inventory.failures.append(
                InventoryFailure(bucket=bucket, error=str(exc), status_code=exc.status_code)
            )
            continue

        if len(entries) >= page_size:
            logger.warning(
                "Bucket listing hit the page size; objects beyond it are not inventoried",
                extra={"bucket": bucket, "page_size": page_size},
            )
            inventory.truncated_buckets.append(bucket)

        items: list[Asset] = []
        for entry in entries:
            if not _is_listable_file(entry):
                continue
            items.append(make_asset(bucket, entry.name, storage.public_url(bucket, entry.name)))
        inventory.assets[bucket] = items
        logger.info("Inventoried bucket", extra={"bucket": bucket, "assets": len(items)})
    return inventory


__all__ = [
    "Asset",
    "AssetInventory",
    "InventoryFailure",
    "build_inventory",
    "make_asset",
]
