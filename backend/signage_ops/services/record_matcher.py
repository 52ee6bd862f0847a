from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Sequence

from ..schemas.reconcile import ReferenceStyle
from ..utils.slugs import normalize
from .asset_inventory import Asset, AssetInventory


class MatchOutcome(StrEnum):
    matched = "matched"
    already_correct = "already-correct"
    no_candidate = "no-candidate"


@dataclass(frozen=True, slots=True)
class ContentRecord:
    table: str
    id: str
    display_name: str | None
    image_reference: str | None


@dataclass(frozen=True, slots=True)
class MatchResult:
    record: ContentRecord
    outcome: MatchOutcome
    asset: Asset | None = None
    target_reference: str | None = None


def reference_for(asset: Asset, style: ReferenceStyle = ReferenceStyle.canonical) -> str:
    if ReferenceStyle(style) == ReferenceStyle.public:
        return asset.public_locator
    return asset.canonical_reference


def find_asset(
    key: str,
    candidate_buckets: Sequence[str],
    inventory: AssetInventory,
) -> Asset | None:
    """First bucket, first hit: the first asset whose key contains `key`."""

    if not key:
        return None
    for bucket in candidate_buckets:
        for asset in inventory.for_bucket(bucket):
            if key in asset.match_key:
                return asset
    return None


def match(
    record: ContentRecord,
    candidate_buckets: Sequence[str],
    inventory: AssetInventory,
    *,
    reference_style: ReferenceStyle = ReferenceStyle.canonical,
) -> MatchResult:
    key = normalize(record.display_name)
    asset = find_asset(key, candidate_buckets, inventory)
    if asset is None:
        return MatchResult(record=record, outcome=MatchOutcome.no_candidate)

    target = reference_for(asset, reference_style)
    if record.image_reference == target:
        outcome = MatchOutcome.already_correct
    else:
        outcome = MatchOutcome.matched
    return MatchResult(record=record, outcome=outcome, asset=asset, target_reference=target)


def match_records(
    records: Sequence[ContentRecord],
    candidate_buckets: Sequence[str],
    inventory: AssetInventory,
    *,
    reference_style: ReferenceStyle = ReferenceStyle.canonical,
) -> list[MatchResult]:
    return [
        match(record, candidate_buckets, inventory, reference_style=reference_style)
        for record in records
    ]


__all__ = [
    "ContentRecord",
    "MatchOutcome",
    "MatchResult",
    "find_asset",
    "match",
    "match_records",
    "reference_for",
]
