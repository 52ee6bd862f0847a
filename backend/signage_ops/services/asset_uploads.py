from __future__ import annotations

import json
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from ..errors import ServiceUnavailableError, TransportError
from ..schemas.reconcile import DEFAULT_BUCKET_RULES, BucketRule
from ..stores import BlobStore
from ..utils.buckets import DEFAULT_BUCKET, classify
from ..utils.slugs import normalize_filename

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp"})

_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
}


@dataclass(frozen=True, slots=True)
class PlannedUpload:
    source: Path
    bucket: str
    stored_name: str
    content_type: str

    @property
    def canonical_reference(self) -> str:
        return f"{self.bucket}/{self.stored_name}"


@dataclass(slots=True)
class UploadSummary:
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    by_bucket: dict[str, int] = field(default_factory=dict)
    buckets_created: list[str] = field(default_factory=list)
    bucket_errors: dict[str, str] = field(default_factory=dict)
    uploaded: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "skipped": self.skipped,
            "by_bucket": dict(sorted(self.by_bucket.items())),
            "buckets_created": list(self.buckets_created),
            "bucket_errors": dict(sorted(self.bucket_errors.items())),
            "uploaded": list(self.uploaded),
            "errors": dict(sorted(self.errors.items())),
        }


def format_upload_summary(summary: UploadSummary) -> str:
    return json.dumps(summary.to_dict(), indent=2, sort_keys=True)


def content_type_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _CONTENT_TYPES:
        return _CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def plan_uploads(
    paths: Iterable[Path],
    *,
    rules: Sequence[BucketRule] = DEFAULT_BUCKET_RULES,
    default_bucket: str = DEFAULT_BUCKET,
    summary: UploadSummary | None = None,
) -> list[PlannedUpload]:
    """Classify and rename candidate files; directories, hidden and non-image files are skipped."""

    planned: list[PlannedUpload] = []
    for path in sorted(paths):
        if path.is_dir() or path.name.startswith("."):
            logger.info("Skipping directory or hidden file", extra={"path": str(path)})
            if summary is not None:
                summary.skipped += 1
            continue
        if path.suffix.lower() not in IMAGE_EXTENSIONS:
            logger.info("Skipping non-image file", extra={"path": str(path)})
            if summary is not None:
                summary.skipped += 1
            continue
        planned.append(
            PlannedUpload(
                source=path,
                bucket=classify(path.name, rules, default=default_bucket),
                stored_name=normalize_filename(path.name),
                content_type=content_type_for(path),
            )
        )
    return planned


def ensure_buckets(
    storage: BlobStore,
    buckets: Iterable[str],
    *,
    summary: UploadSummary | None = None,
) -> list[str]:
    created: list[str] = []
    for bucket in dict.fromkeys(buckets):
        try:
            if storage.bucket_exists(bucket):
                continue
            storage.create_bucket(bucket, public=True)
        except ServiceUnavailableError:
            raise
        except TransportError as exc:
            logger.error("Failed to ensure bucket", extra={"bucket": bucket, "error": str(exc)})
            if summary is not None:
                summary.bucket_errors[bucket] = str(exc)
            continue
        created.append(bucket)
    if summary is not None:
        summary.buckets_created.extend(created)
    return created


def upload_directory(
    storage: BlobStore,
    source_dir: Path,
    *,
    rules: Sequence[BucketRule] = DEFAULT_BUCKET_RULES,
    default_bucket: str = DEFAULT_BUCKET,
    overwrite: bool = False,
    dry_run: bool = False,
) -> UploadSummary:
    summary = UploadSummary()
    planned = plan_uploads(
        source_dir.iterdir(),
        rules=rules,
        default_bucket=default_bucket,
        summary=summary,
    )
    summary.total = len(planned)
    if dry_run:
        for upload in planned:
            summary.uploaded.append(upload.canonical_reference)
        return summary

    ensure_buckets(storage, [upload.bucket for upload in planned], summary=summary)

    for upload in planned:
        try:
            reference = storage.upload_object(
                upload.bucket,
                upload.stored_name,
                upload.source.read_bytes(),
                content_type=upload.content_type,
                upsert=overwrite,
            )
        except ServiceUnavailableError:
            raise
        except (TransportError, OSError) as exc:
            logger.error(
                "Upload failed",
                extra={"path": str(upload.source), "bucket": upload.bucket, "error": str(exc)},
            )
            summary.failed += 1
            summary.errors[str(upload.source)] = str(exc)
            continue
        summary.success += 1
        summary.by_bucket[upload.bucket] = summary.by_bucket.get(upload.bucket, 0) + 1
        summary.uploaded.append(reference)
        logger.info(
            "Uploaded asset",
            extra={"path": str(upload.source), "reference": reference},
        )
    return summary


__all__ = [
    "IMAGE_EXTENSIONS",
    "PlannedUpload",
    "UploadSummary",
    "content_type_for",
    "ensure_buckets",
    "format_upload_summary",
    "plan_uploads",
    "upload_directory",
]
