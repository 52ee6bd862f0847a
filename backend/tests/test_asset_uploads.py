import json

import pytest

from signage_ops.errors import ServiceUnavailableError
from signage_ops.services.asset_uploads import (
    content_type_for,
    format_upload_summary,
    plan_uploads,
    upload_directory,
)
from signage_ops.services.storage_service import StorageServiceError

from .utils import FakeStorage


@pytest.fixture
def image_dir(tmp_path):
    source = tmp_path / "images"
    source.mkdir()
    (source / "1_BMS_logo.svg").write_bytes(b"<svg/>")
    (source / "Blue Jersey.PNG").write_bytes(b"\x89PNG jersey")
    (source / "Exam Essentials.jpg").write_bytes(b"\xff\xd8 exam")
    (source / "Pencil Case.webp").write_bytes(b"RIFF pencil")
    (source / ".DS_Store").write_bytes(b"junk")
    (source / "notes.txt").write_text("not an image")
    (source / "nested").mkdir()
    return source


def test_plan_uploads_classifies_and_renames(image_dir):
    planned = plan_uploads(image_dir.iterdir())

    assert [(p.bucket, p.stored_name) for p in planned] == [
        ("branding", "1-bms-logo.svg"),
        ("uniforms", "blue-jersey.png"),
        ("announcements", "exam-essentials.jpg"),
        ("products", "pencil-case.webp"),
    ]
    assert planned[1].content_type == "image/png"
    assert planned[0].content_type == "image/svg+xml"


def test_upload_directory_creates_missing_buckets_and_counts(image_dir):
    storage = FakeStorage({"products": [], "uniforms": []})

    summary = upload_directory(storage, image_dir)

    assert summary.total == 4
    assert summary.success == 4
    assert summary.failed == 0
    assert summary.skipped == 3
    assert summary.buckets_created == ["branding", "announcements"]
    assert storage.created == ["branding", "announcements"]
    assert summary.by_bucket == {"branding": 1, "uniforms": 1, "announcements": 1, "products": 1}
    assert "uniforms/blue-jersey.png" in summary.uploaded
    assert all(upload["upsert"] is False for upload in storage.uploads)


def test_upload_failure_is_counted_and_batch_continues(image_dir):
    storage = FakeStorage({"products": [], "uniforms": [], "branding": [], "announcements": []})
    storage.failing_uploads["blue-jersey.png"] = StorageServiceError(
        "Supabase Storage upload failed with status 409", status_code=409
    )

    summary = upload_directory(storage, image_dir, overwrite=True)

    assert summary.success == 3
    assert summary.failed == 1
    assert list(summary.errors) == [str(image_dir / "Blue Jersey.PNG")]
    assert all(upload["upsert"] is True for upload in storage.uploads)
    payload = json.loads(format_upload_summary(summary))
    assert payload["failed"] == 1


def test_dry_run_touches_nothing(image_dir):
    summary = upload_directory(None, image_dir, dry_run=True)

    assert summary.total == 4
    assert summary.success == 0
    assert summary.uploaded == [
        "branding/1-bms-logo.svg",
        "uniforms/blue-jersey.png",
        "announcements/exam-essentials.jpg",
        "products/pencil-case.webp",
    ]


def test_bucket_error_is_recorded(image_dir):
    storage = FakeStorage({"products": [], "uniforms": [], "announcements": []})
    storage.failing_buckets["branding"] = StorageServiceError("forbidden", status_code=403)

    summary = upload_directory(storage, image_dir)

    assert summary.bucket_errors == {"branding": "forbidden"}


def test_unreachable_storage_is_fatal(image_dir):
    storage = FakeStorage()
    storage.failing_buckets["branding"] = ServiceUnavailableError("connection refused")

    with pytest.raises(ServiceUnavailableError):
        upload_directory(storage, image_dir)


def test_content_type_falls_back_to_mimetypes(tmp_path):
    assert content_type_for(tmp_path / "banner.JPEG") == "image/jpeg"
    assert content_type_for(tmp_path / "blob.unknownext") == "application/octet-stream"
