#!/usr/bin/env python3
"""Upload a local folder of signage images to Supabase Storage.

Each image is routed to a bucket by filename keywords and stored under its
slugified name (`Blue Jersey.PNG` -> `uniforms/blue-jersey.png`). Missing
buckets are created public first. Existing objects are kept unless
`--overwrite` is given.

    python scripts/upload_images.py ./images --dry-run
    python scripts/upload_images.py ./images --overwrite
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

import sentry_sdk
from pydantic import ValidationError as SettingsValidationError

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from signage_ops.config import Settings  # noqa: E402
from signage_ops.context import open_context  # noqa: E402
from signage_ops.errors import ServiceUnavailableError, ValidationError  # noqa: E402
from signage_ops.logging_context import (  # noqa: E402
    init_error_reporting,
    pop_run_context,
    push_run_context,
)
from signage_ops.logging_utils import setup_logging  # noqa: E402
from signage_ops.services.asset_uploads import (  # noqa: E402
    format_upload_summary,
    upload_directory,
)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upload signage images to Supabase Storage.")
    parser.add_argument("source_dir", help="Folder containing the images to upload.")
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace objects that already exist (default: keep them).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print where each file would go.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = parse_args(argv)
    source_dir = Path(args.source_dir)
    if not source_dir.is_dir():
        print(f"Error: source directory not found: {source_dir}", file=sys.stderr)
        return 1

    try:
        settings = settings or Settings()
    except SettingsValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level)
    init_error_reporting(settings.sentry_dsn)

    try:
        with open_context(settings, with_store=False, with_storage=not args.dry_run) as ctx:
            token = push_run_context(ctx.run_id, "upload_images")
            try:
                summary = upload_directory(
                    ctx.storage,
                    source_dir,
                    rules=settings.bucket_rules,
                    default_bucket=settings.default_bucket,
                    overwrite=args.overwrite,
                    dry_run=args.dry_run,
                )
            finally:
                pop_run_context(token)
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ServiceUnavailableError as exc:
        sentry_sdk.capture_exception(exc)
        print(f"Fatal: {exc}", file=sys.stderr)
        return 2

    print(format_upload_summary(summary))
    return 3 if summary.failed or summary.bucket_errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
