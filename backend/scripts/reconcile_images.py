#!/usr/bin/env python3
"""Reconcile content-record image references against Supabase Storage.

Every configured table (products, categories, announcements by default) is
read, each record's display name is slugified and looked up in the storage
inventory of its candidate buckets, and stale or missing `image_url` values
are corrected.

Two modes:
- Default: write a reviewable SQL batch (`--sql-out`), the database is only read.
- `--apply`: update the rows directly and report per-record outcomes.

A JSON run summary is always printed to stdout; logs go to stderr.

Usage examples
--------------

    python scripts/reconcile_images.py --sql-out update-image-urls.sql
    python scripts/reconcile_images.py --apply --tables announcements
    python scripts/reconcile_images.py --inventory-out image-urls.json
    python scripts/reconcile_images.py --inventory-file image-urls.json --apply
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

import sentry_sdk
from pydantic import ValidationError as SettingsValidationError

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from signage_ops.config import Settings  # noqa: E402
from signage_ops.context import RunContext, open_context  # noqa: E402
from signage_ops.errors import (  # noqa: E402
    ServiceUnavailableError,
    TransportError,
    ValidationError,
)
from signage_ops.logging_context import (  # noqa: E402
    init_error_reporting,
    pop_run_context,
    push_run_context,
)
from signage_ops.logging_utils import setup_logging  # noqa: E402
from signage_ops.schemas.reconcile import ReconcileTarget, ReferenceStyle  # noqa: E402
from signage_ops.services.asset_inventory import AssetInventory, build_inventory  # noqa: E402
from signage_ops.services.reconciliation import (  # noqa: E402
    ReconcileMode,
    ReconcileResult,
    format_summary,
    reconcile,
)

logger = logging.getLogger("reconcile_images")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FATAL = 2
EXIT_ITEM_FAILURES = 3


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Match content records to storage assets and fix their image references.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Postgres connection string (default: $DATABASE_URL or $SUPABASE_DB_URL).",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Update rows directly (default: generate a SQL batch for review).",
    )
    parser.add_argument(
        "--sql-out",
        default="update-image-urls.sql",
        help="SQL batch filename or '-' for stdout (default: %(default)s).",
    )
    parser.add_argument(
        "--tables",
        default=None,
        help="Comma-separated subset of configured tables to reconcile.",
    )
    parser.add_argument(
        "--buckets",
        default=None,
        help="Comma-separated buckets to inventory (default: configured storage buckets).",
    )
    parser.add_argument(
        "--inventory-file",
        default=None,
        help="Read the asset inventory from a JSON snapshot instead of listing storage.",
    )
    parser.add_argument(
        "--inventory-out",
        default=None,
        help="Write the asset inventory snapshot to this JSON file.",
    )
    parser.add_argument(
        "--reference-style",
        choices=[style.value for style in ReferenceStyle],
        default=None,
        help="Write bucket/name references or public URLs (default: configured style).",
    )
    return parser.parse_args(argv)


def _split(value: str | None) -> list[str]:
    return [item.strip() for item in str(value or "").split(",") if item.strip()]


def select_targets(settings: Settings, tables: str | None) -> list[ReconcileTarget]:
    wanted = _split(tables)
    if not wanted:
        return list(settings.reconcile_targets)
    targets: list[ReconcileTarget] = []
    for table in wanted:
        target = settings.target_for(table)
        if target is None:
            raise ValidationError(f"table {table!r} has no reconcile target configured")
        targets.append(target)
    return targets


def load_inventory(path: Path) -> AssetInventory:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ValidationError(f"could not read inventory snapshot {path}: {exc}") from exc
    return AssetInventory.from_snapshot(payload)


def run(ctx: RunContext, args: argparse.Namespace) -> ReconcileResult:
    settings = ctx.settings
    targets = select_targets(settings, args.tables)

    if args.inventory_file:
        inventory = load_inventory(Path(args.inventory_file))
    else:
        buckets = _split(args.buckets) or list(settings.storage_buckets)
        inventory = build_inventory(
            ctx.require_storage(),
            buckets,
            page_size=settings.storage_list_limit,
        )

    if args.inventory_out:
        out_path = Path(args.inventory_out)
        try:
            out_path.write_text(json.dumps(inventory.to_snapshot(), indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ValidationError(f"could not write inventory snapshot {out_path}: {exc}") from exc
        logger.info("Wrote inventory snapshot", extra={"path": str(out_path)})

    reference_style = ReferenceStyle(args.reference_style or settings.reference_style)
    return reconcile(
        ctx.require_store(),
        inventory,
        targets,
        mode=ReconcileMode.direct if args.apply else ReconcileMode.script,
        reference_style=reference_style,
        schema=settings.db_schema,
    )


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = settings or Settings()
    except SettingsValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(settings.log_level)
    init_error_reporting(settings.sentry_dsn)

    with_storage = not args.inventory_file
    try:
        with open_context(
            settings,
            database_url=args.database_url,
            with_storage=with_storage,
        ) as ctx:
            token = push_run_context(ctx.run_id, "reconcile_images")
            try:
                result = run(ctx, args)
            finally:
                pop_run_context(token)
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except (ServiceUnavailableError, TransportError) as exc:
        sentry_sdk.capture_exception(exc)
        print(f"Fatal: {exc}", file=sys.stderr)
        return EXIT_FATAL

    if result.script is not None:
        sql_out = str(args.sql_out or "").strip() or "-"
        if sql_out == "-":
            print(result.script)
        else:
            sql_path = Path(sql_out)
            try:
                sql_path.write_text(result.script, encoding="utf-8")
            except OSError as exc:
                print(f"Error: could not write SQL batch to {sql_path}: {exc}", file=sys.stderr)
                return EXIT_USAGE
            print(f"Wrote SQL batch to {sql_path}", file=sys.stderr)

    print(format_summary(result.summary))
    return EXIT_ITEM_FAILURES if result.summary.has_failures else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
