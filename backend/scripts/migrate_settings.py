#!/usr/bin/env python3
"""Bring the display `settings` table to its required shape.

Creates the table when missing, adds any missing column with its
`NOT NULL DEFAULT`, then makes sure exactly one row exists (inserting the
defaults, or keeping the lowest id and deleting the rest). Safe to run any
number of times; the second run changes nothing.

    python scripts/migrate_settings.py --database-url postgresql://...
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
from signage_ops.errors import (  # noqa: E402
    MigrationError,
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
from signage_ops.services.settings_migrator import (  # noqa: E402
    format_migration_report,
    migrate_settings,
)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Idempotently migrate the settings table.")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Postgres connection string (default: $DATABASE_URL or $SUPABASE_DB_URL).",
    )
    parser.add_argument(
        "--table",
        default=None,
        help="Settings table name (default: configured settings table).",
    )
    parser.add_argument(
        "--schema",
        default=None,
        help="Schema holding the table (default: configured db schema).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = settings or Settings()
    except SettingsValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level)
    init_error_reporting(settings.sentry_dsn)

    try:
        with open_context(settings, database_url=args.database_url, with_storage=False) as ctx:
            token = push_run_context(ctx.run_id, "migrate_settings")
            try:
                report = migrate_settings(
                    ctx.require_store(),
                    table=args.table or settings.settings_table,
                    schema=args.schema or settings.db_schema,
                )
            finally:
                pop_run_context(token)
    except ValidationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (MigrationError, ServiceUnavailableError, TransportError) as exc:
        sentry_sdk.capture_exception(exc)
        print(f"Fatal: {exc}", file=sys.stderr)
        return 2

    print(format_migration_report(report))
    if not report.complete:
        print(
            "Settings migration is incomplete; fix the reported errors and re-run.",
            file=sys.stderr,
        )
        return 3
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
