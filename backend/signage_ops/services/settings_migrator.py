"""Idempotent schema-and-singleton migration for the `settings` table.

States and transitions:

    Absent                      -> CREATE TABLE with every required column
    Present(columns=partial)    -> ADD COLUMN ... NOT NULL DEFAULT for each gap
    Present(columns=full), 0    -> INSERT one row of defaults
    Present(columns=full), 1    -> done
    Present(columns=full), >1   -> keep the lowest id, DELETE the rest

Table and column existence come from catalog introspection only. Existing
columns are never altered or dropped. A second run is a no-op.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence

from ..db import check_identifier, split_table_name
from ..errors import MigrationError, NotFoundError, ServiceUnavailableError, TransportError
from ..stores import RelationalStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettingsColumn:
    name: str
    sql_type: str
    default_sql: str
    # None means the database default is used when inserting the row.
    default_value: Any = None

    def definition(self) -> str:
        return f"{check_identifier(self.name)} {self.sql_type} NOT NULL DEFAULT {self.default_sql}"


SETTINGS_COLUMNS: tuple[SettingsColumn, ...] = (
    SettingsColumn("display_duration", "INTEGER", "10", 10),
    SettingsColumn("transition_duration", "NUMERIC(3,1)", "1.0", Decimal("1.0")),
    SettingsColumn("enable_auto_rotation", "BOOLEAN", "TRUE", True),
    SettingsColumn("default_currency", "VARCHAR(3)", "'BWP'", "BWP"),
    SettingsColumn("store_timezone", "VARCHAR(50)", "'Africa/Gaborone'", "Africa/Gaborone"),
    SettingsColumn(
        "store_location", "VARCHAR(255)", "'Gaborone, Botswana'", "Gaborone, Botswana"
    ),
    SettingsColumn("logo_url", "TEXT", "''", ""),
    SettingsColumn("primary_color", "VARCHAR(7)", "'#1e3a8a'", "#1e3a8a"),
    SettingsColumn("secondary_color", "VARCHAR(7)", "'#2563eb'", "#2563eb"),
    SettingsColumn("updated_at", "TIMESTAMPTZ", "now()"),
    SettingsColumn("created_at", "TIMESTAMPTZ", "now()"),
)

ID_COLUMN = "id"


@dataclass(slots=True)
class MigrationReport:
    table: str
    table_created: bool = False
    columns_added: list[str] = field(default_factory=list)
    columns_failed: dict[str, str] = field(default_factory=dict)
    rows_before: int | None = None
    rows_inserted: int = 0
    rows_deleted: list[str] = field(default_factory=list)
    kept_row_id: str | None = None
    row_errors: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.columns_failed and not self.row_errors

    @property
    def changed(self) -> bool:
        return bool(
            self.table_created
            or self.columns_added
            or self.rows_inserted
            or self.rows_deleted
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "complete": self.complete,
            "changed": self.changed,
            "table_created": self.table_created,
            "columns_added": list(self.columns_added),
            "columns_failed": dict(sorted(self.columns_failed.items())),
            "rows_before": self.rows_before,
            "rows_inserted": self.rows_inserted,
            "rows_deleted": list(self.rows_deleted),
            "kept_row_id": self.kept_row_id,
            "row_errors": list(self.row_errors),
        }


def format_migration_report(report: MigrationReport) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True)


def create_table_statement(
    qualified_table: str,
    columns: Sequence[SettingsColumn] = SETTINGS_COLUMNS,
) -> str:
    definitions = [f"  {ID_COLUMN} SERIAL PRIMARY KEY"]
    definitions.extend(f"  {column.definition()}" for column in columns)
    body = ",\n".join(definitions)
    return f"CREATE TABLE IF NOT EXISTS {qualified_table} (\n{body}\n)"


def add_column_statement(qualified_table: str, column: SettingsColumn) -> str:
    return f"ALTER TABLE {qualified_table} ADD COLUMN IF NOT EXISTS {column.definition()}"


def default_row(columns: Sequence[SettingsColumn] = SETTINGS_COLUMNS) -> dict[str, Any]:
    return {
        column.name: column.default_value
        for column in columns
        if column.default_value is not None
    }


def _ensure_columns(
    store: RelationalStore,
    qualified_table: str,
    columns: Sequence[SettingsColumn],
    report: MigrationReport,
) -> set[str]:
    existing = {column.name for column in store.introspect_columns(qualified_table)}
    for column in columns:
        if column.name in existing:
            continue
        try:
            store.execute_ddl(add_column_statement(qualified_table, column))
        except ServiceUnavailableError:
            raise
        except TransportError as exc:
            logger.error(
                "Failed to add settings column",
                extra={"table": qualified_table, "column": column.name, "error": str(exc)},
            )
            report.columns_failed[column.name] = str(exc)
            continue
        logger.info("Added settings column", extra={"table": qualified_table, "column": column.name})
        report.columns_added.append(column.name)
    return existing


def _enforce_singleton(
    store: RelationalStore,
    qualified_table: str,
    columns: Sequence[SettingsColumn],
    report: MigrationReport,
) -> None:
    rows = store.select(qualified_table, [ID_COLUMN], order_by=[ID_COLUMN])
    report.rows_before = len(rows)

    if not rows:
        try:
            inserted = store.insert(qualified_table, default_row(columns))
        except ServiceUnavailableError:
            raise
        except TransportError as exc:
            logger.error(
                "Failed to insert default settings row",
                extra={"table": qualified_table, "error": str(exc)},
            )
            report.row_errors.append(f"insert: {exc}")
            return
        report.rows_inserted = 1
        if inserted is not None and inserted.get(ID_COLUMN) is not None:
            report.kept_row_id = str(inserted[ID_COLUMN])
        logger.info("Inserted default settings row", extra={"table": qualified_table})
        return

    keep, extras = rows[0], rows[1:]
    report.kept_row_id = str(keep[ID_COLUMN])
    for row in extras:
        row_id = row[ID_COLUMN]
        try:
            store.delete(qualified_table, where={ID_COLUMN: row_id})
        except ServiceUnavailableError:
            raise
        except (TransportError, NotFoundError) as exc:
            logger.error(
                "Failed to delete duplicate settings row",
                extra={"table": qualified_table, "record_id": str(row_id), "error": str(exc)},
            )
            report.row_errors.append(f"delete {row_id}: {exc}")
            continue
        report.rows_deleted.append(str(row_id))
    if report.rows_deleted:
        logger.info(
            "Removed duplicate settings rows",
            extra={
                "table": qualified_table,
                "kept_row_id": report.kept_row_id,
                "deleted": len(report.rows_deleted),
            },
        )


def migrate_settings(
    store: RelationalStore,
    *,
    table: str = "settings",
    schema: str = "public",
    columns: Sequence[SettingsColumn] = SETTINGS_COLUMNS,
) -> MigrationReport:
    table_schema, table_name = split_table_name(table, schema)
    qualified_table = f"{table_schema}.{table_name}"
    report = MigrationReport(table=qualified_table)

    if not store.table_exists(qualified_table):
        try:
            store.execute_ddl(create_table_statement(qualified_table, columns))
        except ServiceUnavailableError:
            raise
        except TransportError as exc:
            raise MigrationError(f"could not create {qualified_table}: {exc}") from exc
        report.table_created = True
        logger.info("Created settings table", extra={"table": qualified_table})
    else:
        existing = _ensure_columns(store, qualified_table, columns, report)
        if ID_COLUMN not in existing:
            # Rows cannot be ordered or deleted by key without it.
            logger.error(
                "Settings table has no id column; skipping row checks",
                extra={"table": qualified_table},
            )
            report.row_errors.append(f"{qualified_table} has no {ID_COLUMN} column")
            return report

    if report.columns_failed:
        logger.error(
            "Settings schema did not converge; skipping row checks",
            extra={"table": qualified_table, "columns_failed": sorted(report.columns_failed)},
        )
        return report

    _enforce_singleton(store, qualified_table, columns, report)
    return report


__all__ = [
    "ID_COLUMN",
    "MigrationReport",
    "SETTINGS_COLUMNS",
    "SettingsColumn",
    "add_column_statement",
    "create_table_statement",
    "default_row",
    "format_migration_report",
    "migrate_settings",
]
