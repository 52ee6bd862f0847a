"""Apply matcher results to content tables.

Two modes share the same match input:

- direct: one keyed single-row UPDATE per `matched` record, failures are
  counted per record and never stop the batch.
- script: a reviewable SQL batch is rendered instead; the store is only read.

Both modes are idempotent at record level: once a reference is written the
next pass reports the record as `already-correct`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Sequence

from ..db import check_identifier
from ..errors import NotFoundError, ServiceUnavailableError, TransportError
from ..schemas.reconcile import ReconcileTarget, ReferenceStyle
from ..stores import RelationalStore
from .asset_inventory import AssetInventory
from .record_matcher import ContentRecord, MatchOutcome, MatchResult, match_records

logger = logging.getLogger(__name__)


class ReconcileMode(StrEnum):
    direct = "direct"
    script = "script"


class RecordOutcome(StrEnum):
    updated = "updated"
    scripted = "scripted"
    already_correct = "already-correct"
    no_match = "no-match"
    write_failed = "write-failed"


@dataclass(frozen=True, slots=True)
class RecordReport:
    table: str
    id: str
    outcome: RecordOutcome
    display_name: str | None = None
    previous_reference: str | None = None
    new_reference: str | None = None
    asset: str | None = None
    error: str | None = None


@dataclass(slots=True)
class TableSummary:
    table: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    already_correct: int = 0
    no_match: int = 0
    statements: int = 0
    fetch_error: str | None = None
    records: list[RecordReport] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.already_correct + self.no_match

    def add(self, report: RecordReport) -> None:
        self.records.append(report)
        if report.outcome == RecordOutcome.updated:
            self.attempted += 1
            self.succeeded += 1
        elif report.outcome == RecordOutcome.write_failed:
            self.attempted += 1
            self.failed += 1
        elif report.outcome == RecordOutcome.scripted:
            self.statements += 1
        elif report.outcome == RecordOutcome.already_correct:
            self.already_correct += 1
        else:
            self.no_match += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "already_correct": self.already_correct,
            "no_match": self.no_match,
            "statements": self.statements,
            "fetch_error": self.fetch_error,
        }


@dataclass(slots=True)
class ReconcileSummary:
    mode: ReconcileMode
    tables: dict[str, TableSummary] = field(default_factory=dict)
    inventory_counts: dict[str, int] = field(default_factory=dict)
    inventory_failures: list[dict[str, Any]] = field(default_factory=list)
    truncated_buckets: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.inventory_failures) or any(
            table.failed or table.fetch_error for table in self.tables.values()
        )

    def totals(self) -> dict[str, int]:
        totals = {
            "attempted": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "statements": 0,
        }
        for table in self.tables.values():
            totals["attempted"] += table.attempted
            totals["succeeded"] += table.succeeded
            totals["failed"] += table.failed
            totals["skipped"] += table.skipped
            totals["statements"] += table.statements
        return totals

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": str(self.mode),
            "totals": self.totals(),
            "tables": {name: table.to_dict() for name, table in self.tables.items()},
            "inventory": {
                "counts": dict(sorted(self.inventory_counts.items())),
                "failures": list(self.inventory_failures),
                "truncated_buckets": sorted(self.truncated_buckets),
            },
            "failed_records": [
                {
                    "table": report.table,
                    "id": report.id,
                    "new_reference": report.new_reference,
                    "error": report.error,
                }
                for table in self.tables.values()
                for report in table.records
                if report.outcome == RecordOutcome.write_failed
            ],
        }


@dataclass(slots=True)
class ReconcileResult:
    summary: ReconcileSummary
    script: str | None = None


def format_summary(summary: ReconcileSummary) -> str:
    return json.dumps(summary.to_dict(), indent=2, sort_keys=True)


def fetch_records(store: RelationalStore, target: ReconcileTarget) -> list[ContentRecord]:
    rows = store.select(
        target.table,
        [target.id_field, target.name_field, target.image_field],
    )
    records: list[ContentRecord] = []
    for row in rows:
        display_name = row.get(target.name_field)
        image_reference = row.get(target.image_field)
        records.append(
            ContentRecord(
                table=target.table,
                id=str(row.get(target.id_field)),
                display_name=str(display_name) if display_name is not None else None,
                image_reference=str(image_reference) if image_reference is not None else None,
            )
        )
    return records


def _passive_report(result: MatchResult) -> RecordReport:
    record = result.record
    outcome = (
        RecordOutcome.already_correct
        if result.outcome == MatchOutcome.already_correct
        else RecordOutcome.no_match
    )
    return RecordReport(
        table=record.table,
        id=record.id,
        outcome=outcome,
        display_name=record.display_name,
        previous_reference=record.image_reference,
        new_reference=result.target_reference,
        asset=result.asset.canonical_reference if result.asset else None,
    )


def apply_direct(
    store: RelationalStore,
    target: ReconcileTarget,
    results: Sequence[MatchResult],
) -> TableSummary:
    summary = TableSummary(table=target.table)
    for result in results:
        if result.outcome != MatchOutcome.matched or result.target_reference is None:
            summary.add(_passive_report(result))
            continue

        record = result.record
        asset_reference = result.asset.canonical_reference if result.asset else None
        error: str | None = None
        try:
            rowcount = store.update(
                target.table,
                {target.image_field: result.target_reference},
                where={target.id_field: record.id},
            )
            if rowcount < 1:
                error = "update affected no rows"
        except ServiceUnavailableError:
            raise
        except (TransportError, NotFoundError) as exc:
            error = str(exc)

        report = RecordReport(
            table=target.table,
            id=record.id,
            outcome=RecordOutcome.write_failed if error else RecordOutcome.updated,
            display_name=record.display_name,
            previous_reference=record.image_reference,
            new_reference=result.target_reference,
            asset=asset_reference,
            error=error,
        )
        summary.add(report)
        if error:
            logger.error(
                "Failed to update image reference",
                extra={
                    "table": target.table,
                    "record_id": record.id,
                    "image_field": target.image_field,
                    "new_reference": result.target_reference,
                    "error": error,
                },
            )
        else:
            logger.info(
                "Updated image reference",
                extra={
                    "table": target.table,
                    "record_id": record.id,
                    "previous_reference": record.image_reference,
                    "new_reference": result.target_reference,
                },
            )
    return summary


def sql_literal(value: Any) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _comment_text(value: Any) -> str:
    return " ".join(str(value or "").split())


def render_update_statement(
    target: ReconcileTarget,
    result: MatchResult,
    *,
    schema: str = "public",
) -> str:
    table = f"{check_identifier(schema)}.{check_identifier(target.table)}"
    image_field = check_identifier(target.image_field)
    id_field = check_identifier(target.id_field)
    value = sql_literal(result.target_reference)
    asset_name = result.asset.stored_name if result.asset else ""
    return (
        f"UPDATE {table} SET {image_field} = {value} "
        f"WHERE {id_field} = {sql_literal(result.record.id)} "
        f"AND {image_field} IS DISTINCT FROM {value};"
        f' -- Matched "{_comment_text(result.record.display_name)}" with {_comment_text(asset_name)}'
    )


@dataclass(slots=True)
class ScriptSection:
    target: ReconcileTarget
    results: list[MatchResult] = field(default_factory=list)
    error: str | None = None


def render_update_script(
    sections: Sequence[ScriptSection],
    *,
    schema: str = "public",
    generated_at: datetime | None = None,
) -> str:
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    lines = [
        "-- SQL statements to update image reference fields",
        f"-- Generated on: {stamp}",
        "-- PLEASE REVIEW THESE STATEMENTS CAREFULLY BEFORE EXECUTING!",
        "-- Each statement is guarded and can be re-run safely.",
        "",
    ]
    for section in sections:
        lines.append(f"-- Updates for table: {section.target.table}")
        if section.error:
            lines.append(f"-- ERROR fetching records for {section.target.table}: {_comment_text(section.error)}")
        matched = [r for r in section.results if r.outcome == MatchOutcome.matched]
        if not section.error and not matched:
            lines.append("-- No updates required.")
        for result in matched:
            lines.append(render_update_statement(section.target, result, schema=schema))
        lines.append("")
    return "\n".join(lines)


def plan_script(target: ReconcileTarget, results: Sequence[MatchResult]) -> TableSummary:
    summary = TableSummary(table=target.table)
    for result in results:
        if result.outcome != MatchOutcome.matched:
            summary.add(_passive_report(result))
            continue
        record = result.record
        summary.add(
            RecordReport(
                table=target.table,
                id=record.id,
                outcome=RecordOutcome.scripted,
                display_name=record.display_name,
                previous_reference=record.image_reference,
                new_reference=result.target_reference,
                asset=result.asset.canonical_reference if result.asset else None,
            )
        )
    return summary


def reconcile(
    store: RelationalStore,
    inventory: AssetInventory,
    targets: Sequence[ReconcileTarget],
    *,
    mode: ReconcileMode = ReconcileMode.script,
    reference_style: ReferenceStyle = ReferenceStyle.canonical,
    schema: str = "public",
    generated_at: datetime | None = None,
) -> ReconcileResult:
    summary = ReconcileSummary(
        mode=ReconcileMode(mode),
        inventory_counts=inventory.counts(),
        inventory_failures=[
            {"bucket": f.bucket, "error": f.error, "status_code": f.status_code}
            for f in inventory.failures
        ],
        truncated_buckets=list(inventory.truncated_buckets),
    )
    sections: list[ScriptSection] = []

    for target in targets:
        try:
            records = fetch_records(store, target)
        except ServiceUnavailableError:
            raise
        except (TransportError, NotFoundError) as exc:
            logger.error(
                "Failed to fetch records",
                extra={"table": target.table, "error": str(exc)},
            )
            summary.tables[target.table] = TableSummary(table=target.table, fetch_error=str(exc))
            sections.append(ScriptSection(target=target, error=str(exc)))
            continue

        results = match_records(
            records,
            target.buckets,
            inventory,
            reference_style=reference_style,
        )
        if summary.mode == ReconcileMode.direct:
            summary.tables[target.table] = apply_direct(store, target, results)
        else:
            summary.tables[target.table] = plan_script(target, results)
            sections.append(ScriptSection(target=target, results=results))

    script = None
    if summary.mode == ReconcileMode.script:
        script = render_update_script(sections, schema=schema, generated_at=generated_at)
    return ReconcileResult(summary=summary, script=script)


__all__ = [
    "ReconcileMode",
    "ReconcileResult",
    "ReconcileSummary",
    "RecordOutcome",
    "RecordReport",
    "ScriptSection",
    "TableSummary",
    "apply_direct",
    "fetch_records",
    "format_summary",
    "plan_script",
    "reconcile",
    "render_update_script",
    "render_update_statement",
    "sql_literal",
]
