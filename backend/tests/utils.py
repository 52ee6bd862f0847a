import re
from typing import Any, Mapping, Sequence

from signage_ops.errors import NotFoundError, TransportError
from signage_ops.services.storage_service import StorageServiceError
from signage_ops.stores import ColumnInfo, StorageObject

_CREATE_TABLE = re.compile(r"CREATE TABLE IF NOT EXISTS (\S+) \((.*)\)", re.S)
_COLUMN_LINE = re.compile(r"^\s+(\w+)\s", re.M)
_ADD_COLUMN = re.compile(r"ALTER TABLE (\S+) ADD COLUMN IF NOT EXISTS (\w+)\s")


def _bare(table: str) -> str:
    return table.split(".")[-1]


def _matches(row: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    return all(str(row.get(key)) == str(value) for key, value in (where or {}).items())


class FakeStore:
    """In-memory relational store with hooks for injecting failures."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.columns: dict[str, list[str]] = {}
        self.ddl: list[str] = []
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.failing_selects: dict[str, Exception] = {}
        self.failing_updates: dict[str, Exception | int] = {}
        self.failing_columns: dict[str, Exception] = {}
        self.failing_inserts: dict[str, Exception] = {}
        self.fail_create: Exception | None = None

    def add_table(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]] = (),
        *,
        columns: Sequence[str] | None = None,
    ) -> None:
        names = list(columns or [])
        for row in rows:
            for key in row:
                if key not in names:
                    names.append(key)
        self.columns[table] = names
        self.tables[table] = [dict(row) for row in rows]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[_bare(table)]

    def _require(self, table: str) -> str:
        name = _bare(table)
        if name not in self.tables:
            raise NotFoundError(f'relation "{table}" does not exist')
        return name

    def select(self, table, columns, *, where=None, order_by=None):
        name = _bare(table)
        if name in self.failing_selects:
            raise self.failing_selects[name]
        name = self._require(table)
        rows = [row for row in self.tables[name] if _matches(row, where)]
        for column in reversed(list(order_by or [])):
            rows.sort(key=lambda row: row.get(column))
        return [{column: row.get(column) for column in columns} for row in rows]

    def insert(self, table, row):
        name = self._require(table)
        if name in self.failing_inserts:
            raise self.failing_inserts[name]
        existing = [r.get("id") for r in self.tables[name] if isinstance(r.get("id"), int)]
        stored = {column: None for column in self.columns[name]}
        stored.update(row)
        stored["id"] = max(existing, default=0) + 1
        self.tables[name].append(stored)
        self.writes.append(("insert", name, dict(row)))
        return dict(stored)

    def update(self, table, values, *, where):
        name = self._require(table)
        key = str(next(iter(where.values())))
        failure = self.failing_updates.get(key)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure
        count = 0
        for row in self.tables[name]:
            if _matches(row, where):
                row.update(values)
                count += 1
        self.writes.append(("update", name, dict(values)))
        return count

    def delete(self, table, *, where):
        name = self._require(table)
        before = len(self.tables[name])
        self.tables[name] = [row for row in self.tables[name] if not _matches(row, where)]
        self.writes.append(("delete", name, dict(where)))
        return before - len(self.tables[name])

    def introspect_columns(self, table):
        name = _bare(table)
        return [ColumnInfo(name=column, data_type="text") for column in self.columns.get(name, [])]

    def table_exists(self, table):
        return _bare(table) in self.tables

    def execute_ddl(self, statement):
        created = _CREATE_TABLE.search(statement)
        if created:
            if self.fail_create is not None:
                raise self.fail_create
            name = _bare(created.group(1))
            self.ddl.append(statement)
            if name not in self.tables:
                self.add_table(name, columns=_COLUMN_LINE.findall(created.group(2)))
            return
        added = _ADD_COLUMN.search(statement)
        if added:
            name, column = _bare(added.group(1)), added.group(2)
            if column in self.failing_columns:
                raise self.failing_columns[column]
            self.ddl.append(statement)
            if column not in self.columns[name]:
                self.columns[name].append(column)
                for row in self.tables[name]:
                    row.setdefault(column, None)
            return
        raise TransportError(f"unsupported statement: {statement}")


class FakeStorage:
    """In-memory blob store keyed by bucket name."""

    base_url = "https://example.supabase.co"

    def __init__(self, buckets: Mapping[str, Sequence[str]] | None = None) -> None:
        self.buckets: dict[str, list[StorageObject]] = {}
        for bucket, names in (buckets or {}).items():
            self.buckets[bucket] = [
                StorageObject(name=name, id=f"{bucket}-{index}")
                for index, name in enumerate(names)
            ]
        self.failing_buckets: dict[str, Exception] = {}
        self.failing_uploads: dict[str, Exception] = {}
        self.uploads: list[dict[str, Any]] = []
        self.created: list[str] = []
        self.list_calls: list[tuple[str, int]] = []

    def list_objects(self, bucket, *, limit=1000):
        self.list_calls.append((bucket, limit))
        if bucket in self.failing_buckets:
            raise self.failing_buckets[bucket]
        if bucket not in self.buckets:
            raise StorageServiceError(f"bucket {bucket!r} not found", status_code=404)
        return list(self.buckets[bucket][:limit])

    def public_url(self, bucket, name):
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{name}"

    def upload_object(self, bucket, name, data, *, content_type=None, upsert=False):
        if name in self.failing_uploads:
            raise self.failing_uploads[name]
        self.uploads.append(
            {
                "bucket": bucket,
                "name": name,
                "size": len(data),
                "content_type": content_type,
                "upsert": upsert,
            }
        )
        self.buckets.setdefault(bucket, []).append(StorageObject(name=name, id=name))
        return f"{bucket}/{name}"

    def bucket_exists(self, bucket):
        if bucket in self.failing_buckets:
            raise self.failing_buckets[bucket]
        return bucket in self.buckets

    def create_bucket(self, bucket, *, public=True):
        self.created.append(bucket)
        self.buckets.setdefault(bucket, [])
