"""Capability interfaces for the two stores the tooling talks to.

`PostgresStore` (signage_ops.db) and `StorageService`
(signage_ops.services.storage_service) are the production implementations.
The reconciliation engine and the settings migrator only depend on these
protocols, so tests can hand them in-memory doubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None


@dataclass(frozen=True, slots=True)
class StorageObject:
    name: str
    id: str | None = None
    content_type: str | None = None
    size: int | None = None

    @property
    def is_file(self) -> bool:
        # Supabase lists "folders" as entries without an id.
        return bool(self.name) and self.id is not None


class RelationalStore(Protocol):
    def select(
        self,
        table: str,
        columns: Sequence[str],
        *,
        where: Mapping[str, Any] | None = None,
        order_by: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]: ...

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any] | None: ...

    def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        where: Mapping[str, Any],
    ) -> int: ...

    def delete(self, table: str, *, where: Mapping[str, Any]) -> int: ...

    def introspect_columns(self, table: str) -> list[ColumnInfo]: ...

    def table_exists(self, table: str) -> bool: ...

    def execute_ddl(self, statement: str) -> None: ...


class BlobStore(Protocol):
    def list_objects(self, bucket: str, *, limit: int = 1000) -> list[StorageObject]: ...

    def upload_object(
        self,
        bucket: str,
        name: str,
        data: bytes,
        *,
        content_type: str | None = None,
        upsert: bool = False,
    ) -> str: ...

    def public_url(self, bucket: str, name: str) -> str: ...

    def bucket_exists(self, bucket: str) -> bool: ...

    def create_bucket(self, bucket: str, *, public: bool = True) -> None: ...
