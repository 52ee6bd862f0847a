from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .config import Settings
from .db import PostgresStore
from .errors import ValidationError
from .services.storage_service import StorageService
from .stores import BlobStore, RelationalStore


@dataclass(slots=True)
class RunContext:
    """Everything a single run needs, built once by the entry point."""

    settings: Settings
    store: RelationalStore | None = None
    storage: BlobStore | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def require_store(self) -> RelationalStore:
        if self.store is None:
            raise ValidationError("a database connection is required for this run")
        return self.store

    def require_storage(self) -> BlobStore:
        if self.storage is None:
            raise ValidationError("Supabase Storage is required for this run")
        return self.storage


def build_storage(settings: Settings) -> StorageService:
    service = StorageService(
        supabase_url=(
            settings.supabase_url.unicode_string() if settings.supabase_url is not None else None
        ),
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.storage_timeout_seconds,
    )
    if not service.enabled:
        raise ValidationError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set to reach Supabase Storage"
        )
    return service


@contextmanager
def open_context(
    settings: Settings,
    *,
    database_url: str | None = None,
    with_store: bool = True,
    with_storage: bool = True,
) -> Iterator[RunContext]:
    """Open the store connections a run asks for and close them afterwards."""

    storage = build_storage(settings) if with_storage else None
    if not with_store:
        yield RunContext(settings=settings, storage=storage)
        return

    resolved_url = database_url or (
        settings.database_url.unicode_string() if settings.database_url is not None else None
    )
    if not resolved_url:
        raise ValidationError("provide --database-url or set $DATABASE_URL")

    store = PostgresStore.connect(
        resolved_url,
        schema=settings.db_schema,
        connect_timeout=settings.db_connect_timeout_seconds,
    )
    with store:
        yield RunContext(settings=settings, store=store, storage=storage)
