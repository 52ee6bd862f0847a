from typing import Annotated

from pydantic import AliasChoices, AnyUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .schemas.reconcile import (
    DEFAULT_BUCKET_RULES,
    DEFAULT_RECONCILE_TARGETS,
    BucketRule,
    ReconcileTarget,
    ReferenceStyle,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", "../.env"), extra="ignore")

    supabase_url: AnyUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SUPABASE_SERVICE_ROLE_KEY",
            "VITE_SUPABASE_SERVICE_ROLE_KEY",
            "SUPABASE_SECRET_API_KEY",
        ),
    )
    supabase_db_url: AnyUrl | None = None
    database_url: AnyUrl | None = None
    db_schema: str = "public"
    db_connect_timeout_seconds: int = 10
    storage_buckets: Annotated[list[str], NoDecode] = [
        "branding",
        "products",
        "uniforms",
        "ui-elements",
        "announcements",
    ]
    storage_list_limit: int = 1000
    storage_timeout_seconds: float = 10.0
    bucket_rules: list[BucketRule] = list(DEFAULT_BUCKET_RULES)
    default_bucket: str = "products"
    reconcile_targets: list[ReconcileTarget] = list(DEFAULT_RECONCILE_TARGETS)
    reference_style: ReferenceStyle = ReferenceStyle.canonical
    settings_table: str = "settings"
    log_level: str = "INFO"
    sentry_dsn: str | None = Field(
        default=None, validation_alias=AliasChoices("SENTRY_DSN", "SIGNAGE_SENTRY_DSN")
    )

    @model_validator(mode="after")
    def _populate_database_url(self):
        if self.database_url is None and self.supabase_db_url is not None:
            self.database_url = self.supabase_db_url
        return self

    @field_validator("storage_buckets", mode="before")
    @classmethod
    def _split_buckets(cls, value):
        if isinstance(value, str):
            return [bucket.strip() for bucket in value.split(",") if bucket.strip()]
        return value

    @field_validator("storage_list_limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("storage_list_limit must be positive")
        return value

    def target_for(self, table: str) -> ReconcileTarget | None:
        for target in self.reconcile_targets:
            if target.table == table:
                return target
        return None
