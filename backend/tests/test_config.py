import pytest
from pydantic import ValidationError as SettingsValidationError

from signage_ops.config import Settings
from signage_ops.context import build_storage, open_context
from signage_ops.errors import ValidationError
from signage_ops.schemas.reconcile import ReferenceStyle


def test_defaults_describe_the_signage_deployment():
    settings = Settings(_env_file=None)

    assert settings.storage_buckets == [
        "branding",
        "products",
        "uniforms",
        "ui-elements",
        "announcements",
    ]
    assert settings.reference_style == ReferenceStyle.canonical
    assert settings.settings_table == "settings"
    assert settings.database_url is None
    assert [rule.bucket for rule in settings.bucket_rules][0] == "branding"
    assert settings.target_for("announcements").name_field == "title"
    assert settings.target_for("missing") is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("VITE_SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SECRET_API_KEY", "secret")
    monkeypatch.setenv("SUPABASE_DB_URL", "postgresql://u:p@db.example.supabase.co:5432/postgres")
    monkeypatch.setenv("STORAGE_BUCKETS", "products, uniforms ,")
    monkeypatch.setenv("REFERENCE_STYLE", "public")

    settings = Settings(_env_file=None)

    assert str(settings.supabase_url).startswith("https://example.supabase.co")
    assert settings.supabase_service_role_key == "secret"
    assert settings.database_url is not None
    assert settings.database_url.host == "db.example.supabase.co"
    assert settings.storage_buckets == ["products", "uniforms"]
    assert settings.reference_style == ReferenceStyle.public


def test_invalid_list_limit_is_rejected(monkeypatch):
    monkeypatch.setenv("STORAGE_LIST_LIMIT", "0")

    with pytest.raises(SettingsValidationError):
        Settings(_env_file=None)


def test_build_storage_requires_credentials():
    with pytest.raises(ValidationError):
        build_storage(Settings(_env_file=None))


def test_open_context_without_database_url_is_a_usage_error():
    settings = Settings(_env_file=None)

    with pytest.raises(ValidationError):
        with open_context(settings, with_storage=False):
            pass


def test_open_context_storage_only(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    settings = Settings(_env_file=None)

    with open_context(settings, with_store=False) as ctx:
        assert ctx.store is None
        assert ctx.storage.enabled
        assert len(ctx.run_id) == 12
        with pytest.raises(ValidationError):
            ctx.require_store()
