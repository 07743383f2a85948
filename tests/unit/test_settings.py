from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from orgauthz.db.database import DatabaseConfig, build_async_url, build_sync_url
from orgauthz.settings import DEFAULT_ORGANIZATION_HEADER, Settings, reload_settings


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(Path(__file__).parent)
    yield
    reload_settings()


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORGAUTHZ_DATABASE_URL", "postgresql://user:secret@db:5432/orgauthz")
    monkeypatch.setenv("ORGAUTHZ_LOGGING_LEVEL", "debug")
    monkeypatch.setenv("ORGAUTHZ_RESOLVER_CACHE_ENABLED", "false")

    settings = reload_settings()

    assert settings.database_url == "postgresql://user:secret@db:5432/orgauthz"
    assert settings.logging_level == "DEBUG"
    assert settings.resolver_cache_enabled is False
    assert settings.organization_header == DEFAULT_ORGANIZATION_HEADER


def test_unsupported_backend_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(database_url="mysql://user@localhost/orgauthz")


def test_invalid_logging_level_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(logging_level="chatty")


def test_blank_header_falls_back_to_default() -> None:
    assert Settings(organization_header="  ").organization_header == DEFAULT_ORGANIZATION_HEADER


def test_catalog_path_is_resolved(tmp_path: Path) -> None:
    settings = Settings(role_catalog_path=str(tmp_path / "catalog.json"))

    assert settings.role_catalog_path == (tmp_path / "catalog.json").resolve()
    assert Settings(role_catalog_path="").role_catalog_path is None


@pytest.mark.parametrize(
    ("url", "sync_driver", "async_driver"),
    [
        ("sqlite:///./data/db/orgauthz.sqlite", "sqlite", "sqlite+aiosqlite"),
        ("postgresql://u:p@localhost/orgauthz", "postgresql+psycopg", "postgresql+asyncpg"),
    ],
)
def test_runtime_urls_pick_drivers(url: str, sync_driver: str, async_driver: str) -> None:
    config = DatabaseConfig(url=url)

    assert build_sync_url(config).startswith(f"{sync_driver}://")
    assert build_async_url(config).startswith(f"{async_driver}://")
