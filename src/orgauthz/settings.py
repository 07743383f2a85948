"""Runtime configuration read from ``ORGAUTHZ_*`` variables and an optional ``.env``."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

_PACKAGE_DIR = Path(__file__).resolve().parent


def _project_root() -> Path:
    """Directory holding ``alembic.ini`` and ``migrations/``.

    Checked in order: the source checkout (``<root>/src/orgauthz``), then the
    working directory. Falls back to the checkout location.
    """

    checkout = _PACKAGE_DIR.parent.parent
    for root in (checkout, Path.cwd().resolve()):
        if (root / "alembic.ini").is_file() and (root / "migrations").is_dir():
            return root
    return checkout


DEFAULT_ROOT = _project_root()
DEFAULT_DATABASE_URL = "sqlite:///./data/db/orgauthz.sqlite"
DEFAULT_ALEMBIC_INI = DEFAULT_ROOT / "alembic.ini"
DEFAULT_ALEMBIC_MIGRATIONS = DEFAULT_ROOT / "migrations"
DEFAULT_ORGANIZATION_HEADER = "X-Organization-Id"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Settings loaded from ORGAUTHZ_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ORGAUTHZ_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Core
    app_name: str = "orgauthz"
    logging_level: str = "INFO"

    # Database
    database_url: str = DEFAULT_DATABASE_URL
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)  # ignored by sqlite
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)
    database_sqlite_busy_timeout_ms: int = Field(30_000, ge=0)

    # Migrations
    alembic_ini_path: Path = Field(default=DEFAULT_ALEMBIC_INI)
    alembic_migrations_dir: Path = Field(default=DEFAULT_ALEMBIC_MIGRATIONS)

    # RBAC
    role_catalog_path: Path | None = Field(
        default=None,
        description="Optional JSON file replacing the built-in role and permission catalog.",
    )
    resolver_cache_enabled: bool = True
    organization_header: str = DEFAULT_ORGANIZATION_HEADER

    @field_validator("logging_level", mode="before")
    @classmethod
    def _normalize_logging_level(cls, value: Any) -> str:
        candidate = str(value or "INFO").strip().upper()
        if candidate not in _LOG_LEVELS:
            raise ValueError(f"logging_level must be one of {', '.join(sorted(_LOG_LEVELS))}")
        return candidate

    @field_validator("database_url", mode="before")
    @classmethod
    def _validate_database_url(cls, value: Any) -> str:
        candidate = str(value or "").strip() or DEFAULT_DATABASE_URL
        backend = make_url(candidate).get_backend_name()
        if backend not in {"sqlite", "postgresql"}:
            raise ValueError("Only SQLite and PostgreSQL are supported.")
        return candidate

    @field_validator("role_catalog_path", "alembic_ini_path", "alembic_migrations_dir", mode="before")
    @classmethod
    def _resolve_paths(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        return Path(str(value).strip()).expanduser().resolve()

    @field_validator("organization_header", mode="before")
    @classmethod
    def _validate_header(cls, value: Any) -> str:
        candidate = str(value or "").strip()
        if not candidate:
            return DEFAULT_ORGANIZATION_HEADER
        return candidate


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_ORGANIZATION_HEADER",
    "Settings",
    "get_settings",
    "reload_settings",
]
