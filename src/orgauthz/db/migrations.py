"""Run the RBAC schema migrations from code (``orgauthz db upgrade``)."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from orgauthz.settings import Settings, get_settings

from .database import DatabaseConfig, _ensure_sqlite_parent_dir, build_sync_url

__all__ = ["alembic_config", "migration_lock", "run_migrations"]

logger = logging.getLogger(__name__)

# pg_advisory_lock key shared by every orgauthz process upgrading the same database.
MIGRATION_LOCK_KEY = 0x0A7A2


@contextmanager
def migration_lock(settings: Settings) -> Iterator[None]:
    """Hold a PostgreSQL advisory lock for the duration of an upgrade.

    SQLite has a single writer already, so there is nothing to take.
    """

    url = make_url(build_sync_url(DatabaseConfig.from_settings(settings)))
    if url.get_backend_name() != "postgresql":
        yield
        return

    engine = create_engine(url, poolclass=NullPool, isolation_level="AUTOCOMMIT")
    params = {"key": MIGRATION_LOCK_KEY}
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT pg_advisory_lock(:key)"), params)
            try:
                yield
            finally:
                try:
                    connection.execute(text("SELECT pg_advisory_unlock(:key)"), params)
                except SQLAlchemyError:
                    # The lock dies with the session anyway.
                    logger.warning("migrations.unlock_failed", exc_info=True)
    finally:
        engine.dispose()


def alembic_config(settings: Settings | None = None) -> Config:
    """Alembic ``Config`` pointing at the packaged migrations and the configured database."""

    settings = settings or get_settings()
    ini_path, script_dir = settings.alembic_ini_path, settings.alembic_migrations_dir
    for label, path in (("alembic.ini", ini_path), ("migrations directory", script_dir)):
        if path is None or not path.exists():
            raise FileNotFoundError(f"Cannot locate the {label} (looked at {path})")

    config = Config(str(ini_path))
    config.set_main_option("script_location", str(script_dir))
    # '%' is interpolation syntax for ConfigParser.
    url = build_sync_url(DatabaseConfig.from_settings(settings))
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    config.attributes.update(settings=settings, configure_logger=False)
    return config


def run_migrations(settings: Settings | None = None, *, revision: str = "head") -> None:
    settings = settings or get_settings()
    url = make_url(build_sync_url(DatabaseConfig.from_settings(settings)))
    if url.get_backend_name() == "sqlite":
        _ensure_sqlite_parent_dir(url)

    logger.info("migrations.upgrade", extra={"revision": revision, "backend": url.get_backend_name()})
    with migration_lock(settings):
        command.upgrade(alembic_config(settings), revision)
