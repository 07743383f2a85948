"""Alembic environment for the orgauthz RBAC schema.

``orgauthz db upgrade`` passes the resolved settings through
``config.attributes``; a bare ``alembic upgrade head`` falls back to the
``ORGAUTHZ_*`` environment. SQLite runs in batch mode so ALTERs work.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, make_url

import orgauthz.models  # noqa: F401  (registers the tables on the metadata)
from orgauthz.db.base import metadata
from orgauthz.db.database import DatabaseConfig, build_sync_url
from orgauthz.settings import get_settings

config = context.config

if config.config_file_name and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _database_url() -> str:
    explicit = config.get_main_option("sqlalchemy.url")
    if explicit:
        return explicit
    settings = config.attributes.get("settings") or get_settings()
    return build_sync_url(DatabaseConfig.from_settings(settings))


def _options(url: str) -> dict:
    return {
        "target_metadata": metadata,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
        "compare_type": True,
    }


def _run(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    url = _database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    url = _database_url()
    shared = config.attributes.get("connection")
    if shared is not None:
        _run(shared, url)
        return

    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _run(connection, url)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
