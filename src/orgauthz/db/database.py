"""Async engine and session lifecycle for the RBAC store.

The process holds one engine (``db``), initialised by the API lifespan or by
a CLI command. Each request or command gets its own ``AsyncSession``; the
effective-role cache lives in ``session.info`` and so never outlives it.

Configuration takes a *sync* URL (what Alembic wants) and derives the async
driver for runtime use:

==========  ======================  ======================
backend     migrations             runtime
==========  ======================  ======================
sqlite      ``sqlite``              ``sqlite+aiosqlite``
postgresql  ``postgresql+psycopg``  ``postgresql+asyncpg``
==========  ======================  ======================
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orgauthz.settings import DEFAULT_DATABASE_URL, Settings

__all__ = [
    "Database",
    "DatabaseConfig",
    "build_async_url",
    "build_sync_url",
    "close_session",
    "configure_sqlite_pragmas",
    "db",
    "get_db_session",
    "session_scope",
]

# backend -> (sync driver, async driver)
_DRIVERS: dict[str, tuple[str, str]] = {
    "sqlite": ("sqlite", "sqlite+aiosqlite"),
    "postgresql": ("postgresql+psycopg", "postgresql+asyncpg"),
}


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    url: str
    echo: bool = False

    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_busy_timeout_ms: int = 30_000
    # Explicit BEGIN keeps SAVEPOINT usable under pysqlite/aiosqlite.
    sqlite_begin_mode: str | None = "DEFERRED"

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseConfig:
        return cls(
            url=settings.database_url or DEFAULT_DATABASE_URL,
            echo=bool(settings.database_echo),
            pool_size=int(settings.database_pool_size),
            max_overflow=int(settings.database_max_overflow),
            pool_timeout=int(settings.database_pool_timeout),
            sqlite_busy_timeout_ms=int(settings.database_sqlite_busy_timeout_ms),
        )


def _backend(url: URL) -> str:
    name = url.get_backend_name()
    if name not in _DRIVERS:
        raise ValueError(f"Unsupported database backend {name!r}; use sqlite or postgresql.")
    return name


def _with_driver(cfg: DatabaseConfig, *, runtime: bool) -> str:
    url = make_url(cfg.url)
    sync_driver, async_driver = _DRIVERS[_backend(url)]
    driver = async_driver if runtime else sync_driver
    return url.set(drivername=driver).render_as_string(hide_password=False)


def build_sync_url(cfg: DatabaseConfig) -> str:
    """URL for Alembic and the migration lock."""
    return _with_driver(cfg, runtime=False)


def build_async_url(cfg: DatabaseConfig) -> str:
    return _with_driver(cfg, runtime=True)


def _in_memory(url: URL) -> bool:
    database = (url.database or "").strip()
    if database in {"", ":memory:"}:
        return True
    return database.startswith("file:") and url.query.get("mode") == "memory"


def _ensure_sqlite_parent_dir(url: URL) -> None:
    database = (url.database or "").strip()
    if _in_memory(url) or database.startswith("file:"):
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def _engine_options(url: URL, cfg: DatabaseConfig) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": cfg.echo, "pool_pre_ping": True}
    if _backend(url) == "postgresql":
        options.update(
            pool_size=cfg.pool_size,
            max_overflow=cfg.max_overflow,
            pool_timeout=cfg.pool_timeout,
            pool_recycle=cfg.pool_recycle,
        )
        return options

    options["connect_args"] = {
        "check_same_thread": False,
        "timeout": cfg.sqlite_busy_timeout_ms / 1000.0,
    }
    if _in_memory(url):
        # Every session must see the same in-memory database.
        options["poolclass"] = StaticPool
    else:
        # One writer per process; concurrent requests queue on the pool.
        options.update(pool_size=1, max_overflow=0, pool_timeout=max(1, cfg.pool_timeout))
    return options


def configure_sqlite_pragmas(engine: AsyncEngine, cfg: DatabaseConfig) -> None:
    """Enable foreign keys and WAL on every connection, and take over BEGIN."""

    pragmas = (
        "PRAGMA foreign_keys=ON",
        f"PRAGMA busy_timeout={int(cfg.sqlite_busy_timeout_ms)}",
        f"PRAGMA journal_mode={cfg.sqlite_journal_mode}",
        f"PRAGMA synchronous={cfg.sqlite_synchronous}",
    )
    begin_mode = cfg.sqlite_begin_mode

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        if begin_mode:
            # Stop the driver from issuing its own BEGIN.
            dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()

    if begin_mode:

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(connection) -> None:
            connection.exec_driver_sql(f"BEGIN {begin_mode}")


class Database:
    """Lazily configured engine plus session factory."""

    def __init__(self) -> None:
        self._config: DatabaseConfig | None = None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    def _require(self, value):
        if value is None:
            raise RuntimeError("Database is not initialised; call db.init(config) first.")
        return value

    @property
    def engine(self) -> AsyncEngine:
        return self._require(self._engine)

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        return self._require(self._sessionmaker)

    @property
    def config(self) -> DatabaseConfig:
        return self._require(self._config)

    def init(self, cfg: DatabaseConfig) -> None:
        """Build the engine; re-initialising with an equal config is a no-op."""

        if self._engine is not None and cfg == self._config:
            return

        runtime_url = make_url(build_async_url(cfg))
        is_sqlite = _backend(runtime_url) == "sqlite"
        if is_sqlite:
            _ensure_sqlite_parent_dir(runtime_url)

        engine = create_async_engine(runtime_url, **_engine_options(runtime_url, cfg))
        if is_sqlite:
            configure_sqlite_pragmas(engine, cfg)

        self._config = cfg
        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def dispose(self) -> None:
        engine, self._engine = self._engine, None
        self._sessionmaker = None
        self._config = None
        if engine is not None:
            await engine.dispose()


db = Database()


async def close_session(session: AsyncSession) -> None:
    # Closing must finish even when the surrounding task is cancelled.
    await asyncio.shield(session.close())


@asynccontextmanager
async def _unit_of_work() -> AsyncIterator[AsyncSession]:
    session = db.sessionmaker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await close_session(session)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for CLI commands and startup hooks; commits when the block exits cleanly."""

    async with _unit_of_work() as session:
        yield session


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request, committed after the handler returns."""

    async with _unit_of_work() as session:
        yield session
