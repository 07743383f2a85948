"""Runtime helpers for the orgauthz command-line interface."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.common.logging import setup_logging
from orgauthz.core.rbac.errors import RbacError, RoleCatalogError
from orgauthz.core.rbac.registry import load_catalog
from orgauthz.db.database import DatabaseConfig, db, session_scope
from orgauthz.features.rbac.service import RbacService
from orgauthz.settings import Settings, reload_settings

__all__ = [
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "build_service",
    "load_settings",
    "open_session",
    "run_command",
]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Failures reported as a one-line message instead of a traceback.
_USER_ERRORS: tuple[type[Exception], ...] = (RbacError, ValueError, FileNotFoundError)


def run_command(command: Callable[..., Any], /, **kwargs: Any) -> None:
    """Run a command body, driving it with ``asyncio.run`` when it is a coroutine."""

    try:
        outcome = command(**kwargs)
        if asyncio.iscoroutine(outcome):
            asyncio.run(outcome)
    except _USER_ERRORS as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


def load_settings() -> Settings:
    """Return settings using the same loader as the API, re-reading the environment."""

    settings = reload_settings()
    setup_logging(settings)
    return settings


@asynccontextmanager
async def open_session(settings: Settings) -> AsyncIterator[AsyncSession]:
    """Yield a unit-of-work session and dispose the engine afterwards."""

    db.init(DatabaseConfig.from_settings(settings))
    try:
        async with session_scope() as session:
            yield session
    finally:
        await db.dispose()


async def build_service(
    session: AsyncSession,
    settings: Settings,
    *,
    require_stored_roles: bool = True,
) -> RbacService:
    """Return a service whose hierarchy comes from the stored roles."""

    service = RbacService(
        session=session,
        catalog=load_catalog(settings.role_catalog_path),
        cache_enabled=settings.resolver_cache_enabled,
    )
    try:
        await service.load_hierarchy()
    except RoleCatalogError:
        if require_stored_roles:
            raise
    return service
