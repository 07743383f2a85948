"""Shared pytest fixtures for orgauthz tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

import orgauthz.models  # noqa: F401
from orgauthz.db.base import metadata
from orgauthz.db.database import Database, DatabaseConfig
from orgauthz.features.rbac.service import RbacService


@pytest_asyncio.fixture()
async def database() -> AsyncIterator[Database]:
    """Provide a fresh in-memory SQLite database with the RBAC schema."""

    database = Database()
    database.init(DatabaseConfig(url="sqlite:///:memory:"))
    async with database.engine.begin() as connection:
        await connection.run_sync(metadata.create_all)
    yield database
    await database.dispose()


@pytest_asyncio.fixture()
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.sessionmaker() as session:
        yield session


@pytest_asyncio.fixture()
async def rbac(session: AsyncSession) -> RbacService:
    """Return a service whose catalog has been synced into storage."""

    service = RbacService(session=session)
    await service.sync_catalog()
    await session.commit()
    return service


@pytest.fixture()
def org_a() -> UUID:
    return uuid4()


@pytest.fixture()
def org_b() -> UUID:
    return uuid4()
