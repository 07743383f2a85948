"""Two processes' worth of engines granting the same role at once."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from orgauthz.db.base import metadata
from orgauthz.db.database import Database, DatabaseConfig
from orgauthz.features.rbac.repository import RoleAssignmentRecord
from orgauthz.features.rbac.service import RbacService
from orgauthz.models import RoleAssignment

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


@pytest_asyncio.fixture()
async def databases(tmp_path: Path) -> AsyncIterator[list[Database]]:
    config = DatabaseConfig(
        url=f"sqlite:///{tmp_path / 'grants.sqlite'}",
        sqlite_busy_timeout_ms=5_000,
    )
    engines = [Database(), Database()]
    for database in engines:
        database.init(config)

    async with engines[0].engine.begin() as connection:
        await connection.run_sync(metadata.create_all)
    async with engines[0].sessionmaker() as session:
        await RbacService(session=session).sync_catalog()
        await session.commit()

    yield engines
    for database in engines:
        await database.dispose()


async def test_identical_concurrent_grants_store_one_assignment(databases: list[Database]) -> None:
    user, organization = uuid4(), uuid4()
    # Both transactions read before either writes, so both miss the existing row.
    both_read = asyncio.Barrier(len(databases))

    async def _grant(database: Database) -> RoleAssignmentRecord:
        async with database.sessionmaker() as session:
            service = RbacService(session=session)
            await service.load_hierarchy()
            assert len(await service.effective_roles(user, organization)) == 0
            await both_read.wait()
            record = await service.grant_role(
                user_id=user,
                role_name="gestor",
                organization_id=organization,
                bypass_guard=True,
            )
            await session.commit()
            return record

    records = await asyncio.gather(*(_grant(database) for database in databases))

    assert {record.id for record in records} == {records[0].id}
    assert await _assignment_count(databases[0], user, organization) == 1


async def _assignment_count(database: Database, user: UUID, organization: UUID) -> int:
    async with database.sessionmaker() as session:
        stmt = (
            select(func.count())
            .select_from(RoleAssignment)
            .where(RoleAssignment.user_id == user, RoleAssignment.organization_id == organization)
        )
        return (await session.execute(stmt)).scalar_one()
