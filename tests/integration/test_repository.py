from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.core.rbac.errors import AssignmentWriteError, DuplicateAssignmentError, UnknownRoleError
from orgauthz.core.rbac.types import RoleScope
from orgauthz.features.rbac.repository import SqlRoleAssignmentStore
from orgauthz.features.rbac.service import RbacService
from orgauthz.models import RoleAssignment

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


async def _count(session: AsyncSession) -> int:
    return (await session.execute(select(func.count()).select_from(RoleAssignment))).scalar_one()


async def test_global_and_organization_assignments_are_separate_partitions(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
    org_b: UUID,
) -> None:
    store = SqlRoleAssignmentStore(session)
    user = uuid4()

    global_record = await store.create_assignment(user, "gestor", None)
    in_a = await store.create_assignment(user, "gestor", org_a)
    in_b = await store.create_assignment(user, "gestor", org_b)

    assert global_record.scope is RoleScope.GLOBAL
    assert in_a.scope is RoleScope.ORGANIZATION
    assert len({global_record.id, in_a.id, in_b.id}) == 3
    assert await _count(session) == 3


@pytest.mark.parametrize("in_organization", [False, True])
async def test_duplicate_assignment_keeps_the_session_usable(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
    in_organization: bool,
) -> None:
    store = SqlRoleAssignmentStore(session)
    user = uuid4()
    organization_id = org_a if in_organization else None
    await store.create_assignment(user, "colaborador", organization_id)

    with pytest.raises(DuplicateAssignmentError) as excinfo:
        await store.create_assignment(user, "colaborador", organization_id)
    assert excinfo.value.organization_id == organization_id

    assert await _count(session) == 1
    await store.create_assignment(user, "gestor", organization_id)
    await session.commit()
    assert await _count(session) == 2


async def test_unknown_role_cannot_be_stored(session: AsyncSession, rbac: RbacService) -> None:
    store = SqlRoleAssignmentStore(session)

    with pytest.raises(UnknownRoleError):
        await store.create_assignment(uuid4(), "owner", None)


async def test_find_assignments_matches_the_context(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
    org_b: UUID,
) -> None:
    store = SqlRoleAssignmentStore(session)
    user = uuid4()
    await store.create_assignment(user, "colaborador", None)
    await store.create_assignment(user, "admin", org_a)
    await store.create_assignment(user, "gestor", org_b)
    await store.create_assignment(uuid4(), "admin", None)

    assert {r.role_name for r in await store.find_assignments(user)} == {"colaborador"}
    assert {r.role_name for r in await store.find_assignments(user, org_a)} == {"colaborador", "admin"}
    assert {r.role_name for r in await store.find_assignments(user, org_b)} == {"colaborador", "gestor"}


async def test_list_assignments_filters_exactly(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
) -> None:
    store = SqlRoleAssignmentStore(session)
    first, second = uuid4(), uuid4()
    await store.create_assignment(first, "gestor", None)
    await store.create_assignment(first, "admin", org_a)
    await store.create_assignment(second, "colaborador", org_a)

    in_org = await store.list_assignments(organization_id=org_a)
    assert [r.role_name for r in in_org] == ["admin", "colaborador"]
    assert [r.role_name for r in await store.list_assignments(user_id=first)] == ["gestor"]


async def test_delete_assignment_reports_whether_a_row_was_removed(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
) -> None:
    store = SqlRoleAssignmentStore(session)
    user = uuid4()
    await store.create_assignment(user, "gestor", org_a)

    assert await store.delete_assignment(user, "gestor", None) is False
    assert await store.delete_assignment(user, "gestor", org_a) is True
    assert await store.get_assignment(user, "gestor", org_a) is None


async def test_refused_insert_becomes_a_write_error(
    session: AsyncSession,
    rbac: RbacService,
    org_a: UUID,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = SqlRoleAssignmentStore(session)

    async def _locked(*_args, **_kwargs):
        raise OperationalError("INSERT INTO role_assignments", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "flush", _locked)

    with pytest.raises(AssignmentWriteError):
        await store.create_assignment(uuid4(), "gestor", org_a)
