from __future__ import annotations

from collections.abc import AsyncIterator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.api.app import create_app
from orgauthz.db.database import get_db_session
from orgauthz.features.rbac.service import RbacService
from orgauthz.settings import Settings

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]

CALLER_HEADER = "X-Test-Caller"
ORG_HEADER = "X-Organization-Id"


@pytest.fixture()
def app(session: AsyncSession, rbac: RbacService) -> FastAPI:
    """Application wired to the test session; callers are trusted from a header."""

    application = create_app(Settings(database_url="sqlite:///:memory:"))
    application.state.rbac_hierarchy = rbac.hierarchy

    @application.middleware("http")
    async def _trusted_caller(request: Request, call_next):
        raw = request.headers.get(CALLER_HEADER)
        if raw:
            request.state.caller_id = UUID(raw)
        return await call_next(request)

    async def _session_override() -> AsyncIterator[AsyncSession]:
        yield session

    application.dependency_overrides[get_db_session] = _session_override
    return application


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
        yield http


def _headers(caller: UUID | None = None, organization: UUID | str | None = None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if caller is not None:
        headers[CALLER_HEADER] = str(caller)
    if organization is not None:
        headers[ORG_HEADER] = str(organization)
    return headers


async def _grant(rbac: RbacService, user: UUID, role: str, organization: UUID | None = None) -> None:
    await rbac.grant_role(user_id=user, role_name=role, organization_id=organization, bypass_guard=True)


async def test_list_roles(client: AsyncClient) -> None:
    response = await client.get("/rbac/roles")

    assert response.status_code == 200
    payload = response.json()
    assert [role["name"] for role in payload] == ["super_admin", "admin", "gestor", "colaborador"]
    assert payload[0]["scope"] == "global"
    assert response.headers["X-Request-ID"]


async def test_my_roles_requires_a_caller(client: AsyncClient, org_a: UUID) -> None:
    response = await client.get("/rbac/me/roles", headers=_headers(organization=org_a))

    assert response.status_code == 403
    assert response.json() == {"detail": "access denied"}


async def test_my_roles_in_organization_context(
    client: AsyncClient,
    rbac: RbacService,
    org_a: UUID,
) -> None:
    user = uuid4()
    await _grant(rbac, user, "gestor", org_a)

    response = await client.get("/rbac/me/roles", headers=_headers(user, org_a))

    assert response.status_code == 200
    assert response.json()["organization_roles"] == ["gestor"]
    assert response.json()["global_roles"] == []


async def test_admin_assigns_weaker_role(client: AsyncClient, rbac: RbacService, org_a: UUID) -> None:
    admin, target = uuid4(), uuid4()
    await _grant(rbac, admin, "admin", org_a)

    response = await client.post(
        "/rbac/assignments",
        json={"user_id": str(target), "role": "gestor"},
        headers=_headers(admin, org_a),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["role"] == "gestor"
    assert body["organization_id"] == str(org_a)
    assert body["assigned_by"] == str(admin)
    assert (await rbac.engine.authorize(target, org_a, ["gestor"])).allowed


async def test_assignment_ceiling_renders_as_access_denied(
    client: AsyncClient,
    rbac: RbacService,
    org_a: UUID,
) -> None:
    admin = uuid4()
    await _grant(rbac, admin, "admin", org_a)

    response = await client.post(
        "/rbac/assignments",
        json={"user_id": str(uuid4()), "role": "admin"},
        headers=_headers(admin, org_a),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "access denied"}


@pytest.mark.parametrize(
    ("role", "organization"),
    [
        ("gestor", "org"),
        ("admin", None),
        ("admin", "other"),
        ("admin", "not-a-uuid"),
    ],
)
async def test_gate_denies(
    client: AsyncClient,
    rbac: RbacService,
    org_a: UUID,
    org_b: UUID,
    role: str,
    organization: str | None,
) -> None:
    caller = uuid4()
    await _grant(rbac, caller, role, org_a)
    context = {"org": org_a, "other": org_b, None: None}.get(organization, organization)

    response = await client.post(
        "/rbac/assignments",
        json={"user_id": str(uuid4()), "role": "colaborador"},
        headers=_headers(caller, context),
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "access denied"}


async def test_scope_mismatch_is_a_bad_request(
    client: AsyncClient,
    rbac: RbacService,
    org_a: UUID,
) -> None:
    root = uuid4()
    await _grant(rbac, root, "super_admin")

    response = await client.post(
        "/rbac/assignments",
        json={"user_id": str(uuid4()), "role": "super_admin"},
        headers=_headers(root, org_a),
    )

    assert response.status_code == 400


async def test_revoke_round_trip(client: AsyncClient, rbac: RbacService, org_a: UUID) -> None:
    admin, member = uuid4(), uuid4()
    await _grant(rbac, admin, "admin", org_a)
    await _grant(rbac, member, "colaborador", org_a)
    payload = {"user_id": str(member), "role": "colaborador"}

    first = await client.post("/rbac/assignments/revoke", json=payload, headers=_headers(admin, org_a))
    second = await client.post("/rbac/assignments/revoke", json=payload, headers=_headers(admin, org_a))

    assert first.status_code == 204
    assert second.status_code == 404
    assert not (await rbac.engine.authorize(member, org_a, ["colaborador"])).allowed
