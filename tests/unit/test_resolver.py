from __future__ import annotations

from uuid import uuid4

import pytest

from orgauthz.features.rbac.resolver import EffectiveRoleSet, RoleResolver
from tests.unit.fakes import FakeAssignmentStore

pytestmark = pytest.mark.asyncio


async def test_partitions_global_and_organization_roles() -> None:
    store = FakeAssignmentStore()
    user, org, other = uuid4(), uuid4(), uuid4()
    store.add(user, "gestor")
    store.add(user, "admin", org)
    store.add(user, "colaborador", other)
    resolver = RoleResolver(store)

    effective = await resolver.resolve(user, org)

    assert effective.global_roles == frozenset({"gestor"})
    assert effective.organization_roles == frozenset({"admin"})
    assert "admin" in effective
    assert "colaborador" not in effective
    assert list(effective) == ["admin", "gestor"]
    assert len(effective) == 2


async def test_absent_organization_resolves_global_roles_only() -> None:
    store = FakeAssignmentStore()
    user = uuid4()
    store.add(user, "admin", uuid4())

    effective = await RoleResolver(store).resolve(user)

    assert effective == EffectiveRoleSet(user_id=user, organization_id=None)
    assert len(effective) == 0


async def test_cache_serves_repeated_lookups() -> None:
    store = FakeAssignmentStore()
    user, org = uuid4(), uuid4()
    store.add(user, "gestor", org)
    resolver = RoleResolver(store, cache={})

    first = await resolver.resolve(user, org)
    second = await resolver.resolve(user, org)
    assert first is second
    assert store.reads == 1

    await resolver.resolve(user, None)
    assert store.reads == 2

    resolver.clear_cache()
    await resolver.resolve(user, org)
    assert store.reads == 3


async def test_without_cache_every_lookup_hits_the_store() -> None:
    store = FakeAssignmentStore()
    user = uuid4()
    resolver = RoleResolver(store)

    await resolver.resolve(user)
    await resolver.resolve(user)

    assert store.reads == 2
