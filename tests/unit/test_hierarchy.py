from __future__ import annotations

import pytest

from orgauthz.core.rbac.errors import RoleCatalogError, UnknownRoleError
from orgauthz.core.rbac.hierarchy import HierarchyModel
from orgauthz.core.rbac.types import RoleDefinition, RoleScope


@pytest.fixture()
def hierarchy() -> HierarchyModel:
    return HierarchyModel.default()


def test_default_hierarchy_orders_roles_by_level(hierarchy: HierarchyModel) -> None:
    assert [role.name for role in hierarchy] == ["super_admin", "admin", "gestor", "colaborador"]
    assert len(hierarchy) == 4
    assert hierarchy.super_role == "super_admin"


def test_lower_level_satisfies_higher_level(hierarchy: HierarchyModel) -> None:
    assert hierarchy.satisfies("admin", "gestor")
    assert hierarchy.satisfies("gestor", "gestor")
    assert not hierarchy.satisfies("colaborador", "gestor")
    assert hierarchy.satisfies("super_admin", "colaborador")


def test_best_level_picks_most_privileged(hierarchy: HierarchyModel) -> None:
    assert hierarchy.best_level(["colaborador", "gestor"]) == 200
    assert hierarchy.best_level([]) is None


def test_roles_at_or_above(hierarchy: HierarchyModel) -> None:
    assert hierarchy.roles_at_or_above("gestor") == ("super_admin", "admin", "gestor")


def test_unknown_role_lookups_raise(hierarchy: HierarchyModel) -> None:
    with pytest.raises(UnknownRoleError) as excinfo:
        hierarchy.level_of("owner")
    assert excinfo.value.role == "owner"

    with pytest.raises(UnknownRoleError):
        hierarchy.satisfies("admin", "owner")

    with pytest.raises(UnknownRoleError):
        hierarchy.validate_roles({"admin", "owner"})


def test_validate_roles_returns_frozenset(hierarchy: HierarchyModel) -> None:
    assert hierarchy.validate_roles(["admin", "admin", "gestor"]) == frozenset({"admin", "gestor"})


def test_duplicate_levels_are_rejected() -> None:
    with pytest.raises(RoleCatalogError):
        HierarchyModel(
            [
                RoleDefinition(name="a", hierarchy_level=10),
                RoleDefinition(name="b", hierarchy_level=10),
            ]
        )


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(RoleCatalogError):
        HierarchyModel(
            [
                RoleDefinition(name="a", hierarchy_level=10),
                RoleDefinition(name="a", hierarchy_level=20),
            ]
        )


def test_empty_hierarchy_is_rejected() -> None:
    with pytest.raises(RoleCatalogError):
        HierarchyModel([])


def test_organization_scoped_top_role_is_not_a_super_role() -> None:
    hierarchy = HierarchyModel(
        [
            RoleDefinition(name="owner", hierarchy_level=0, scope=RoleScope.ORGANIZATION),
            RoleDefinition(name="member", hierarchy_level=10),
        ]
    )

    assert hierarchy.super_role is None
    assert not hierarchy.is_super_role("owner")


def test_custom_roles_slot_into_the_hierarchy() -> None:
    definitions = [*HierarchyModel.default(), RoleDefinition(name="auditor", hierarchy_level=250)]
    hierarchy = HierarchyModel(definitions)

    assert hierarchy.satisfies("gestor", "auditor")
    assert not hierarchy.satisfies("auditor", "gestor")
    assert hierarchy.satisfies("auditor", "colaborador")
