from __future__ import annotations

import json
from pathlib import Path

import pytest

from orgauthz.core.rbac.errors import RoleCatalogError
from orgauthz.core.rbac.registry import (
    DEFAULT_CATALOG,
    PERMISSIONS,
    catalog_from_mapping,
    load_catalog,
)
from orgauthz.core.rbac.types import RoleScope


def test_default_catalog_is_valid() -> None:
    DEFAULT_CATALOG.validate()
    admin = next(role for role in DEFAULT_CATALOG.roles if role.name == "admin")
    assert set(admin.permissions) == {
        "organizations:create",
        "organizations:read",
        "organizations:update",
        "organizations:delete",
    }


def test_permission_keys_split_into_resource_and_action() -> None:
    read = next(p for p in PERMISSIONS if p.key == "users:read")
    assert (read.resource, read.action) == ("users", "read")


def test_load_catalog_without_path_returns_default() -> None:
    assert load_catalog(None) is DEFAULT_CATALOG


def test_load_catalog_from_json(tmp_path: Path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            {
                "roles": [
                    {"name": "root", "hierarchy_level": 0, "scope": "global"},
                    {
                        "name": "auditor",
                        "hierarchy_level": 50,
                        "permissions": ["reports:read", "reports:read"],
                    },
                ],
                "permissions": [{"key": "reports:read", "description": "Read reports"}],
            }
        ),
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert [role.name for role in catalog.roles] == ["root", "auditor"]
    assert catalog.roles[0].scope is RoleScope.GLOBAL
    assert catalog.roles[1].scope is RoleScope.ORGANIZATION
    assert catalog.roles[1].permissions == ("reports:read",)
    assert catalog.permission_keys == frozenset({"reports:read"})


def test_unknown_permission_reference_is_rejected() -> None:
    with pytest.raises(RoleCatalogError, match="unknown permissions"):
        catalog_from_mapping(
            {"roles": [{"name": "auditor", "hierarchy_level": 50, "permissions": ["reports:read"]}]}
        )


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"roles": []},
        {"roles": [{"hierarchy_level": 1}]},
        {"roles": [{"name": "x", "hierarchy_level": "high"}]},
        {"roles": [{"name": "x", "hierarchy_level": 1, "scope": "planet"}]},
        {"roles": [{"name": "x", "hierarchy_level": 1}], "permissions": [{"key": "nocolon"}]},
    ],
)
def test_malformed_catalogs_are_rejected(payload: dict) -> None:
    with pytest.raises(RoleCatalogError):
        catalog_from_mapping(payload)


def test_unreadable_catalog_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RoleCatalogError):
        load_catalog(path)
