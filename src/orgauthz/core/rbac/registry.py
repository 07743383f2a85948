"""Canonical role and permission catalog.

The hierarchy is data-driven: these constants are the seed a fresh deployment
starts from, and :func:`load_catalog` can replace them with a JSON document so
organization-specific roles can be added without code changes.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import RoleCatalogError
from .types import PermissionDef, RoleDefinition, RoleScope


def _permission(*, key: str, description: str) -> PermissionDef:
    resource, _, action = key.partition(":")
    if not resource or not action:
        raise RoleCatalogError(f"Permission key '{key}' must look like 'resource:action'")
    return PermissionDef(key=key, resource=resource, action=action, description=description)


PERMISSIONS: tuple[PermissionDef, ...] = (
    _permission(key="organizations:create", description="Create new organizations"),
    _permission(key="organizations:read", description="View organizations"),
    _permission(key="organizations:update", description="Update organizations"),
    _permission(key="organizations:delete", description="Delete organizations"),
    _permission(key="users:create", description="Create new users"),
    _permission(key="users:read", description="View users"),
    _permission(key="users:update", description="Update users"),
    _permission(key="users:delete", description="Delete users"),
)

_ORGANIZATION_PERMISSIONS = tuple(p.key for p in PERMISSIONS if p.resource == "organizations")

SYSTEM_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        name="super_admin",
        hierarchy_level=0,
        scope=RoleScope.GLOBAL,
        description="Super Administrator with global access",
    ),
    RoleDefinition(
        name="admin",
        hierarchy_level=100,
        description="Organization Administrator",
        permissions=_ORGANIZATION_PERMISSIONS,
    ),
    RoleDefinition(
        name="gestor",
        hierarchy_level=200,
        description="Organization Manager",
        permissions=("organizations:read", "organizations:update"),
    ),
    RoleDefinition(
        name="colaborador",
        hierarchy_level=300,
        description="Organization Collaborator",
        permissions=("organizations:read",),
    ),
)


@dataclass(frozen=True)
class RoleCatalog:
    """Roles plus the permission keys they reference."""

    roles: tuple[RoleDefinition, ...]
    permissions: tuple[PermissionDef, ...]

    @property
    def permission_keys(self) -> frozenset[str]:
        return frozenset(p.key for p in self.permissions)

    def validate(self) -> None:
        known = self.permission_keys
        if len(known) != len(self.permissions):
            raise RoleCatalogError("Permission keys must be unique")
        for role in self.roles:
            missing = sorted(set(role.permissions) - known)
            if missing:
                raise RoleCatalogError(
                    f"Role '{role.name}' references unknown permissions: {', '.join(missing)}"
                )


DEFAULT_CATALOG = RoleCatalog(roles=SYSTEM_ROLES, permissions=PERMISSIONS)


def _role_from_mapping(item: Mapping[str, Any]) -> RoleDefinition:
    try:
        name = str(item["name"]).strip()
        level = item["hierarchy_level"]
    except KeyError as exc:
        raise RoleCatalogError(f"Role entry is missing '{exc.args[0]}'") from exc
    if not name:
        raise RoleCatalogError("Role name is required")
    if isinstance(level, bool) or not isinstance(level, int):
        raise RoleCatalogError(f"Role '{name}' hierarchy_level must be an integer")
    try:
        scope = RoleScope(item.get("scope", RoleScope.ORGANIZATION.value))
    except ValueError as exc:
        raise RoleCatalogError(f"Role '{name}' has an invalid scope") from exc
    permissions: Sequence[str] = item.get("permissions", ())
    return RoleDefinition(
        name=name,
        hierarchy_level=level,
        scope=scope,
        description=str(item.get("description") or ""),
        permissions=tuple(dict.fromkeys(str(key) for key in permissions)),
        is_system=bool(item.get("is_system", True)),
    )


def catalog_from_mapping(payload: Mapping[str, Any]) -> RoleCatalog:
    """Build and validate a catalog from a decoded JSON document.

    Expected shape::

        {
          "roles": [{"name": "admin", "hierarchy_level": 100, "scope": "organization",
                     "permissions": ["organizations:read"]}],
          "permissions": [{"key": "organizations:read", "description": "..."}]
        }

    ``permissions`` is optional and defaults to the built-in permission set.
    """

    roles_payload = payload.get("roles")
    if not isinstance(roles_payload, list) or not roles_payload:
        raise RoleCatalogError("Catalog must define a non-empty 'roles' list")

    permissions_payload = payload.get("permissions")
    if permissions_payload is None:
        permissions = PERMISSIONS
    else:
        permissions = tuple(
            _permission(
                key=str(item.get("key") or ""),
                description=str(item.get("description") or ""),
            )
            for item in permissions_payload
        )

    catalog = RoleCatalog(
        roles=tuple(_role_from_mapping(item) for item in roles_payload),
        permissions=permissions,
    )
    catalog.validate()
    return catalog


def load_catalog(path: Path | None) -> RoleCatalog:
    """Return the catalog stored at ``path`` or the built-in default."""

    if path is None:
        return DEFAULT_CATALOG
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RoleCatalogError(f"Unable to read role catalog at {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RoleCatalogError("Role catalog must be a JSON object")
    return catalog_from_mapping(payload)


__all__ = [
    "DEFAULT_CATALOG",
    "PERMISSIONS",
    "RoleCatalog",
    "SYSTEM_ROLES",
    "catalog_from_mapping",
    "load_catalog",
]
