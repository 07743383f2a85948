from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import (
    AssignmentNotFoundError,
    AssignmentWriteError,
    DuplicateAssignmentError,
    ResolutionError,
    RoleCatalogError,
    ScopeMismatchError,
    UnknownPermissionError,
)
from orgauthz.core.rbac.hierarchy import HierarchyModel
from orgauthz.core.rbac.registry import DEFAULT_CATALOG, RoleCatalog
from orgauthz.core.rbac.types import RoleDefinition, RoleScope
from orgauthz.models import Permission, Role, RolePermission

from .decision import AuthorizationEngine
from .guard import AssignmentGuard
from .repository import STORAGE_ERRORS, RoleAssignmentRecord, SqlRoleAssignmentStore
from .resolver import EffectiveRoleSet, RoleResolver, clear_session_cache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSyncResult:
    roles: int
    permissions: int
    removed_permissions: int


class RbacService:
    """RBAC operations: catalog sync, assignments, and evaluation."""

    def __init__(
        self,
        *,
        session: AsyncSession,
        catalog: RoleCatalog | None = None,
        hierarchy: HierarchyModel | None = None,
        cache_enabled: bool = True,
    ) -> None:
        self._session = session
        self._catalog = catalog or DEFAULT_CATALOG
        self._hierarchy = hierarchy
        self._store = SqlRoleAssignmentStore(session)
        self._resolver = RoleResolver.for_session(session, cache_enabled=cache_enabled)

    # ------------- collaborators -----------------

    @property
    def hierarchy(self) -> HierarchyModel:
        if self._hierarchy is None:
            self._hierarchy = HierarchyModel(self._catalog.roles)
        return self._hierarchy

    @property
    def store(self) -> SqlRoleAssignmentStore:
        return self._store

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver

    @property
    def engine(self) -> AuthorizationEngine:
        return AuthorizationEngine(self.hierarchy, self._resolver)

    @property
    def guard(self) -> AssignmentGuard:
        return AssignmentGuard(self.hierarchy, self._resolver)

    def _invalidate(self) -> None:
        self._resolver.clear_cache()
        clear_session_cache(self._session)

    # ------------- catalog sync ------------------

    async def _sync_permissions(self) -> int:
        result = await self._session.execute(select(Permission))
        existing = {permission.key: permission for permission in result.scalars().all()}
        desired = {definition.key for definition in self._catalog.permissions}

        for definition in self._catalog.permissions:
            current = existing.get(definition.key)
            if current is None:
                self._session.add(
                    Permission(
                        key=definition.key,
                        resource=definition.resource,
                        action=definition.action,
                        description=definition.description,
                    )
                )
                continue
            current.resource = definition.resource
            current.action = definition.action
            current.description = definition.description

        stale = set(existing) - desired
        if stale:
            await self._session.execute(
                delete(RolePermission).where(
                    RolePermission.permission_id.in_([existing[key].id for key in stale])
                )
            )
            await self._session.execute(delete(Permission).where(Permission.key.in_(tuple(stale))))

        await self._session.flush()
        return len(stale)

    async def _sync_role_permissions(
        self,
        *,
        role: Role,
        permission_keys: Sequence[str],
        permission_map: dict[str, UUID],
    ) -> None:
        result = await self._session.execute(
            select(RolePermission).where(RolePermission.role_id == role.id)
        )
        current = {rp.permission.key: rp for rp in result.unique().scalars().all() if rp.permission}
        desired = set(permission_keys)

        additions = desired - set(current)
        removals = set(current) - desired

        if additions:
            self._session.add_all(
                [RolePermission(role_id=role.id, permission_id=permission_map[key]) for key in additions]
            )
        if removals:
            await self._session.execute(
                delete(RolePermission).where(
                    RolePermission.role_id == role.id,
                    RolePermission.permission_id.in_([current[key].permission_id for key in removals]),
                )
            )
        await self._session.flush()

    async def sync_catalog(self) -> CatalogSyncResult:
        """Upsert the role and permission catalog into storage.

        Roles present in storage but not in the catalog are left untouched so
        deployment-specific roles survive a resync.
        """

        logger.debug("rbac.catalog.sync.start", extra={"roles": len(self._catalog.roles)})
        self._catalog.validate()
        HierarchyModel(self._catalog.roles)

        removed = await self._sync_permissions()
        result = await self._session.execute(select(Permission.key, Permission.id))
        permission_map = {key: permission_id for key, permission_id in result.all()}

        existing = {role.name: role for role in (await self._session.execute(select(Role))).scalars()}
        for definition in self._catalog.roles:
            role = existing.get(definition.name)
            if role is None:
                role = Role(name=definition.name, hierarchy_level=definition.hierarchy_level)
                self._session.add(role)
            role.hierarchy_level = definition.hierarchy_level
            role.scope = definition.scope
            role.description = definition.description or None
            role.is_system = definition.is_system
            await self._session.flush([role])
            await self._sync_role_permissions(
                role=role,
                permission_keys=definition.permissions,
                permission_map=permission_map,
            )

        self._invalidate()
        outcome = CatalogSyncResult(
            roles=len(self._catalog.roles),
            permissions=len(self._catalog.permissions),
            removed_permissions=removed,
        )
        logger.info(
            "rbac.catalog.sync.success",
            extra={"roles": outcome.roles, "permissions": outcome.permissions, "removed": removed},
        )
        return outcome

    async def list_roles(self) -> list[RoleDefinition]:
        stmt = (
            select(Role)
            .options(selectinload(Role.permissions))
            .order_by(Role.hierarchy_level)
            .execution_options(populate_existing=True)
        )
        roles = (await self._session.execute(stmt)).unique().scalars().all()
        return [
            RoleDefinition(
                name=role.name,
                hierarchy_level=role.hierarchy_level,
                scope=role.scope,
                description=role.description or "",
                permissions=tuple(sorted(rp.permission.key for rp in role.permissions)),
                is_system=role.is_system,
            )
            for role in roles
        ]

    async def load_hierarchy(self) -> HierarchyModel:
        """Rebuild the hierarchy from the ``roles`` table and use it from now on."""
        definitions = await self.list_roles()
        if not definitions:
            raise RoleCatalogError("No roles are stored; run the catalog sync first")
        self._hierarchy = HierarchyModel(definitions)
        return self._hierarchy

    # ------------- assignments -------------------

    def _check_scope(self, role_name: str, organization_id: UUID | None) -> None:
        definition = self.hierarchy.definition(role_name)
        if definition.scope is RoleScope.GLOBAL and organization_id is not None:
            raise ScopeMismatchError(f"Role '{role_name}' is global and cannot be granted in an organization")
        if definition.scope is RoleScope.ORGANIZATION and organization_id is None:
            raise ScopeMismatchError(f"Role '{role_name}' requires an organization")

    async def grant_role(
        self,
        *,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None = None,
        actor_id: UUID | None = None,
        bypass_guard: bool = False,
    ) -> RoleAssignmentRecord:
        """Grant ``role_name``; granting an identical assignment again is a no-op.

        ``bypass_guard`` is for bootstrap tooling that runs without an actor.
        If a competing writer makes the insert fail, the session's transaction
        is rolled back and the grant is attempted once more against fresh
        state, so two concurrent identical grants both end with the one row.
        """

        self._check_scope(role_name, organization_id)
        if not bypass_guard:
            await self.guard.ensure_can_assign(actor_id, organization_id, role_name)

        context = log_context(
            user_id=user_id,
            organization_id=organization_id,
            role=role_name,
            actor_id=str(actor_id) if actor_id else None,
        )
        try:
            return await self._store_assignment(user_id, role_name, organization_id, actor_id, context)
        except AssignmentWriteError:
            logger.info("rbac.assign.retry", extra=context)
            await self._session.rollback()
            self._invalidate()
            return await self._store_assignment(user_id, role_name, organization_id, actor_id, context)

    async def _store_assignment(
        self,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None,
        actor_id: UUID | None,
        context: dict[str, Any],
    ) -> RoleAssignmentRecord:
        existing = await self._store.get_assignment(user_id, role_name, organization_id)
        if existing is not None:
            logger.info("rbac.assign.exists", extra=context)
            return existing

        try:
            record = await self._store.create_assignment(
                user_id,
                role_name,
                organization_id,
                assigned_by=actor_id,
            )
        except DuplicateAssignmentError:
            record = await self._store.get_assignment(user_id, role_name, organization_id)
            if record is None:
                raise
            logger.info("rbac.assign.exists", extra=context)
            return record

        self._invalidate()
        logger.info("rbac.assign.success", extra=context)
        return record

    async def revoke_role(
        self,
        *,
        user_id: UUID,
        role_name: str,
        organization_id: UUID | None = None,
        actor_id: UUID | None = None,
        bypass_guard: bool = False,
    ) -> None:
        self.hierarchy.definition(role_name)
        if not bypass_guard:
            await self.guard.ensure_can_revoke(actor_id, organization_id, role_name)

        deleted = await self._store.delete_assignment(user_id, role_name, organization_id)
        if not deleted:
            raise AssignmentNotFoundError("Role assignment not found")

        self._invalidate()
        logger.info(
            "rbac.revoke.success",
            extra=log_context(
                user_id=user_id,
                organization_id=organization_id,
                role=role_name,
                actor_id=str(actor_id) if actor_id else None,
            ),
        )

    async def list_assignments(
        self,
        *,
        organization_id: UUID | None = None,
        user_id: UUID | None = None,
    ) -> list[RoleAssignmentRecord]:
        return await self._store.list_assignments(organization_id=organization_id, user_id=user_id)

    # ------------- evaluation --------------------

    async def effective_roles(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> EffectiveRoleSet:
        return await self._resolver.resolve(user_id, organization_id)

    def _is_super(self, effective: EffectiveRoleSet) -> bool:
        super_role = self.hierarchy.super_role
        return super_role is not None and super_role in effective.global_roles

    async def _read_keys(self, stmt: Select[Any]) -> frozenset[Any]:
        """Run a permission lookup; storage failures deny like assignment reads do."""

        try:
            result = await self._session.execute(stmt)
            return frozenset(result.scalars().all())
        except STORAGE_ERRORS as exc:
            logger.warning("rbac.permissions.read_failed", extra=log_context(error=str(exc)))
            raise ResolutionError("Unable to read permissions") from exc

    async def _permission_keys_for_roles(self, roles: Iterable[str]) -> frozenset[str]:
        names = tuple(roles)
        if not names:
            return frozenset()
        return await self._read_keys(
            select(Permission.key)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(Role.name.in_(names))
        )

    async def effective_permissions(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> frozenset[str]:
        effective = await self._resolver.resolve(user_id, organization_id)
        if self._is_super(effective):
            return await self._read_keys(select(Permission.key))
        return await self._permission_keys_for_roles(effective.roles)

    async def has_permission(
        self,
        user_id: UUID,
        permission_key: str,
        organization_id: UUID | None = None,
    ) -> bool:
        key = permission_key.strip()
        if not await self._read_keys(select(Permission.id).where(Permission.key == key).limit(1)):
            raise UnknownPermissionError(key)

        effective = await self._resolver.resolve(user_id, organization_id)
        if self._is_super(effective):
            return True
        return key in await self._permission_keys_for_roles(effective.roles)


__all__ = ["CatalogSyncResult", "RbacService"]
