"""Assignment ceiling: who may grant or revoke which role."""

from __future__ import annotations

import logging
from uuid import UUID

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import InsufficientPrivilegeError
from orgauthz.core.rbac.hierarchy import HierarchyModel

from .resolver import RoleResolver

logger = logging.getLogger(__name__)


class AssignmentGuard:
    """Holders of the global super role may assign anything.

    Everyone else may only assign roles strictly weaker than the strongest role
    they hold in the same context. Revocation follows the same rule.
    """

    def __init__(self, hierarchy: HierarchyModel, resolver: RoleResolver) -> None:
        self._hierarchy = hierarchy
        self._resolver = resolver

    async def can_assign(
        self,
        assigner_id: UUID | None,
        organization_id: UUID | None,
        target_role: str,
    ) -> bool:
        target_level = self._hierarchy.level_of(target_role)
        if assigner_id is None:
            return False

        effective = await self._resolver.resolve(assigner_id, organization_id)
        super_role = self._hierarchy.super_role
        if super_role is not None and super_role in effective.global_roles:
            return True

        best = self._hierarchy.best_level(role for role in effective.roles if role in self._hierarchy)
        return best is not None and best < target_level

    async def ensure_can_assign(
        self,
        assigner_id: UUID | None,
        organization_id: UUID | None,
        target_role: str,
    ) -> None:
        await self._ensure(assigner_id, organization_id, target_role, action="assign")

    async def ensure_can_revoke(
        self,
        revoker_id: UUID | None,
        organization_id: UUID | None,
        target_role: str,
    ) -> None:
        await self._ensure(revoker_id, organization_id, target_role, action="revoke")

    async def _ensure(
        self,
        actor_id: UUID | None,
        organization_id: UUID | None,
        target_role: str,
        *,
        action: str,
    ) -> None:
        if await self.can_assign(actor_id, organization_id, target_role):
            return
        logger.warning(
            f"rbac.{action}.denied",
            extra=log_context(user_id=actor_id, organization_id=organization_id, role=target_role),
        )
        raise InsufficientPrivilegeError(
            assigner_id=actor_id,
            role=target_role,
            organization_id=organization_id,
            action=action,
        )


__all__ = ["AssignmentGuard"]
