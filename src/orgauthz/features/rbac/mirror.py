"""Evaluate the authorization predicates inside the database.

On PostgreSQL the ``orgauthz_*`` functions installed by the migrations are
called; elsewhere the same SQL bodies run inline. Results must match
:class:`AuthorizationEngine` and :class:`AssignmentGuard` for the same data.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.db import policy_sql
from orgauthz.db.policy_sql import PolicyFunction
from orgauthz.models import Role


class StoragePolicyMirror:
    def __init__(self, session: AsyncSession, *, use_functions: bool | None = None) -> None:
        self._session = session
        if use_functions is None:
            use_functions = session.get_bind().dialect.name == "postgresql"
        self._use_functions = use_functions

    async def _scalar(self, function: PolicyFunction, **params: Any) -> Any:
        statement = function.call() if self._use_functions else function.inline()
        result = await self._session.execute(statement, params)
        return result.scalar_one_or_none()

    async def _flag(self, function: PolicyFunction, **params: Any) -> bool:
        return bool(await self._scalar(function, **params))

    async def is_global_super_admin(self, user_id: UUID | None) -> bool:
        return await self._flag(policy_sql.is_global_super_admin, user_id=user_id)

    async def user_has_role(
        self,
        user_id: UUID | None,
        role_name: str,
        organization_id: UUID | None = None,
    ) -> bool:
        return await self._flag(
            policy_sql.user_has_role,
            user_id=user_id,
            role_name=role_name,
            organization_id=organization_id,
        )

    async def best_hierarchy_level(
        self,
        user_id: UUID | None,
        organization_id: UUID | None = None,
    ) -> int | None:
        value = await self._scalar(
            policy_sql.best_hierarchy_level,
            user_id=user_id,
            organization_id=organization_id,
        )
        return None if value is None else int(value)

    async def user_meets_role(
        self,
        user_id: UUID | None,
        role_name: str,
        organization_id: UUID | None = None,
    ) -> bool:
        return await self._flag(
            policy_sql.user_meets_role,
            user_id=user_id,
            role_name=role_name,
            organization_id=organization_id,
        )

    async def user_has_permission(
        self,
        user_id: UUID | None,
        permission_key: str,
        organization_id: UUID | None = None,
    ) -> bool:
        return await self._flag(
            policy_sql.user_has_permission,
            user_id=user_id,
            permission_key=permission_key,
            organization_id=organization_id,
        )

    async def can_assign_role(
        self,
        assigner_id: UUID | None,
        role_name: str,
        organization_id: UUID | None = None,
    ) -> bool:
        return await self._flag(
            policy_sql.can_assign_role,
            user_id=assigner_id,
            role_name=role_name,
            organization_id=organization_id,
        )

    async def user_roles(
        self,
        user_id: UUID | None,
        organization_id: UUID | None = None,
    ) -> list[str]:
        """Role names the user holds in context, most privileged first."""
        function = policy_sql.user_roles
        statement = function.call() if self._use_functions else function.inline()
        result = await self._session.execute(
            statement, {"user_id": user_id, "organization_id": organization_id}
        )
        return list(result.scalars().all())

    async def bind_caller(self, caller_id: UUID | None) -> None:
        """Set the user the row policies evaluate as, for the current transaction.

        Only meaningful on PostgreSQL; inline evaluation has no row policies.
        """
        if not self._use_functions:
            return
        await self._session.execute(
            policy_sql.bind_caller(),
            {"caller_id": str(caller_id) if caller_id else None},
        )

    async def authorize(
        self,
        caller_id: UUID | None,
        organization_id: UUID | None,
        required_roles: Iterable[str],
    ) -> bool:
        """Storage-side counterpart of ``AuthorizationEngine.check(...).allowed``."""
        required = sorted(set(required_roles))
        if not required:
            return True
        # An unregistered required role denies the whole requirement.
        known = await self._session.execute(
            select(func.count()).select_from(Role).where(Role.name.in_(required))
        )
        if known.scalar_one() != len(required):
            return False
        for role_name in required:
            if await self.user_meets_role(caller_id, role_name, organization_id):
                return True
        return False


__all__ = ["StoragePolicyMirror"]
