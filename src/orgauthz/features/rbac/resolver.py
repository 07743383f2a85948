"""Resolve the effective role set of a user in an organization context."""

from __future__ import annotations

import logging
from collections.abc import Iterator, MutableMapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import ResolutionError

from .repository import RoleAssignmentStore, SqlRoleAssignmentStore

logger = logging.getLogger(__name__)

CACHE_KEY = "orgauthz.rbac.effective_roles"


@dataclass(frozen=True)
class EffectiveRoleSet:
    """Roles a user holds in one context, split by where they were granted."""

    user_id: UUID
    organization_id: UUID | None
    global_roles: frozenset[str] = field(default_factory=frozenset)
    organization_roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def roles(self) -> frozenset[str]:
        return self.global_roles | self.organization_roles

    def __contains__(self, role: object) -> bool:
        return role in self.global_roles or role in self.organization_roles

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.roles))

    def __len__(self) -> int:
        return len(self.roles)


def session_cache(session: AsyncSession) -> MutableMapping[Any, EffectiveRoleSet]:
    """Return the resolver cache bound to ``session`` (one session per request)."""
    return session.info.setdefault(CACHE_KEY, {})


def clear_session_cache(session: AsyncSession) -> None:
    # Clear in place; resolvers hold a reference to the same mapping.
    cache = session.info.get(CACHE_KEY)
    if cache is not None:
        cache.clear()


class RoleResolver:
    """Look up assignments and partition them into global and organization roles."""

    def __init__(
        self,
        store: RoleAssignmentStore,
        *,
        cache: MutableMapping[Any, EffectiveRoleSet] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache

    @classmethod
    def for_session(cls, session: AsyncSession, *, cache_enabled: bool = True) -> RoleResolver:
        return cls(
            SqlRoleAssignmentStore(session),
            cache=session_cache(session) if cache_enabled else None,
        )

    @property
    def store(self) -> RoleAssignmentStore:
        return self._store

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    async def resolve(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> EffectiveRoleSet:
        """Return the effective roles of ``user_id``.

        Without an organization only global assignments count; with one, global
        assignments plus that organization's assignments.
        """
        key = (user_id, organization_id)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        try:
            records = await self._store.find_assignments(user_id, organization_id)
        except ResolutionError:
            logger.warning(
                "rbac.resolve.failed",
                extra=log_context(user_id=user_id, organization_id=organization_id),
            )
            raise

        global_roles: set[str] = set()
        organization_roles: set[str] = set()
        for record in records:
            if record.user_id != user_id:
                continue
            if record.organization_id is None:
                global_roles.add(record.role_name)
            elif organization_id is not None and record.organization_id == organization_id:
                organization_roles.add(record.role_name)

        effective = EffectiveRoleSet(
            user_id=user_id,
            organization_id=organization_id,
            global_roles=frozenset(global_roles),
            organization_roles=frozenset(organization_roles),
        )
        if self._cache is not None:
            self._cache[key] = effective

        logger.debug(
            "rbac.resolve.success",
            extra=log_context(
                user_id=user_id,
                organization_id=organization_id,
                roles=effective.roles,
            ),
        )
        return effective


__all__ = [
    "CACHE_KEY",
    "EffectiveRoleSet",
    "RoleResolver",
    "clear_session_cache",
    "session_cache",
]
