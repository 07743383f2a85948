"""Authorization decisions.

``decide`` applies, in order:

1. no required roles: allow;
2. no caller: deny;
3. resolve the caller's effective roles for the organization context;
4. the global super role: allow without organization context;
5. no organization context: deny;
6. allow when any held role satisfies any required role, else deny.

``check`` is the fail-closed wrapper: resolution and unknown-role errors become
a deny. Task cancellation is never turned into a result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from orgauthz.common.logging import log_context
from orgauthz.core.rbac.errors import AccessDeniedError, ResolutionError, UnknownRoleError
from orgauthz.core.rbac.hierarchy import HierarchyModel
from orgauthz.core.rbac.types import Decision, DecisionReason

from .resolver import EffectiveRoleSet, RoleResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationContext:
    caller_id: UUID | None
    organization_id: UUID | None = None
    required_roles: frozenset[str] = field(default_factory=frozenset)
    operation_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_roles", frozenset(self.required_roles))


@dataclass(frozen=True)
class AuthorizationResult:
    decision: Decision
    reason: DecisionReason
    effective_roles: frozenset[str] = field(default_factory=frozenset)
    required_roles: frozenset[str] = field(default_factory=frozenset)
    matched: tuple[str, str] | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class AuthorizationEngine:
    """Pure decision procedure over a hierarchy and a resolver."""

    def __init__(self, hierarchy: HierarchyModel, resolver: RoleResolver) -> None:
        self._hierarchy = hierarchy
        self._resolver = resolver

    @property
    def hierarchy(self) -> HierarchyModel:
        return self._hierarchy

    @property
    def resolver(self) -> RoleResolver:
        return self._resolver

    async def decide(self, context: AuthorizationContext) -> AuthorizationResult:
        """Run the decision procedure; propagates resolution and unknown-role errors."""
        required = context.required_roles
        if not required:
            return self._finish(context, Decision.ALLOW, DecisionReason.NO_REQUIREMENT)
        if context.caller_id is None:
            return self._finish(context, Decision.DENY, DecisionReason.NO_CALLER)

        self._hierarchy.validate_roles(required)
        effective = await self._resolver.resolve(context.caller_id, context.organization_id)
        held = self._known_roles(effective.roles)

        super_role = self._hierarchy.super_role
        if super_role is not None and super_role in effective.global_roles:
            return self._finish(
                context,
                Decision.ALLOW,
                DecisionReason.GLOBAL_BYPASS,
                effective=held,
                matched=(super_role, self._weakest(required)),
            )

        if context.organization_id is None:
            return self._finish(
                context,
                Decision.DENY,
                DecisionReason.MISSING_ORGANIZATION,
                effective=held,
            )

        matched = self._match(held, required)
        if matched is not None:
            return self._finish(
                context,
                Decision.ALLOW,
                DecisionReason.ROLE_SATISFIED,
                effective=held,
                matched=matched,
            )
        return self._finish(context, Decision.DENY, DecisionReason.INSUFFICIENT_ROLE, effective=held)

    async def check(self, context: AuthorizationContext) -> AuthorizationResult:
        """Fail-closed ``decide``."""
        try:
            return await self.decide(context)
        except UnknownRoleError as exc:
            logger.warning(
                "rbac.decide.unknown_role",
                extra=log_context(
                    user_id=context.caller_id,
                    organization_id=context.organization_id,
                    role=exc.role,
                    operation_id=context.operation_id,
                ),
            )
            return self._finish(context, Decision.DENY, DecisionReason.UNKNOWN_ROLE)
        except ResolutionError:
            logger.warning(
                "rbac.decide.resolution_failed",
                extra=log_context(
                    user_id=context.caller_id,
                    organization_id=context.organization_id,
                    operation_id=context.operation_id,
                ),
            )
            return self._finish(context, Decision.DENY, DecisionReason.RESOLUTION_FAILED)

    async def authorize(
        self,
        caller_id: UUID | None,
        organization_id: UUID | None,
        required_roles: Iterable[str],
        *,
        operation_id: str | None = None,
    ) -> AuthorizationResult:
        return await self.check(
            AuthorizationContext(
                caller_id=caller_id,
                organization_id=organization_id,
                required_roles=frozenset(required_roles),
                operation_id=operation_id,
            )
        )

    async def require(self, context: AuthorizationContext) -> AuthorizationResult:
        """Like ``check`` but raise :class:`AccessDeniedError` on deny."""
        result = await self.check(context)
        if not result.allowed:
            raise AccessDeniedError(operation_id=context.operation_id, reason=result.reason.value)
        return result

    async def effective_roles(
        self,
        user_id: UUID,
        organization_id: UUID | None = None,
    ) -> EffectiveRoleSet:
        return await self._resolver.resolve(user_id, organization_id)

    # ------------- helpers -----------------------

    def _known_roles(self, roles: Iterable[str]) -> frozenset[str]:
        # Held roles missing from the hierarchy grant nothing.
        return frozenset(role for role in roles if role in self._hierarchy)

    def _weakest(self, roles: Iterable[str]) -> str:
        return max(roles, key=self._hierarchy.level_of)

    def _match(self, held: frozenset[str], required: frozenset[str]) -> tuple[str, str] | None:
        by_level = self._hierarchy.level_of
        for role in sorted(held, key=by_level):
            for needed in sorted(required, key=by_level):
                if self._hierarchy.satisfies(role, needed):
                    return role, needed
        return None

    def _finish(
        self,
        context: AuthorizationContext,
        decision: Decision,
        reason: DecisionReason,
        *,
        effective: frozenset[str] = frozenset(),
        matched: tuple[str, str] | None = None,
    ) -> AuthorizationResult:
        result = AuthorizationResult(
            decision=decision,
            reason=reason,
            effective_roles=effective,
            required_roles=context.required_roles,
            matched=matched,
        )
        logger.debug(
            f"rbac.decide.{decision.value}",
            extra=log_context(
                user_id=context.caller_id,
                organization_id=context.organization_id,
                operation_id=context.operation_id,
                reason=reason.value,
                required_roles=context.required_roles,
                effective_roles=effective,
            ),
        )
        return result


__all__ = [
    "AuthorizationContext",
    "AuthorizationEngine",
    "AuthorizationResult",
]
