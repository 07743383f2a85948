"""FastAPI dependencies that gate requests on the authorization engine.

The caller identity is established upstream (session or token middleware) and
stored on ``request.state.caller_id``; this module never authenticates.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgauthz.core.rbac.errors import AccessDeniedError
from orgauthz.core.rbac.operations import OperationRegistry, default_registry
from orgauthz.db.database import get_db_session
from orgauthz.features.rbac.decision import AuthorizationContext, AuthorizationResult
from orgauthz.features.rbac.service import RbacService
from orgauthz.settings import Settings, get_settings

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]

GateDependency = Callable[..., Awaitable[AuthorizationResult]]


def _app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_caller_id(request: Request) -> UUID | None:
    """Return the verified caller, or ``None`` when unauthenticated."""

    candidate = getattr(request.state, "caller_id", None)
    if candidate is None or isinstance(candidate, UUID):
        return candidate
    try:
        return UUID(str(candidate))
    except ValueError:
        return None


def get_organization_id(request: Request) -> UUID | None:
    """Return the organization context from the configured header.

    A missing header means "no organization"; a malformed one is a denial.
    """

    header = _app_settings(request).organization_header
    raw = (request.headers.get(header) or "").strip()
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        raise AccessDeniedError(reason="malformed_organization") from None


CallerDep = Annotated[UUID | None, Depends(get_caller_id)]
OrganizationDep = Annotated[UUID | None, Depends(get_organization_id)]


def get_rbac_service(request: Request, session: SessionDep) -> RbacService:
    settings = _app_settings(request)
    return RbacService(
        session=session,
        hierarchy=getattr(request.app.state, "rbac_hierarchy", None),
        cache_enabled=settings.resolver_cache_enabled,
    )


RbacServiceDep = Annotated[RbacService, Depends(get_rbac_service)]


def require_roles(*roles: str, operation_id: str | None = None) -> GateDependency:
    """Return a dependency that denies unless the caller satisfies one of ``roles``."""

    required = frozenset(roles)

    async def dependency(
        caller_id: CallerDep,
        organization_id: OrganizationDep,
        rbac: RbacServiceDep,
    ) -> AuthorizationResult:
        context = AuthorizationContext(
            caller_id=caller_id,
            organization_id=organization_id,
            required_roles=required,
            operation_id=operation_id,
        )
        return await rbac.engine.require(context)

    return dependency


def require_operation(
    operation_id: str,
    *,
    registry: OperationRegistry | None = None,
) -> GateDependency:
    """Gate on the requirement registered for ``operation_id``.

    The lookup happens when the route is declared, so an unregistered operation
    fails at import time rather than on the first request.
    """

    roles = (registry or default_registry()).required_roles(operation_id)
    return require_roles(*roles, operation_id=operation_id)


__all__ = [
    "CallerDep",
    "OrganizationDep",
    "RbacServiceDep",
    "SessionDep",
    "get_caller_id",
    "get_organization_id",
    "get_rbac_service",
    "require_operation",
    "require_roles",
]
