from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from orgauthz.api.dependencies import (
    CallerDep,
    OrganizationDep,
    RbacServiceDep,
    require_operation,
)
from orgauthz.core.rbac.errors import AccessDeniedError
from orgauthz.features.rbac.decision import AuthorizationResult

from .repository import RoleAssignmentRecord
from .schemas import EffectiveRolesOut, RoleAssignmentIn, RoleAssignmentOut, RoleOut

router = APIRouter(prefix="/rbac", tags=["rbac"])


def _serialize_assignment(record: RoleAssignmentRecord) -> RoleAssignmentOut:
    return RoleAssignmentOut(
        id=record.id,
        user_id=record.user_id,
        role=record.role_name,
        organization_id=record.organization_id,
        scope=record.scope,
        assigned_by=record.assigned_by,
        created_at=record.created_at,
    )


@router.get("/roles", response_model=list[RoleOut], summary="List stored roles")
async def list_roles(rbac: RbacServiceDep) -> list[RoleOut]:
    return [RoleOut.model_validate(definition) for definition in await rbac.list_roles()]


@router.get(
    "/me/roles",
    response_model=EffectiveRolesOut,
    summary="Effective roles of the caller in the current organization",
)
async def read_my_roles(
    caller_id: CallerDep,
    organization_id: OrganizationDep,
    rbac: RbacServiceDep,
) -> EffectiveRolesOut:
    if caller_id is None:
        raise AccessDeniedError(reason="no_caller")
    effective = await rbac.effective_roles(caller_id, organization_id)
    return EffectiveRolesOut(
        user_id=caller_id,
        organization_id=organization_id,
        global_roles=sorted(effective.global_roles),
        organization_roles=sorted(effective.organization_roles),
    )


@router.post(
    "/assignments",
    response_model=RoleAssignmentOut,
    status_code=status.HTTP_201_CREATED,
    summary="Grant a role in the current organization",
)
async def assign_role(
    payload: RoleAssignmentIn,
    caller_id: CallerDep,
    organization_id: OrganizationDep,
    rbac: RbacServiceDep,
    _gate: Annotated[AuthorizationResult, Depends(require_operation("roles.assign"))],
) -> RoleAssignmentOut:
    record = await rbac.grant_role(
        user_id=payload.user_id,
        role_name=payload.role,
        organization_id=organization_id,
        actor_id=caller_id,
    )
    return _serialize_assignment(record)


@router.post(
    "/assignments/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Revoke a role in the current organization",
)
async def revoke_role(
    payload: RoleAssignmentIn,
    caller_id: CallerDep,
    organization_id: OrganizationDep,
    rbac: RbacServiceDep,
    _gate: Annotated[AuthorizationResult, Depends(require_operation("roles.revoke"))],
) -> Response:
    await rbac.revoke_role(
        user_id=payload.user_id,
        role_name=payload.role,
        organization_id=organization_id,
        actor_id=caller_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
