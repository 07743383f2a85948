from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from orgauthz.common.schema import BaseSchema
from orgauthz.core.rbac.types import RoleScope


class RoleOut(BaseSchema):
    """API representation of a role."""

    name: str
    hierarchy_level: int
    scope: RoleScope
    description: str
    permissions: list[str]
    is_system: bool


class RoleAssignmentIn(BaseSchema):
    """Grant or revoke payload; the organization comes from the request context."""

    user_id: UUID
    role: str = Field(min_length=1, max_length=100)


class RoleAssignmentOut(BaseSchema):
    id: UUID
    user_id: UUID
    role: str
    organization_id: UUID | None
    scope: RoleScope
    assigned_by: UUID | None = None
    created_at: datetime | None = None


class EffectiveRolesOut(BaseSchema):
    user_id: UUID
    organization_id: UUID | None
    global_roles: list[str]
    organization_roles: list[str]


__all__ = ["EffectiveRolesOut", "RoleAssignmentIn", "RoleAssignmentOut", "RoleOut"]
