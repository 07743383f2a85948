"""RBAC type definitions used across the stack."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class RoleScope(str, enum.Enum):
    """Where a role assignment is valid."""

    GLOBAL = "global"
    ORGANIZATION = "organization"


class Decision(str, enum.Enum):
    """Outcome of an authorization decision."""

    ALLOW = "allow"
    DENY = "deny"


class DecisionReason(str, enum.Enum):
    """Which step of the decision procedure produced the outcome."""

    NO_REQUIREMENT = "no_requirement"
    NO_CALLER = "no_caller"
    GLOBAL_BYPASS = "global_bypass"
    MISSING_ORGANIZATION = "missing_organization"
    ROLE_SATISFIED = "role_satisfied"
    INSUFFICIENT_ROLE = "insufficient_role"
    RESOLUTION_FAILED = "resolution_failed"
    UNKNOWN_ROLE = "unknown_role"


@dataclass(frozen=True)
class PermissionDef:
    """Static permission definition."""

    key: str
    resource: str
    action: str
    description: str


@dataclass(frozen=True)
class RoleDefinition:
    """Static role definition loaded into the hierarchy and seeded into storage."""

    name: str
    hierarchy_level: int
    scope: RoleScope = RoleScope.ORGANIZATION
    description: str = ""
    permissions: tuple[str, ...] = field(default=())
    is_system: bool = True
