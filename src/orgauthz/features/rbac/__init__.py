"""RBAC feature: assignment storage, resolution, decisions, and the SQL mirror."""

from .decision import AuthorizationContext, AuthorizationEngine, AuthorizationResult
from .guard import AssignmentGuard
from .mirror import StoragePolicyMirror
from .repository import RoleAssignmentRecord, RoleAssignmentStore, SqlRoleAssignmentStore
from .resolver import EffectiveRoleSet, RoleResolver
from .service import CatalogSyncResult, RbacService

__all__ = [
    "AssignmentGuard",
    "AuthorizationContext",
    "AuthorizationEngine",
    "AuthorizationResult",
    "CatalogSyncResult",
    "EffectiveRoleSet",
    "RbacService",
    "RoleAssignmentRecord",
    "RoleAssignmentStore",
    "RoleResolver",
    "SqlRoleAssignmentStore",
    "StoragePolicyMirror",
]
