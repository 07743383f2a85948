"""Pure RBAC building blocks: role hierarchy, catalog, operations, errors."""

from .errors import (
    AccessDeniedError,
    AssignmentNotFoundError,
    DuplicateAssignmentError,
    InsufficientPrivilegeError,
    RbacError,
    ResolutionError,
    RoleCatalogError,
    ScopeMismatchError,
    UnknownOperationError,
    UnknownPermissionError,
    UnknownRoleError,
)
from .hierarchy import HierarchyModel
from .operations import DEFAULT_OPERATIONS, OperationRegistry
from .types import Decision, DecisionReason, PermissionDef, RoleDefinition, RoleScope

__all__ = [
    "AccessDeniedError",
    "AssignmentNotFoundError",
    "DEFAULT_OPERATIONS",
    "Decision",
    "DecisionReason",
    "DuplicateAssignmentError",
    "HierarchyModel",
    "InsufficientPrivilegeError",
    "OperationRegistry",
    "PermissionDef",
    "RbacError",
    "ResolutionError",
    "RoleCatalogError",
    "RoleDefinition",
    "RoleScope",
    "ScopeMismatchError",
    "UnknownOperationError",
    "UnknownPermissionError",
    "UnknownRoleError",
]
