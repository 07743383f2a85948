"""RBAC error taxonomy.

Decision-path errors (:class:`UnknownRoleError`, :class:`ResolutionError`) must
always end in a deny; callers never retry them into an allow.
"""

from __future__ import annotations

from uuid import UUID


class RbacError(Exception):
    """Base class for every authorization engine error."""


class RoleCatalogError(RbacError, ValueError):
    """Raised when a role catalog is malformed (duplicate names or levels)."""


class UnknownRoleError(RbacError, LookupError):
    """Raised when a role name is not registered in the hierarchy."""

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role '{role}' is not registered")


class UnknownPermissionError(RbacError, LookupError):
    """Raised when a permission key is not registered in the catalog."""

    def __init__(self, permission_key: str) -> None:
        self.permission_key = permission_key
        super().__init__(f"Permission '{permission_key}' is not registered")


class UnknownOperationError(RbacError, LookupError):
    """Raised when an operation identifier has no registered requirement."""

    def __init__(self, operation_id: str) -> None:
        self.operation_id = operation_id
        super().__init__(f"Operation '{operation_id}' is not registered")


class ResolutionError(RbacError):
    """Raised when role assignments cannot be read from storage."""


class InsufficientPrivilegeError(RbacError):
    """Raised when an assigner may not grant or revoke the target role."""

    def __init__(
        self,
        *,
        assigner_id: UUID | None,
        role: str,
        organization_id: UUID | None,
        action: str = "assign",
    ) -> None:
        self.assigner_id = assigner_id
        self.role = role
        self.organization_id = organization_id
        self.action = action
        scope = f"organization '{organization_id}'" if organization_id else "global scope"
        super().__init__(f"Not allowed to {action} role '{role}' in {scope}")


class DuplicateAssignmentError(RbacError):
    """Raised when a (user, role, organization) assignment already exists."""

    def __init__(self, *, user_id: UUID, role: str, organization_id: UUID | None) -> None:
        self.user_id = user_id
        self.role = role
        self.organization_id = organization_id
        super().__init__("Assignment already exists")


class AssignmentWriteError(RbacError):
    """Raised when storage refuses an assignment write for a reason other than a duplicate.

    On SQLite this is usually a competing writer holding the database lock.
    """


class AssignmentNotFoundError(RbacError, LookupError):
    """Raised when revoking an assignment that does not exist."""


class ScopeMismatchError(RbacError, ValueError):
    """Raised when a role is granted in a scope it does not support."""


class AccessDeniedError(RbacError):
    """Raised by request gates when a decision denies access."""

    def __init__(
        self,
        *,
        operation_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.operation_id = operation_id
        self.reason = reason
        super().__init__("access denied")


__all__ = [
    "AccessDeniedError",
    "AssignmentNotFoundError",
    "AssignmentWriteError",
    "DuplicateAssignmentError",
    "InsufficientPrivilegeError",
    "RbacError",
    "ResolutionError",
    "RoleCatalogError",
    "ScopeMismatchError",
    "UnknownOperationError",
    "UnknownPermissionError",
    "UnknownRoleError",
]
