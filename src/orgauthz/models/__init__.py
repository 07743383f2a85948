"""Central exports for orgauthz SQLAlchemy models."""

from .rbac import Permission, Role, RoleAssignment, RolePermission

__all__ = [
    "Permission",
    "Role",
    "RoleAssignment",
    "RolePermission",
]
