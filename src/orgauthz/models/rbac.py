"""RBAC models: roles, permissions, and role assignments."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
    true,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauthz.core.rbac.types import RoleScope
from orgauthz.db.base import AuditedMixin, Base, IdentifiedMixin
from orgauthz.db.types import UUIDType


def _scope_column_type(name: str) -> SAEnum:
    # Stored as the lowercase value ("global", "organization") in a VARCHAR.
    return SAEnum(
        RoleScope,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda scopes: [scope.value for scope in scopes],
    )


role_scope_enum = _scope_column_type("role_scope")
assignment_scope_enum = _scope_column_type("assignment_scope")


class Permission(IdentifiedMixin, Base):
    """Canonical permission catalog entry."""

    __tablename__ = "permissions"

    key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    resource: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    role_permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="permission",
        cascade="all, delete-orphan",
    )


class Role(IdentifiedMixin, AuditedMixin, Base):
    """Role with its position in the privilege hierarchy (lower is stronger)."""

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    hierarchy_level: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    scope: Mapped[RoleScope] = mapped_column(
        role_scope_enum,
        nullable=False,
        default=RoleScope.ORGANIZATION,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
    )
    assignments: Mapped[list[RoleAssignment]] = relationship(
        "RoleAssignment",
        back_populates="role",
    )


class RolePermission(Base):
    """Bridge table linking roles and permissions."""

    __tablename__ = "role_permissions"

    role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    permission_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
    )

    role: Mapped[Role] = relationship("Role", back_populates="permissions")
    permission: Mapped[Permission] = relationship(
        "Permission",
        back_populates="role_permissions",
        lazy="joined",
    )


class RoleAssignment(IdentifiedMixin, AuditedMixin, Base):
    """Grant of a role to a user, globally or within one organization.

    ``user_id``, ``organization_id`` and ``assigned_by`` are opaque identifiers
    owned by the identity and tenancy services.
    """

    __tablename__ = "role_assignments"

    user_id: Mapped[UUID] = mapped_column(UUIDType(), nullable=False)
    role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False
    )
    organization_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    scope: Mapped[RoleScope] = mapped_column(assignment_scope_enum, nullable=False)
    assigned_by: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)

    role: Mapped[Role] = relationship("Role", back_populates="assignments", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "(scope = 'global' AND organization_id IS NULL) OR "
            "(scope = 'organization' AND organization_id IS NOT NULL)",
            name="scope_matches_organization",
        ),
        # NULL is its own partition: one index per side of the split.
        Index(
            "role_assignments_global_key",
            "user_id",
            "role_id",
            unique=True,
            sqlite_where=text("organization_id IS NULL"),
            postgresql_where=text("organization_id IS NULL"),
        ),
        Index(
            "role_assignments_organization_key",
            "user_id",
            "role_id",
            "organization_id",
            unique=True,
            sqlite_where=text("organization_id IS NOT NULL"),
            postgresql_where=text("organization_id IS NOT NULL"),
        ),
        Index("role_assignments_user_organization_idx", "user_id", "organization_id"),
    )


__all__ = [
    "Permission",
    "Role",
    "RoleAssignment",
    "RolePermission",
]
