"""RBAC schema: roles, permissions, role_permissions, role_assignments.

Assignment uniqueness treats a NULL organization as its own partition, so it
is enforced with two partial unique indexes instead of one composite key.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from alembic import op

from orgauthz.db.types import UUIDType

revision = "0001_rbac_schema"
down_revision: Optional[str] = None
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


ROLE_SCOPE = sa.Enum(
    "global",
    "organization",
    name="role_scope",
    native_enum=False,
    length=20,
)

ASSIGNMENT_SCOPE = sa.Enum(
    "global",
    "organization",
    name="assignment_scope",
    native_enum=False,
    length=20,
)


def _timestamps() -> tuple[sa.Column, sa.Column]:
    return (
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def upgrade() -> None:
    op.create_table(
        "permissions",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("key", sa.String(length=120), nullable=False),
        sa.Column("resource", sa.String(length=60), nullable=False),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="permissions_pkey"),
        sa.UniqueConstraint("key", name="permissions_key_key"),
    )

    op.create_table(
        "roles",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("hierarchy_level", sa.Integer(), nullable=False),
        sa.Column("scope", ROLE_SCOPE, nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="roles_pkey"),
        sa.UniqueConstraint("name", name="roles_name_key"),
        sa.UniqueConstraint("hierarchy_level", name="roles_hierarchy_level_key"),
    )

    op.create_table(
        "role_permissions",
        sa.Column("role_id", UUIDType(), nullable=False),
        sa.Column("permission_id", UUIDType(), nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="role_permissions_role_id_fkey", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["permission_id"],
            ["permissions.id"],
            name="role_permissions_permission_id_fkey",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("role_id", "permission_id", name="role_permissions_pkey"),
    )

    op.create_table(
        "role_assignments",
        sa.Column("id", UUIDType(), nullable=False),
        sa.Column("user_id", UUIDType(), nullable=False),
        sa.Column("role_id", UUIDType(), nullable=False),
        sa.Column("organization_id", UUIDType(), nullable=True),
        sa.Column("scope", ASSIGNMENT_SCOPE, nullable=False),
        sa.Column("assigned_by", UUIDType(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="role_assignments_role_id_fkey", ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name="role_assignments_pkey"),
        sa.CheckConstraint(
            "(scope = 'global' AND organization_id IS NULL) OR "
            "(scope = 'organization' AND organization_id IS NOT NULL)",
            name=op.f("role_assignments_scope_matches_organization_check"),
        ),
    )

    global_where = sa.text("organization_id IS NULL")
    organization_where = sa.text("organization_id IS NOT NULL")
    op.create_index(
        "role_assignments_global_key",
        "role_assignments",
        ["user_id", "role_id"],
        unique=True,
        sqlite_where=global_where,
        postgresql_where=global_where,
    )
    op.create_index(
        "role_assignments_organization_key",
        "role_assignments",
        ["user_id", "role_id", "organization_id"],
        unique=True,
        sqlite_where=organization_where,
        postgresql_where=organization_where,
    )
    op.create_index(
        "role_assignments_user_organization_idx",
        "role_assignments",
        ["user_id", "organization_id"],
    )


def downgrade() -> None:
    op.drop_index("role_assignments_user_organization_idx", table_name="role_assignments")
    op.drop_index("role_assignments_organization_key", table_name="role_assignments")
    op.drop_index("role_assignments_global_key", table_name="role_assignments")
    op.drop_table("role_assignments")
    op.drop_table("role_permissions")
    op.drop_table("roles")
    op.drop_table("permissions")
