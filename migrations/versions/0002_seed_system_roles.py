"""Seed the built-in roles and permissions."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Optional

import sqlalchemy as sa
from alembic import op

from orgauthz.core.rbac.registry import PERMISSIONS, SYSTEM_ROLES
from orgauthz.db.types import UUIDType

revision = "0002_seed_system_roles"
down_revision: Optional[str] = "0001_rbac_schema"
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


permissions_table = sa.table(
    "permissions",
    sa.column("id", UUIDType()),
    sa.column("key", sa.String()),
    sa.column("resource", sa.String()),
    sa.column("action", sa.String()),
    sa.column("description", sa.Text()),
)

roles_table = sa.table(
    "roles",
    sa.column("id", UUIDType()),
    sa.column("name", sa.String()),
    sa.column("hierarchy_level", sa.Integer()),
    sa.column("scope", sa.String()),
    sa.column("description", sa.Text()),
    sa.column("is_system", sa.Boolean()),
    sa.column("created_at", sa.DateTime(timezone=True)),
    sa.column("updated_at", sa.DateTime(timezone=True)),
)

role_permissions_table = sa.table(
    "role_permissions",
    sa.column("role_id", UUIDType()),
    sa.column("permission_id", UUIDType()),
)


def upgrade() -> None:
    now = datetime.now(UTC)
    permission_ids = {definition.key: uuid.uuid4() for definition in PERMISSIONS}
    op.bulk_insert(
        permissions_table,
        [
            {
                "id": permission_ids[definition.key],
                "key": definition.key,
                "resource": definition.resource,
                "action": definition.action,
                "description": definition.description,
            }
            for definition in PERMISSIONS
        ],
    )

    role_ids = {definition.name: uuid.uuid4() for definition in SYSTEM_ROLES}
    op.bulk_insert(
        roles_table,
        [
            {
                "id": role_ids[definition.name],
                "name": definition.name,
                "hierarchy_level": definition.hierarchy_level,
                "scope": definition.scope.value,
                "description": definition.description,
                "is_system": definition.is_system,
                "created_at": now,
                "updated_at": now,
            }
            for definition in SYSTEM_ROLES
        ],
    )

    op.bulk_insert(
        role_permissions_table,
        [
            {"role_id": role_ids[definition.name], "permission_id": permission_ids[key]}
            for definition in SYSTEM_ROLES
            for key in definition.permissions
        ],
    )


def downgrade() -> None:
    names = [definition.name for definition in SYSTEM_ROLES]
    keys = [definition.key for definition in PERMISSIONS]
    roles = sa.select(roles_table.c.id).where(roles_table.c.name.in_(names))
    op.execute(
        sa.delete(role_permissions_table).where(role_permissions_table.c.role_id.in_(roles))
    )
    op.execute(sa.delete(roles_table).where(roles_table.c.name.in_(names)))
    op.execute(sa.delete(permissions_table).where(permissions_table.c.key.in_(keys)))
