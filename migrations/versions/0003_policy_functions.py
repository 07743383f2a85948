"""Install the storage-level policy functions (PostgreSQL only).

Other dialects evaluate the same SQL bodies inline at query time.
"""

from __future__ import annotations

from typing import Optional

from alembic import op

from orgauthz.db.policy_sql import POLICY_FUNCTIONS

revision = "0003_policy_functions"
down_revision: Optional[str] = "0002_seed_system_roles"
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    if not _is_postgres():
        return
    for function in POLICY_FUNCTIONS:
        op.execute(function.create_sql())


def downgrade() -> None:
    if not _is_postgres():
        return
    for function in reversed(POLICY_FUNCTIONS):
        op.execute(function.drop_sql())
