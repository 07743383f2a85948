"""Row-level security on role_assignments (PostgreSQL only).

Installs ``orgauthz_user_roles`` and four permissive policies:

* a user sees their own assignments;
* whoever meets ``admin`` in a row's organization sees that row;
* inserting or deleting a row requires ``orgauthz_can_assign_role`` for the
  row's role in the row's organization.

The acting user comes from the ``orgauthz.caller_id`` transaction setting.
The table owner is exempt, so the application connection is unaffected;
the policies constrain every other database role.
"""

from __future__ import annotations

from typing import Optional

from alembic import op

from orgauthz.db.policy_sql import DISABLE_ROW_SECURITY, ENABLE_ROW_SECURITY, ROW_POLICIES, user_roles

revision = "0004_role_assignment_row_security"
down_revision: Optional[str] = "0003_policy_functions"
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    if not _is_postgres():
        return
    op.execute(user_roles.create_sql())
    op.execute(ENABLE_ROW_SECURITY)
    for policy in ROW_POLICIES:
        op.execute(policy.create_sql())


def downgrade() -> None:
    if not _is_postgres():
        return
    for policy in reversed(ROW_POLICIES):
        op.execute(policy.drop_sql())
    op.execute(DISABLE_ROW_SECURITY)
    op.execute(user_roles.drop_sql())
