"""Storage-level authorization predicates.

Each predicate is written once as a portable SQL body with ``{param}``
placeholders and rendered two ways:

* :meth:`PolicyFunction.create_sql` emits a PostgreSQL
  ``LANGUAGE sql STABLE SECURITY DEFINER`` function (installed by migration
  ``0003_policy_functions``) so row-level policies can call it.
* :meth:`PolicyFunction.inline` binds the same body as a plain statement for
  engines without stored functions (SQLite).

On PostgreSQL the functions also back the row-level security policies on
``role_assignments`` (:data:`ROW_POLICIES`, migration
``0004_role_assignment_row_security``). Those policies read the acting user
from the transaction setting ``orgauthz.caller_id``; see :func:`bind_caller`.
The table owner bypasses them, so the service connection keeps using the
in-process engine and guard.

The bodies must agree with :class:`orgauthz.core.rbac.hierarchy.HierarchyModel`
and the resolver. In particular an absent organization argument matches only
global assignments.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import String, bindparam, text
from sqlalchemy.sql.elements import TextClause

from .types import UUIDType

__all__ = [
    "ASSIGNMENT_READER_ROLE",
    "CALLER_SETTING",
    "CURRENT_CALLER",
    "DISABLE_ROW_SECURITY",
    "ENABLE_ROW_SECURITY",
    "POLICY_FUNCTIONS",
    "PolicyFunction",
    "ROW_POLICIES",
    "RowPolicy",
    "bind_caller",
    "best_hierarchy_level",
    "can_assign_role",
    "is_global_super_admin",
    "user_has_permission",
    "user_has_role",
    "user_meets_role",
    "user_roles",
]

_PG_TYPES = {
    "user_id": "uuid",
    "organization_id": "uuid",
    "role_name": "text",
    "permission_key": "text",
}

# ---- Shared fragments --------------------------------------------------------

_IN_CONTEXT = (
    "(ra.organization_id IS NULL"
    " OR ({organization_id} IS NOT NULL AND ra.organization_id = {organization_id}))"
)

_SUPER_LEVEL = "(SELECT MIN(top.hierarchy_level) FROM roles top)"

_IS_SUPER = f"""EXISTS (
        SELECT 1
        FROM role_assignments sa
        JOIN roles sr ON sr.id = sa.role_id
        WHERE sa.user_id = {{user_id}}
          AND sa.organization_id IS NULL
          AND sr.scope = 'global'
          AND sr.hierarchy_level = {_SUPER_LEVEL}
    )"""

_BEST_LEVEL = f"""(
        SELECT MIN(r.hierarchy_level)
        FROM role_assignments ra
        JOIN roles r ON r.id = ra.role_id
        WHERE ra.user_id = {{user_id}}
          AND {_IN_CONTEXT}
    )"""

_TARGET_LEVEL = "(SELECT tr.hierarchy_level FROM roles tr WHERE tr.name = {role_name})"


@dataclass(frozen=True)
class PolicyFunction:
    """A named SQL predicate with an ordered parameter list."""

    name: str
    params: tuple[str, ...]
    returns: str
    body: str
    # Set-returning functions name the column their call selects.
    set_column: str | None = None

    def _render(self, placeholder: str) -> str:
        return self.body.format(**{param: placeholder.format(param) for param in self.params})

    # ---- PostgreSQL -------------------------------------------------------

    @property
    def signature(self) -> str:
        return ", ".join(_PG_TYPES[param] for param in self.params)

    def create_sql(self) -> str:
        arguments = ", ".join(f"p_{param} {_PG_TYPES[param]}" for param in self.params)
        return (
            f"CREATE OR REPLACE FUNCTION {self.name}({arguments})\n"
            f"RETURNS {self.returns}\n"
            "LANGUAGE sql\n"
            "STABLE\n"
            "SECURITY DEFINER\n"
            "SET search_path FROM CURRENT\n"
            f"AS $$\n{self._render('p_{}')}\n$$"
        )

    def drop_sql(self) -> str:
        return f"DROP FUNCTION IF EXISTS {self.name}({self.signature})"

    def call(self) -> TextClause:
        arguments = ", ".join(
            f"CAST(:{param} AS {_PG_TYPES[param]})" for param in self.params
        )
        if self.set_column:
            return _typed(text(f"SELECT {self.set_column} FROM {self.name}({arguments})"), self.params)
        return _typed(text(f"SELECT {self.name}({arguments})"), self.params)

    # ---- Inline -----------------------------------------------------------

    def inline(self) -> TextClause:
        return _typed(text(self._render(":{}")), self.params)


def _typed(statement: TextClause, params: tuple[str, ...]) -> TextClause:
    binds = [
        bindparam(param, type_=UUIDType() if _PG_TYPES[param] == "uuid" else String())
        for param in params
        if f":{param}" in statement.text
    ]
    return statement.bindparams(*binds)


# ---- Predicates --------------------------------------------------------------

is_global_super_admin = PolicyFunction(
    name="orgauthz_is_global_super_admin",
    params=("user_id",),
    returns="boolean",
    body=f"SELECT {_IS_SUPER}",
)

user_has_role = PolicyFunction(
    name="orgauthz_user_has_role",
    params=("user_id", "role_name", "organization_id"),
    returns="boolean",
    body=f"""SELECT EXISTS (
        SELECT 1
        FROM role_assignments ra
        JOIN roles r ON r.id = ra.role_id
        WHERE ra.user_id = {{user_id}}
          AND r.name = {{role_name}}
          AND {_IN_CONTEXT}
    )""",
)

best_hierarchy_level = PolicyFunction(
    name="orgauthz_best_hierarchy_level",
    params=("user_id", "organization_id"),
    returns="integer",
    body=f"SELECT {_BEST_LEVEL}",
)

user_meets_role = PolicyFunction(
    name="orgauthz_user_meets_role",
    params=("user_id", "role_name", "organization_id"),
    returns="boolean",
    body=f"""SELECT COALESCE(
        {_TARGET_LEVEL} IS NOT NULL
        AND (
            {_IS_SUPER}
            OR ({{organization_id}} IS NOT NULL AND {_BEST_LEVEL} <= {_TARGET_LEVEL})
        ),
        FALSE
    )""",
)

user_has_permission = PolicyFunction(
    name="orgauthz_user_has_permission",
    params=("user_id", "permission_key", "organization_id"),
    returns="boolean",
    body=f"""SELECT COALESCE(
        EXISTS (SELECT 1 FROM permissions kp WHERE kp.key = {{permission_key}})
        AND (
            {_IS_SUPER}
            OR EXISTS (
                SELECT 1
                FROM role_assignments ra
                JOIN role_permissions rp ON rp.role_id = ra.role_id
                JOIN permissions p ON p.id = rp.permission_id
                WHERE ra.user_id = {{user_id}}
                  AND p.key = {{permission_key}}
                  AND {_IN_CONTEXT}
            )
        ),
        FALSE
    )""",
)

can_assign_role = PolicyFunction(
    name="orgauthz_can_assign_role",
    params=("user_id", "role_name", "organization_id"),
    returns="boolean",
    body=f"""SELECT COALESCE(
        {_TARGET_LEVEL} IS NOT NULL
        AND ({_IS_SUPER} OR {_BEST_LEVEL} < {_TARGET_LEVEL}),
        FALSE
    )""",
)

POLICY_FUNCTIONS: tuple[PolicyFunction, ...] = (
    is_global_super_admin,
    user_has_role,
    best_hierarchy_level,
    user_meets_role,
    user_has_permission,
    can_assign_role,
)

# Installed by 0004 together with the row policies; 0003 predates it.
user_roles = PolicyFunction(
    name="orgauthz_user_roles",
    params=("user_id", "organization_id"),
    returns="TABLE(role_name text)",
    set_column="role_name",
    body=f"""SELECT CAST(r.name AS text) AS role_name
    FROM role_assignments ra
    JOIN roles r ON r.id = ra.role_id
    WHERE ra.user_id = {{user_id}}
      AND {_IN_CONTEXT}
    ORDER BY r.hierarchy_level""",
)


# ---- Row-level security on role_assignments -----------------------------------

CALLER_SETTING = "orgauthz.caller_id"

# NULL when the setting is missing or reset, so every policy then denies.
CURRENT_CALLER = f"NULLIF(current_setting('{CALLER_SETTING}', true), '')::uuid"

# Role whose holders may read every assignment in their organization.
ASSIGNMENT_READER_ROLE = "admin"

ENABLE_ROW_SECURITY = "ALTER TABLE role_assignments ENABLE ROW LEVEL SECURITY"
DISABLE_ROW_SECURITY = "ALTER TABLE role_assignments DISABLE ROW LEVEL SECURITY"

_ROW_ROLE_NAME = "(SELECT r.name FROM roles r WHERE r.id = role_assignments.role_id)"


@dataclass(frozen=True)
class RowPolicy:
    """A permissive policy on ``role_assignments`` for one command."""

    name: str
    command: str
    predicate: str

    def create_sql(self) -> str:
        clause = "WITH CHECK" if self.command == "INSERT" else "USING"
        return (
            f"CREATE POLICY {self.name} ON role_assignments\n"
            f"FOR {self.command}\n"
            f"{clause} ({self.predicate})"
        )

    def drop_sql(self) -> str:
        return f"DROP POLICY IF EXISTS {self.name} ON role_assignments"


_MAY_ASSIGN_ROW = (
    f"{can_assign_role.name}({CURRENT_CALLER}, {_ROW_ROLE_NAME}, role_assignments.organization_id)"
)

# No UPDATE policy: assignments are replaced, never edited.
ROW_POLICIES: tuple[RowPolicy, ...] = (
    RowPolicy(
        name="role_assignments_select_own",
        command="SELECT",
        predicate=f"role_assignments.user_id = {CURRENT_CALLER}",
    ),
    RowPolicy(
        name="role_assignments_select_admin",
        command="SELECT",
        predicate=(
            f"{user_meets_role.name}({CURRENT_CALLER}, '{ASSIGNMENT_READER_ROLE}', "
            "role_assignments.organization_id)"
        ),
    ),
    RowPolicy(name="role_assignments_insert", command="INSERT", predicate=_MAY_ASSIGN_ROW),
    RowPolicy(name="role_assignments_delete", command="DELETE", predicate=_MAY_ASSIGN_ROW),
)


def bind_caller() -> TextClause:
    """Statement that sets the acting user for the current transaction only.

    Bind ``caller_id`` as a string (or ``None`` to clear it).
    """

    return text(f"SELECT set_config('{CALLER_SETTING}', COALESCE(:caller_id, ''), true)").bindparams(
        bindparam("caller_id", type_=String())
    )
