"""Role catalog and assignment commands for the orgauthz CLI."""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

import typer

from orgauthz.core.rbac.operations import default_registry
from orgauthz.features.rbac.decision import AuthorizationContext
from orgauthz.features.rbac.repository import RoleAssignmentRecord

from ..core.output import ColumnSpec, print_json, print_rows
from ..core.runtime import build_service, load_settings, open_session, run_command

__all__ = [
    "register",
    "run_check",
    "run_effective",
    "run_grant",
    "run_list",
    "run_revoke",
    "run_sync",
]

JsonFlag = Annotated[bool, typer.Option("--json", help="Emit structured JSON output for scripting.")]
UserArg = Annotated[UUID, typer.Argument(help="Identifier of the user.")]
RoleArg = Annotated[str, typer.Argument(help="Role name, e.g. 'gestor'.")]
OrganizationOption = Annotated[
    UUID | None,
    typer.Option("--organization", help="Organization identifier; omit for global roles."),
]
ActorOption = Annotated[
    UUID | None,
    typer.Option("--actor", help="Act as this user and enforce the assignment ceiling (default: system)."),
]


def _serialise_assignment(record: RoleAssignmentRecord) -> dict[str, Any]:
    return {
        "id": str(record.id),
        "user_id": str(record.user_id),
        "role": record.role_name,
        "organization_id": str(record.organization_id) if record.organization_id else None,
        "scope": record.scope.value,
        "assigned_by": str(record.assigned_by) if record.assigned_by else None,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


_ROLE_COLUMNS: list[ColumnSpec] = [
    ("Level", "hierarchy_level"),
    ("Name", "name"),
    ("Scope", "scope"),
    ("Permissions", lambda row: ", ".join(row["permissions"])),
]


async def run_sync(*, as_json: bool = False) -> None:
    """Upsert the role and permission catalog into the database."""

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings, require_stored_roles=False)
        result = await service.sync_catalog()

    if as_json:
        print_json(
            {
                "roles": result.roles,
                "permissions": result.permissions,
                "removed_permissions": result.removed_permissions,
            }
        )
        return
    typer.echo(
        f"Synced {result.roles} roles and {result.permissions} permissions "
        f"({result.removed_permissions} stale permissions removed)."
    )


async def run_list(*, as_json: bool = False) -> None:
    """List stored roles."""

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings, require_stored_roles=False)
        roles = await service.list_roles()

    rows = [
        {
            "name": role.name,
            "hierarchy_level": role.hierarchy_level,
            "scope": role.scope.value,
            "description": role.description,
            "permissions": list(role.permissions),
        }
        for role in roles
    ]
    if as_json:
        print_json(rows)
        return
    print_rows(rows, _ROLE_COLUMNS)


async def run_grant(
    *,
    user_id: UUID,
    role: str,
    organization: UUID | None = None,
    actor: UUID | None = None,
    as_json: bool = False,
) -> None:
    """Grant a role to a user; without ``--actor`` the grant runs as the system."""

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings)
        record = await service.grant_role(
            user_id=user_id,
            role_name=role,
            organization_id=organization,
            actor_id=actor,
            bypass_guard=actor is None,
        )

    payload = _serialise_assignment(record)
    if as_json:
        print_json(payload)
        return
    where = f"organization {payload['organization_id']}" if record.organization_id else "global scope"
    typer.echo(f"Granted '{record.role_name}' to {payload['user_id']} in {where}.")


async def run_revoke(
    *,
    user_id: UUID,
    role: str,
    organization: UUID | None = None,
    actor: UUID | None = None,
) -> None:
    """Revoke a role from a user."""

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings)
        await service.revoke_role(
            user_id=user_id,
            role_name=role,
            organization_id=organization,
            actor_id=actor,
            bypass_guard=actor is None,
        )
    typer.echo(f"Revoked '{role}' from {user_id}.")


async def run_check(
    *,
    user_id: UUID,
    roles: list[str] | None = None,
    operation: str | None = None,
    organization: UUID | None = None,
    as_json: bool = False,
) -> None:
    """Evaluate an authorization decision for a user."""

    required: set[str] = set(roles or ())
    if operation:
        required |= default_registry().required_roles(operation)

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings)
        result = await service.engine.check(
            AuthorizationContext(
                caller_id=user_id,
                organization_id=organization,
                required_roles=frozenset(required),
                operation_id=operation,
            )
        )

    payload = {
        "decision": result.decision.value,
        "reason": result.reason.value,
        "required_roles": sorted(result.required_roles),
        "effective_roles": sorted(result.effective_roles),
        "matched": list(result.matched) if result.matched else None,
    }
    if as_json:
        print_json(payload)
        return
    typer.echo(f"{payload['decision']} ({payload['reason']})")


async def run_effective(
    *,
    user_id: UUID,
    organization: UUID | None = None,
    as_json: bool = False,
) -> None:
    """Show a user's effective roles and permissions."""

    settings = load_settings()
    async with open_session(settings) as session:
        service = await build_service(session, settings)
        roles = await service.effective_roles(user_id, organization)
        permissions = await service.effective_permissions(user_id, organization)

    payload = {
        "user_id": str(user_id),
        "organization_id": str(organization) if organization else None,
        "global_roles": sorted(roles.global_roles),
        "organization_roles": sorted(roles.organization_roles),
        "permissions": sorted(permissions),
    }
    if as_json:
        print_json(payload)
        return
    typer.echo(f"Global roles:       {', '.join(payload['global_roles']) or '-'}")
    typer.echo(f"Organization roles: {', '.join(payload['organization_roles']) or '-'}")
    typer.echo(f"Permissions:        {', '.join(payload['permissions']) or '-'}")


def register(app: typer.Typer) -> None:
    roles_app = typer.Typer(help="Manage roles and assignments.", no_args_is_help=True)

    @roles_app.command(name="sync", help=run_sync.__doc__)
    def sync(as_json: JsonFlag = False) -> None:
        run_command(run_sync, as_json=as_json)

    @roles_app.command(name="list", help=run_list.__doc__)
    def list_roles(as_json: JsonFlag = False) -> None:
        run_command(run_list, as_json=as_json)

    @roles_app.command(name="grant", help="Grant a role to a user.")
    def grant(
        user_id: UserArg,
        role: RoleArg,
        organization: OrganizationOption = None,
        actor: ActorOption = None,
        as_json: JsonFlag = False,
    ) -> None:
        run_command(
            run_grant,
            user_id=user_id,
            role=role,
            organization=organization,
            actor=actor,
            as_json=as_json,
        )

    @roles_app.command(name="revoke", help=run_revoke.__doc__)
    def revoke(
        user_id: UserArg,
        role: RoleArg,
        organization: OrganizationOption = None,
        actor: ActorOption = None,
    ) -> None:
        run_command(run_revoke, user_id=user_id, role=role, organization=organization, actor=actor)

    @roles_app.command(name="check", help=run_check.__doc__)
    def check(
        user_id: Annotated[UUID, typer.Argument(help="Identifier of the caller.")],
        role: Annotated[
            list[str] | None,
            typer.Option("--role", help="Required role; repeat for 'any of' requirements."),
        ] = None,
        operation: Annotated[
            str | None,
            typer.Option("--operation", help="Registered operation identifier."),
        ] = None,
        organization: OrganizationOption = None,
        as_json: JsonFlag = False,
    ) -> None:
        run_command(
            run_check,
            user_id=user_id,
            roles=role,
            operation=operation,
            organization=organization,
            as_json=as_json,
        )

    @roles_app.command(name="effective", help=run_effective.__doc__)
    def effective(
        user_id: UserArg,
        organization: OrganizationOption = None,
        as_json: JsonFlag = False,
    ) -> None:
        run_command(run_effective, user_id=user_id, organization=organization, as_json=as_json)

    app.add_typer(roles_app, name="roles")
