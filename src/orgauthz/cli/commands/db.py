"""`orgauthz db` commands."""

from __future__ import annotations

from typing import Annotated

import typer

from orgauthz.db.migrations import run_migrations

from ..core.runtime import load_settings, run_command


def run_upgrade(revision: str = "head") -> None:
    """Apply Alembic migrations up to ``revision``."""

    settings = load_settings()
    run_migrations(settings, revision=revision)
    typer.echo(f"Database upgraded to {revision}.")


def register(app: typer.Typer) -> None:
    db_app = typer.Typer(help="Database maintenance.", no_args_is_help=True)

    @db_app.command(name="upgrade", help="Apply Alembic migrations.")
    def upgrade(
        revision: Annotated[str, typer.Argument(help="Target revision.")] = "head",
    ) -> None:
        run_command(run_upgrade, revision=revision)

    app.add_typer(db_app, name="db")


__all__ = ["register", "run_upgrade"]
