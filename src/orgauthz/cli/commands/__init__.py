"""Command registrations for the orgauthz CLI."""

from __future__ import annotations

import typer

from . import db, roles, settings

COMMAND_MODULES = (
    settings,
    db,
    roles,
)


def register_all(app: typer.Typer) -> None:
    for module in COMMAND_MODULES:
        module.register(app)
