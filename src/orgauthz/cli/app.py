"""Root orgauthz CLI app."""

from __future__ import annotations

import typer

from .commands import register_all

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Administrative tooling for organization-scoped role authorization.",
)

register_all(app)

__all__ = ["app"]
