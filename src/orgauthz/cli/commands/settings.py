"""CLI helper for inspecting orgauthz configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from sqlalchemy.engine import make_url

from ..core.output import print_json
from ..core.runtime import load_settings, run_command


def _serialise(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def run_dump() -> None:
    """Print the effective configuration with the database password masked."""

    settings = load_settings()
    payload = {field: _serialise(getattr(settings, field)) for field in type(settings).model_fields}
    payload["database_url"] = make_url(settings.database_url).render_as_string(hide_password=True)
    print_json(payload)


def register(app: typer.Typer) -> None:
    @app.command(name="settings", help=run_dump.__doc__)
    def settings() -> None:
        run_command(run_dump)


__all__ = ["register", "run_dump"]
