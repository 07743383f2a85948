from __future__ import annotations

from typing import Any
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from orgauthz.cli import main as cli_main
from orgauthz.cli.app import app
from orgauthz.cli.commands import db as db_commands
from orgauthz.cli.commands import roles as role_commands
from orgauthz.cli.core.output import print_rows
from orgauthz.core.rbac.errors import InsufficientPrivilegeError

runner = CliRunner()


def _capture(monkeypatch: pytest.MonkeyPatch, module: Any, name: str) -> dict[str, Any]:
    captured: dict[str, Any] = {}

    async def _fake(**kwargs: Any) -> None:
        captured.update(kwargs)

    monkeypatch.setattr(module, name, _fake)
    return captured


def test_grant_arguments_are_parsed_as_uuids(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, role_commands, "run_grant")
    user_id, organization_id = uuid4(), uuid4()

    result = runner.invoke(
        app, ["roles", "grant", str(user_id), "gestor", "--organization", str(organization_id)]
    )

    assert result.exit_code == 0, result.output
    assert captured == {
        "user_id": user_id,
        "role": "gestor",
        "organization": organization_id,
        "actor": None,
        "as_json": False,
    }


def test_check_accepts_repeated_roles(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _capture(monkeypatch, role_commands, "run_check")

    result = runner.invoke(
        app, ["roles", "check", str(uuid4()), "--role", "admin", "--role", "gestor", "--json"]
    )

    assert result.exit_code == 0, result.output
    assert captured["roles"] == ["admin", "gestor"]
    assert captured["operation"] is None
    assert captured["as_json"] is True


def test_db_upgrade_defaults_to_head(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(db_commands, "run_upgrade", lambda revision: calls.append(revision))

    result = runner.invoke(app, ["db", "upgrade"])

    assert result.exit_code == 0, result.output
    assert calls == ["head"]


def test_invalid_uuid_exits_with_usage_error() -> None:
    result = runner.invoke(app, ["roles", "effective", "not-a-uuid"])

    assert result.exit_code == 2


def test_main_reports_rbac_errors(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    async def _denied(**kwargs: Any) -> None:
        raise InsufficientPrivilegeError(
            assigner_id=kwargs["actor"],
            role=kwargs["role"],
            organization_id=kwargs["organization"],
        )

    monkeypatch.setattr(role_commands, "run_grant", _denied)

    exit_code = cli_main.main(["roles", "grant", str(uuid4()), "admin", "--actor", str(uuid4())])

    assert exit_code == cli_main.EXIT_FAILURE
    assert "Not allowed to assign role 'admin'" in capsys.readouterr().err


def test_main_runs_sync_commands(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(db_commands, "run_upgrade", lambda revision: calls.append(revision))

    assert cli_main.main(["db", "upgrade", "0002_seed_system_roles"]) == cli_main.EXIT_SUCCESS
    assert calls == ["0002_seed_system_roles"]


def test_no_arguments_prints_help() -> None:
    result = runner.invoke(app, [])

    assert "roles" in result.output
    assert "db" in result.output


def test_print_rows_renders_a_table(capsys) -> None:
    print_rows(
        [{"name": "admin", "level": 100}, {"name": "gestor", "level": None}],
        [("Name", "name"), ("Level", "level")],
    )

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split() == ["Name", "Level"]
    assert lines[1].split() == ["admin", "100"]
    assert lines[2].split() == ["gestor", "-"]
