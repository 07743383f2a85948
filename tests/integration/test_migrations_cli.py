"""Alembic upgrade plus the CLI against a file-backed SQLite database."""

from __future__ import annotations

import json
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, inspect, text

from orgauthz.cli.main import EXIT_FAILURE, EXIT_SUCCESS, main
from orgauthz.db.migrations import run_migrations
from orgauthz.settings import Settings, reload_settings

pytestmark = pytest.mark.integration


@pytest.fixture()
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    url = f"sqlite:///{tmp_path / 'db' / 'orgauthz.sqlite'}"
    monkeypatch.setenv("ORGAUTHZ_DATABASE_URL", url)
    reload_settings()
    yield url
    monkeypatch.delenv("ORGAUTHZ_DATABASE_URL")
    reload_settings()


def _run_json(capsys: pytest.CaptureFixture[str], *argv: str) -> dict:
    capsys.readouterr()
    assert main([*argv, "--json"]) == EXIT_SUCCESS
    return json.loads(capsys.readouterr().out)


def test_upgrade_creates_schema_and_seeds_roles(database_url: str) -> None:
    run_migrations(Settings(database_url=database_url))

    engine = create_engine(database_url)
    try:
        inspector = inspect(engine)
        assert {"roles", "permissions", "role_permissions", "role_assignments"} <= set(
            inspector.get_table_names()
        )
        indexes = {index["name"] for index in inspector.get_indexes("role_assignments")}
        assert {"role_assignments_global_key", "role_assignments_organization_key"} <= indexes
        with engine.connect() as connection:
            levels = connection.execute(
                text("SELECT name, hierarchy_level FROM roles ORDER BY hierarchy_level")
            ).all()
    finally:
        engine.dispose()

    assert [tuple(row) for row in levels] == [
        ("super_admin", 0),
        ("admin", 100),
        ("gestor", 200),
        ("colaborador", 300),
    ]


def test_cli_bootstrap_and_check(database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["db", "upgrade"]) == EXIT_SUCCESS

    synced = _run_json(capsys, "roles", "sync")
    assert synced["roles"] == 4

    root, admin, organization = str(uuid4()), str(uuid4()), str(uuid4())
    granted = _run_json(capsys, "roles", "grant", root, "super_admin")
    assert granted["scope"] == "global"
    _run_json(
        capsys, "roles", "grant", admin, "admin", "--organization", organization, "--actor", root
    )

    allowed = _run_json(
        capsys,
        "roles",
        "check",
        admin,
        "--operation",
        "categories.create",
        "--organization",
        organization,
    )
    assert allowed["decision"] == "allow"

    denied = _run_json(capsys, "roles", "check", admin, "--role", "gestor")
    assert denied == {
        "decision": "deny",
        "reason": "missing_organization",
        "required_roles": ["gestor"],
        "effective_roles": [],
        "matched": None,
    }

    effective = _run_json(capsys, "roles", "effective", admin, "--organization", organization)
    assert effective["organization_roles"] == ["admin"]
    assert "organizations:delete" in effective["permissions"]

    capsys.readouterr()
    exit_code = main(
        ["roles", "grant", str(uuid4()), "admin", "--organization", organization, "--actor", admin]
    )
    assert exit_code == EXIT_FAILURE
    assert "Not allowed to assign role 'admin'" in capsys.readouterr().err
