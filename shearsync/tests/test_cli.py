"""CLI smoke tests against a throwaway SQLite file."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from shearsync import database
from shearsync.cli import app


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    """Point the CLI at a file database; NullPool because every command runs its own loop."""
    eng = database.make_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)
    monkeypatch.setattr(database, "engine", eng)
    monkeypatch.setattr(
        database,
        "async_session_factory",
        async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False),
    )
    return eng


@pytest.fixture
def shop(cli_runner, cli_db):
    assert cli_runner.invoke(app, ["init-db"]).exit_code == 0
    result = cli_runner.invoke(app, ["accounts", "create", "Fade Factory", "--slug", "fade"])
    assert result.exit_code == 0, result.output
    return "fade"


def test_accounts_list(cli_runner, shop):
    result = cli_runner.invoke(app, ["accounts", "list"])
    assert result.exit_code == 0
    assert "fade" in result.output
    assert "acuity" in result.output


def test_accounts_create_rejects_provider(cli_runner, cli_db):
    cli_runner.invoke(app, ["init-db"])
    result = cli_runner.invoke(app, ["accounts", "create", "X", "--slug", "x", "--provider", "calendly"])
    assert result.exit_code == 1
    assert "Unsupported booking provider" in result.output


def test_unknown_account_exits(cli_runner, shop):
    result = cli_runner.invoke(app, ["clients", "list", "--account", "nope"])
    assert result.exit_code == 1
    assert "Unknown account" in result.output


def test_pull_dry_run_json(cli_runner, shop, monkeypatch, make_appt, fake_adapter_cls):
    adapter = fake_adapter_cls([
        make_appt("1", "2025-01-06", phone="4165550101", first_name="Ana", last_name="Lima"),
        make_appt("2", "2025-01-20", phone="4165550101", first_name="Ana", last_name="Lima"),
    ])
    monkeypatch.setattr("shearsync.adapters.get_adapter", lambda account: adapter)

    result = cli_runner.invoke(
        app,
        ["pull", "--account", shop, "--year", "2025", "--month", "January", "--dry-run", "--json"],
    )

    assert result.exit_code == 0, result.output
    assert '"fetched": 2' in result.output
    assert '"new_clients": 1' in result.output
    assert '"dry_run": true' in result.output
    assert adapter.calls[0][0].isoformat() == "2025-01-01"

    listing = cli_runner.invoke(app, ["clients", "list", "--account", shop])
    assert "Clients (0 of 0)" in listing.output


def test_backfill_plan_and_status(cli_runner, shop):
    result = cli_runner.invoke(app, ["backfill", "plan", "--account", shop, "--start-year", "2025"])
    assert result.exit_code == 0
    assert "Planned" in result.output

    status = cli_runner.invoke(app, ["backfill", "status", "--account", shop])
    assert status.exit_code == 0
    assert "pending" in status.output
    assert "2025-01" in status.output


def test_nudge_select_empty(cli_runner, shop):
    result = cli_runner.invoke(app, ["nudge", "select", "--account", shop, "--json"])
    assert result.exit_code == 0
    assert '"total_available_clients": 0' in result.output
