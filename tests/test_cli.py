"""Tests for the command-line entry point."""

from __future__ import annotations

import pytest

from clipsync.cli.main import build_parser, main, run_command
from clipsync.config import SyncConfig
from clipsync.db.local_store import LocalStore
from clipsync.sync.service import SyncCoordinator
from tests.conftest import make_bookmark


@pytest.fixture(autouse=True)
def _quiet_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ``main`` from replacing the root handlers installed by pytest."""
    monkeypatch.setattr("clipsync.cli.main.setup_json_logging", lambda **kwargs: None)


def test_parser_accepts_known_commands() -> None:
    args = build_parser().parse_args(["--db-path", "x.db", "pull"])

    assert args.command == "pull"
    assert args.db_path == "x.db"

    with pytest.raises(SystemExit):
        build_parser().parse_args(["explode"])


def test_status_command_works_without_remote(tmp_path, capsys) -> None:
    exit_code = main(["--db-path", str(tmp_path / "clip.db"), "status"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Remote sync is not enabled" in out
    assert "pending_retries=0" in out


def test_remote_command_fails_when_disabled(tmp_path, capsys) -> None:
    exit_code = main(["--db-path", str(tmp_path / "clip.db"), "push"])

    assert exit_code == 1
    assert "Remote sync unavailable" in capsys.readouterr().out


def test_invalid_configuration_exits_with_error(monkeypatch, capsys) -> None:
    monkeypatch.setenv("TURSO_ENABLED", "maybe")

    assert main(["status"]) == 1
    assert "Configuration validation failed" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_push_command_reports_failed_items(coordinator, fake_turso, store, capsys) -> None:
    store.save_bookmarks([make_bookmark("b1", title="Kept"), make_bookmark("b2", title="Broken")])
    fake_turso.fail_next(None, "statement")

    exit_code = await run_command("push", coordinator)

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "Sync complete: 1 succeeded, 1 failed" in out
    assert "[b2] Broken: SQLITE_ERROR" in out


@pytest.mark.asyncio
async def test_pull_and_retry_commands(coordinator, fake_turso, capsys) -> None:
    fake_turso.seed_bookmark(id="r1", created_at="2024-01-01T00:00:00Z")

    assert await run_command("pull", coordinator) == 0
    assert "Synced 1 bookmarks" in capsys.readouterr().out

    coordinator.ledger.record("delete", {"id": "r1"})
    assert await run_command("retry", coordinator) == 0
    assert "1 succeeded" in capsys.readouterr().out
    assert "r1" not in fake_turso.bookmarks


@pytest.mark.asyncio
async def test_clear_retries_command(tmp_path, capsys) -> None:
    store = LocalStore(str(tmp_path / "clip.db"))
    coordinator = SyncCoordinator(SyncConfig(), store)
    coordinator.ledger.record("save", {"id": "b1"})

    try:
        assert await run_command("clear-retries", coordinator) == 0
    finally:
        store.close()

    assert "Dropped 1 pending retries" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_category_commands(coordinator, fake_turso, capsys) -> None:
    assert await run_command("init-schema", coordinator) == 0
    assert await run_command("sync-categories", coordinator) == 0
    assert await run_command("push-categories", coordinator) == 0

    out = capsys.readouterr().out
    assert "Schema ready" in out
    assert "Synced 12 categories" in out
    assert "other" in fake_turso.categories
