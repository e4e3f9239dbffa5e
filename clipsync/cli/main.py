"""Command-line interface for running sync cycles, e.g. from cron.

Example crontab entry (every 30 minutes):
    */30 * * * * cd /srv/clipsync && .venv/bin/clipsync pull >> /var/log/clipsync.log 2>&1

Usage:
    clipsync [--db-path PATH] {status,pull,push,push-categories,sync-categories,retry,init-schema,clear-retries}
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import TYPE_CHECKING

from clipsync.config import load_config
from clipsync.core.logging_utils import setup_json_logging
from clipsync.db.local_store import LocalStore
from clipsync.domain.exceptions import ClipsyncError, SyncDisabledError
from clipsync.sync.service import SyncCoordinator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from clipsync.config import AppConfig

logger = logging.getLogger("clipsync.cli")

COMMANDS = (
    "status",
    "pull",
    "push",
    "push-categories",
    "sync-categories",
    "retry",
    "init-schema",
    "clear-retries",
)

# Commands that talk to the remote database
REMOTE_COMMANDS = frozenset(
    {"pull", "push", "push-categories", "sync-categories", "retry", "init-schema"}
)

# Commands whose own cycle does not replay the retry ledger
STARTUP_DRAIN_COMMANDS = frozenset({"push-categories", "sync-categories"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipsync",
        description="Synchronize the local bookmark library with the remote database",
    )
    parser.add_argument("--db-path", help="Local store path (overrides DB_PATH)")
    parser.add_argument("--log-level", help="Log level (overrides LOG_LEVEL)")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run")
    return parser


async def run_command(command: str, coordinator: SyncCoordinator) -> int:
    """Run one command against ``coordinator``.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if command == "status":
        print(coordinator.status().summary())
        return 0

    if command == "clear-retries":
        dropped = coordinator.ledger.clear()
        print(f"Dropped {dropped} pending retries")
        return 0

    if command in REMOTE_COMMANDS:
        coordinator.require_enabled()

    if command == "init-schema":
        schema = await coordinator.ensure_schema()
        print("Schema ready" if schema.success else f"Schema creation failed: {schema.error}")
        return 0 if schema.success else 1

    if command == "retry":
        report = await coordinator.retry_pending()
        print(
            f"Replayed {report.replayed}: {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.abandoned} abandoned, {report.remaining} remaining"
        )
        return 0 if report.failed == 0 else 1

    if command == "pull":
        pulled = await coordinator.pull_bookmarks()
        await coordinator.wait_background()
        print(pulled.message if pulled.success else f"Pull failed: {pulled.error}")
        return 0 if pulled.success else 1

    if command == "push":
        pushed = await coordinator.push_bookmarks()
        print(pushed.message)
        for item in pushed.failed_items:
            print(f"  - [{item.id}] {item.title or '(no title)'}: {item.error}")
        return 0 if pushed.success else 1

    if command == "push-categories":
        categories = await coordinator.push_categories()
        if categories.success:
            print(categories.message)
        else:
            print(f"{categories.message}: {categories.error}")
        return 0 if categories.success else 1

    synced = await coordinator.sync_categories()
    print(synced.message if synced.success else f"Category sync failed: {synced.error}")
    return 0 if synced.success else 1


async def run(command: str, config: AppConfig) -> int:
    store = LocalStore(config.runtime.db_path)
    coordinator = SyncCoordinator(config.sync, store)
    try:
        if command in STARTUP_DRAIN_COMMANDS:
            await coordinator.initialize()
        return await run_command(command, coordinator)
    except SyncDisabledError as exc:
        logger.warning("remote_sync_unavailable", extra={"command": command, "reason": str(exc)})
        print(f"Remote sync unavailable: {exc}")
        return 1
    except ClipsyncError as exc:
        logger.exception("clipsync_command_failed", extra={"command": command})
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await coordinator.aclose()
        store.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.db_path:
        config = dataclasses.replace(
            config, runtime=config.runtime.model_copy(update={"db_path": args.db_path})
        )

    setup_json_logging(
        level=args.log_level or config.runtime.log_level,
        log_file=config.runtime.log_file,
    )
    return asyncio.run(run(args.command, config))


if __name__ == "__main__":
    sys.exit(main())
