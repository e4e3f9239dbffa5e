"""Durable ledger of remote mutations that failed and await replay.

Entries are keyed by ``(type, data.id)``. A drain replays every entry below the
attempt ceiling; successes are removed, failures count one more attempt, and entries
that reached the ceiling are dropped with a warning instead of being replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from clipsync.db.local_store import RETRY_QUEUE_KEY
from clipsync.domain.models import RetryLedgerEntry
from clipsync.sync.constants import DEFAULT_MAX_RETRIES

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from clipsync.db.local_store import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class DrainReport:
    replayed: int = 0
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0
    remaining: int = 0


class RetryLedger:
    def __init__(self, store: LocalStore, *, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        self._store = store
        self.max_retries = max_retries

    def entries(self) -> list[RetryLedgerEntry]:
        raw = self._store.get(RETRY_QUEUE_KEY).get(RETRY_QUEUE_KEY) or []
        entries: list[RetryLedgerEntry] = []
        for item in raw:
            try:
                entries.append(RetryLedgerEntry.model_validate(item))
            except ValidationError as exc:
                logger.warning("retry_ledger_entry_invalid", extra={"error": str(exc)})
        return entries

    def _save(self, entries: list[RetryLedgerEntry]) -> None:
        self._store.set({RETRY_QUEUE_KEY: [entry.model_dump(mode="json") for entry in entries]})

    def pending_count(self) -> int:
        return len(self.entries())

    def record(self, type_: Literal["save", "delete"], data: dict[str, Any]) -> RetryLedgerEntry:
        """Add a failed mutation, or count one more attempt for an existing one."""
        entries = self.entries()
        key = (type_, str(data.get("id", "")))
        for index, entry in enumerate(entries):
            if entry.key == key:
                updated = entry.model_copy(update={"retries": entry.retries + 1, "data": data})
                entries[index] = updated
                break
        else:
            updated = RetryLedgerEntry(type=type_, data=data)
            entries.append(updated)

        self._save(entries)
        logger.info(
            "retry_ledger_recorded",
            extra={"type": type_, "entity_id": key[1], "retries": updated.retries},
        )
        return updated

    def discard(self, type_: Literal["save", "delete"], entity_id: str) -> bool:
        """Drop the pending entry for ``(type_, entity_id)``; ``True`` if one existed."""
        entries = self.entries()
        kept = [entry for entry in entries if entry.key != (type_, entity_id)]
        if len(kept) == len(entries):
            return False
        self._save(kept)
        logger.info("retry_ledger_discarded", extra={"type": type_, "entity_id": entity_id})
        return True

    def clear(self) -> int:
        count = len(self.entries())
        self._save([])
        return count

    async def drain(self, replay: Callable[[RetryLedgerEntry], Awaitable[bool]]) -> DrainReport:
        """Replay pending entries once. Never raises for replay failures.

        Updates are applied to a fresh read of the ledger so that entries recorded
        while the drain was running are kept.
        """
        report = DrainReport()
        try:
            snapshot = self.entries()
        except Exception:
            logger.exception("retry_ledger_load_failed")
            return report

        if not snapshot:
            return report

        outcomes: dict[tuple[str, str], tuple[int, bool]] = {}
        for entry in snapshot:
            if entry.retries >= self.max_retries:
                logger.warning(
                    "retry_ledger_abandoned",
                    extra={
                        "type": entry.type,
                        "entity_id": entry.entity_id,
                        "retries": entry.retries,
                    },
                )
                outcomes[entry.key] = (entry.retries, True)
                report.abandoned += 1
                continue

            report.replayed += 1
            try:
                success = bool(await replay(entry))
            except Exception as exc:
                logger.warning(
                    "retry_ledger_replay_error",
                    extra={"type": entry.type, "entity_id": entry.entity_id, "error": str(exc)},
                )
                success = False

            outcomes[entry.key] = (entry.retries, success)
            if success:
                report.succeeded += 1
            else:
                report.failed += 1

        try:
            current = self.entries()
            kept: list[RetryLedgerEntry] = []
            for entry in current:
                outcome = outcomes.get(entry.key)
                if outcome is None or outcome[0] != entry.retries:
                    # Not part of this drain, or recorded again meanwhile
                    kept.append(entry)
                    continue
                _, done = outcome
                if not done:
                    kept.append(entry.model_copy(update={"retries": entry.retries + 1}))
            self._save(kept)
            report.remaining = len(kept)
        except Exception:
            logger.exception("retry_ledger_save_failed")

        logger.info(
            "retry_ledger_drained",
            extra={
                "replayed": report.replayed,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "abandoned": report.abandoned,
                "remaining": report.remaining,
            },
        )
        return report
