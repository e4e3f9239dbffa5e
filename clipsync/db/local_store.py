"""Durable key/value area holding the bookmark library, category tree and retry queue.

The store has no merge logic: ``get``/``set``/``remove`` operate on whole JSON values,
and ``set`` writes every key of its mapping in one SQLite transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase
from pydantic import ValidationError

from clipsync.core.time_utils import utc_now
from clipsync.db.models import ALL_MODELS, StoreEntry
from clipsync.domain.exceptions import LocalStoreError
from clipsync.domain.models import Bookmark, Category

logger = logging.getLogger(__name__)

BOOKMARKS_KEY = "bookmarks"
CATEGORIES_KEY = "categories"
RETRY_QUEUE_KEY = "_tursoRetryQueue"


def _as_keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class LocalStore:
    """SQLite-backed key/value store.

    Args:
        path: Database file path, or ``":memory:"``.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._database = SqliteExtDatabase(
            path,
            pragmas={"journal_mode": "wal", "synchronous": "normal"},
            check_same_thread=False,
        )
        # One long-lived connection: ":memory:" databases vanish when it closes.
        self._database.connect(reuse_if_open=True)
        with self._session():
            self._database.create_tables(ALL_MODELS, safe=True)

    @property
    def database(self) -> peewee.SqliteDatabase:
        return self._database

    @contextmanager
    def _session(self) -> Iterator[None]:
        try:
            with self._database.bind_ctx(ALL_MODELS):
                yield
        except (peewee.DatabaseError, sqlite3.Error) as exc:
            logger.exception("local_store_operation_failed", extra={"path": self.path})
            msg = f"Local store operation failed: {exc}"
            raise LocalStoreError(msg, details={"path": self.path}) from exc

    def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        """Return ``{key: value}`` for the requested keys that exist."""
        wanted = _as_keys(keys)
        if not wanted:
            return {}
        with self._session():
            query = StoreEntry.select().where(StoreEntry.key.in_(wanted))
            return {entry.key: entry.value for entry in query}

    def set(self, items: Mapping[str, Any]) -> None:
        """Write every item atomically."""
        if not items:
            return
        now = utc_now()
        rows = [{"key": key, "value": value, "updated_at": now} for key, value in items.items()]
        with self._session(), self._database.atomic():
            StoreEntry.insert_many(rows).on_conflict(
                conflict_target=[StoreEntry.key],
                preserve=[StoreEntry.value, StoreEntry.updated_at],
            ).execute()
        logger.debug("local_store_set", extra={"keys": sorted(items)})

    def remove(self, keys: str | Iterable[str]) -> None:
        doomed = _as_keys(keys)
        if not doomed:
            return
        with self._session():
            StoreEntry.delete().where(StoreEntry.key.in_(doomed)).execute()

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    # -- typed accessors ---------------------------------------------------

    def load_bookmarks(self) -> list[Bookmark]:
        raw = self.get(BOOKMARKS_KEY).get(BOOKMARKS_KEY) or []
        bookmarks: list[Bookmark] = []
        for item in raw:
            try:
                bookmarks.append(Bookmark.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "local_bookmark_invalid",
                    extra={"record_id": _record_id(item), "error": str(exc)},
                )
        return bookmarks

    def save_bookmarks(self, bookmarks: Iterable[Bookmark]) -> None:
        self.set({BOOKMARKS_KEY: bookmarks_payload(bookmarks)})

    def load_categories(self) -> list[Category]:
        raw = self.get(CATEGORIES_KEY).get(CATEGORIES_KEY) or []
        categories: list[Category] = []
        for item in raw:
            try:
                categories.append(Category.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "local_category_invalid",
                    extra={"record_id": _record_id(item), "error": str(exc)},
                )
        return categories

    def save_categories(self, categories: Iterable[Category]) -> None:
        self.set({CATEGORIES_KEY: categories_payload(categories)})


def bookmarks_payload(bookmarks: Iterable[Bookmark]) -> list[dict[str, Any]]:
    return [bookmark.to_storage() for bookmark in bookmarks]


def categories_payload(categories: Iterable[Category]) -> list[dict[str, Any]]:
    return [category.to_storage() for category in categories]


def _record_id(item: Any) -> Any:
    return item.get("id") if isinstance(item, dict) else None
