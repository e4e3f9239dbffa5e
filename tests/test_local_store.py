"""Tests for the SQLite-backed local key/value store."""

from __future__ import annotations

from unittest.mock import patch

import peewee
import pytest

from clipsync.db.local_store import BOOKMARKS_KEY, CATEGORIES_KEY, LocalStore
from clipsync.db.models import StoreEntry
from clipsync.domain.exceptions import LocalStoreError
from tests.conftest import make_bookmark, make_tree


def test_get_returns_only_existing_keys(store: LocalStore) -> None:
    store.set({"a": [1, 2], "b": {"x": "y"}})

    assert store.get(["a", "missing"]) == {"a": [1, 2]}
    assert store.get("b") == {"b": {"x": "y"}}
    assert store.get([]) == {}


def test_set_overwrites_whole_value(store: LocalStore) -> None:
    store.set({"a": [1, 2, 3]})
    store.set({"a": [4]})

    assert store.get("a") == {"a": [4]}


def test_remove(store: LocalStore) -> None:
    store.set({"a": 1, "b": 2})
    store.remove("a")

    assert store.get(["a", "b"]) == {"b": 2}


def test_values_survive_reopen(tmp_path) -> None:
    path = str(tmp_path / "nested" / "clipsync.db")
    first = LocalStore(path)
    first.set({"a": "中文"})
    first.close()

    second = LocalStore(path)
    try:
        assert second.get("a") == {"a": "中文"}
    finally:
        second.close()


def test_set_is_atomic_across_keys(store: LocalStore) -> None:
    store.set({"a": 1, "b": 1})

    with (
        patch.object(StoreEntry, "insert_many", side_effect=peewee.OperationalError("disk full")),
        pytest.raises(LocalStoreError),
    ):
        store.set({"a": 2, "b": 2})

    assert store.get(["a", "b"]) == {"a": 1, "b": 1}


def test_database_errors_are_wrapped(store: LocalStore) -> None:
    with (
        patch.object(StoreEntry, "select", side_effect=peewee.OperationalError("locked")),
        pytest.raises(LocalStoreError) as excinfo,
    ):
        store.get("a")

    assert "locked" in str(excinfo.value)


def test_typed_bookmark_accessors_round_trip(store: LocalStore) -> None:
    bookmarks = [make_bookmark("b1", screenshot="data:x"), make_bookmark("b2")]

    store.save_bookmarks(bookmarks)

    raw = store.get(BOOKMARKS_KEY)[BOOKMARKS_KEY]
    assert raw[0]["createdAt"] == "2024-01-01T00:00:00.000Z"
    assert store.load_bookmarks() == bookmarks


def test_invalid_bookmark_records_are_skipped(store: LocalStore) -> None:
    store.set({BOOKMARKS_KEY: [{"id": ""}, {"id": "ok", "title": "Fine"}, "garbage"]})

    assert [bookmark.id for bookmark in store.load_bookmarks()] == ["ok"]


def test_legacy_bookmark_layout_is_flattened(store: LocalStore) -> None:
    store.set(
        {
            BOOKMARKS_KEY: [
                {
                    "id": "old",
                    "pageInfo": {"url": "https://a.example", "title": "A", "domain": "a.example"},
                    "timestamp": "2023-05-01T10:00:00Z",
                }
            ]
        }
    )

    bookmark = store.load_bookmarks()[0]

    assert bookmark.url == "https://a.example"
    assert bookmark.title == "A"
    assert bookmark.created_at == "2023-05-01T10:00:00Z"


def test_category_accessors_use_camel_case(store: LocalStore) -> None:
    store.save_categories(make_tree(("1", "Tech", [("2", "Dev")])))

    raw = store.get(CATEGORIES_KEY)[CATEGORIES_KEY]
    assert raw[0]["children"][0]["parentId"] == "1"
    assert "parentId" not in raw[0]
    assert store.load_categories()[0].children[0].parent_id == "1"
