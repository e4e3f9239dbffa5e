"""Tests for entity validation and normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from clipsync.domain.models import (
    DEFAULT_CATEGORY_ID,
    DEFAULT_CATEGORY_NAME,
    Bookmark,
    RetryLedgerEntry,
    default_categories,
    normalize_tags,
)


class TestNormalizeTags:
    def test_strips_hash_prefixes_and_whitespace(self) -> None:
        assert normalize_tags([" #python ", "＃异步", "plain"]) == ["python", "异步", "plain"]

    def test_deduplicates_keeping_first(self) -> None:
        assert normalize_tags(["a", "b", "#a", "b"]) == ["a", "b"]

    def test_drops_empty_and_overlong_tags(self) -> None:
        assert normalize_tags(["", "#", None, "x" * 19, "y" * 20]) == ["x" * 19]

    def test_decodes_json_array_string(self) -> None:
        assert normalize_tags('["one", "two"]') == ["one", "two"]

    def test_garbage_becomes_empty(self) -> None:
        assert normalize_tags("{oops") == []
        assert normalize_tags(42) == []
        assert normalize_tags(None) == []


class TestBookmark:
    def test_id_is_required(self) -> None:
        with pytest.raises(ValidationError):
            Bookmark.model_validate({"id": "  "})

    def test_empty_category_resolves_to_default_bucket(self) -> None:
        assert Bookmark(id="b1", category="").category == DEFAULT_CATEGORY_NAME
        assert Bookmark.model_validate({"id": "b1", "category": None}).category == DEFAULT_CATEGORY_NAME

    def test_unknown_fields_are_preserved(self) -> None:
        bookmark = Bookmark.model_validate({"id": "b1", "favorite": True})

        assert bookmark.to_storage()["favorite"] is True

    def test_touch_bumps_updated_at_and_maps_aliases(self) -> None:
        bookmark = Bookmark.model_validate({"id": "b1", "updatedAt": "2020-01-01T00:00:00Z"})

        changed = bookmark.touch(category="新闻资讯", tags=["#news"], created_at="2019-01-01T00:00:00Z")

        assert changed.category == "新闻资讯"
        assert changed.tags == ["news"]
        assert changed.created_at == "2019-01-01T00:00:00Z"
        assert changed.updated_at is not None
        assert changed.updated_at > "2020-01-01T00:00:00Z"
        assert bookmark.category == DEFAULT_CATEGORY_NAME


def test_retry_entry_key() -> None:
    entry = RetryLedgerEntry(type="delete", data={"id": 7})

    assert entry.key == ("delete", "7")
    assert entry.retries == 1
    assert entry.timestamp > 0


def test_default_tree_is_fresh_and_two_levels() -> None:
    first = default_categories()
    first[0].name = "changed"

    second = default_categories()

    assert second[0].name != "changed"
    assert second[-1].id == DEFAULT_CATEGORY_ID
    assert all(not child.children for parent in second for child in parent.children)
    assert second[0].children[0].parent_id == second[0].id
