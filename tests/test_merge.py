"""Tests for the bookmark and category merge algorithms."""

from __future__ import annotations

from clipsync.domain.models import Category
from clipsync.sync.merge import (
    categories_differ,
    flatten_categories,
    merge_bookmarks,
    merge_categories,
)
from tests.conftest import make_bookmark, make_tree

# ---------------------------------------------------------------------------
# merge_bookmarks
# ---------------------------------------------------------------------------


def test_remote_newer_wins_and_keeps_local_screenshot() -> None:
    local = make_bookmark(
        "b1", summary="old", screenshot="data:image/png;base64,AAA", updatedAt="2024-01-01T00:00:00Z"
    )
    remote = make_bookmark("b1", summary="new", screenshot="", updatedAt="2024-02-01T00:00:00Z")

    result = merge_bookmarks([local], [remote])

    assert len(result.merged) == 1
    assert result.merged[0].summary == "new"
    assert result.merged[0].screenshot == "data:image/png;base64,AAA"
    assert result.to_upload == []


def test_local_newer_wins_and_is_marked_for_upload() -> None:
    local = make_bookmark("b1", summary="mine", updatedAt="2024-03-01T00:00:00Z")
    remote = make_bookmark("b1", summary="theirs", updatedAt="2024-02-01T00:00:00Z")

    result = merge_bookmarks([local], [remote])

    assert result.merged[0].summary == "mine"
    assert [bookmark.id for bookmark in result.to_upload] == ["b1"]


def test_equal_timestamps_prefer_remote() -> None:
    local = make_bookmark("b1", summary="mine")
    remote = make_bookmark("b1", summary="theirs")

    result = merge_bookmarks([local], [remote])

    assert result.merged[0].summary == "theirs"
    assert result.to_upload == []


def test_merge_is_deterministic_whatever_the_call_order() -> None:
    older = make_bookmark("b1", summary="older", updatedAt="2024-01-01T00:00:00Z")
    newer = make_bookmark("b1", summary="newer", updatedAt="2024-01-02T00:00:00Z")

    assert merge_bookmarks([older], [newer]).merged[0].summary == "newer"
    assert merge_bookmarks([newer], [older]).merged[0].summary == "newer"


def test_missing_updated_at_falls_back_to_created_at() -> None:
    local = make_bookmark("b1", summary="mine", updatedAt=None, createdAt="2024-05-01T00:00:00Z")
    remote = make_bookmark("b1", summary="theirs", updatedAt="2024-04-01T00:00:00Z")

    result = merge_bookmarks([local], [remote])

    assert result.merged[0].summary == "mine"


def test_unparsable_timestamp_counts_as_epoch() -> None:
    local = make_bookmark("b1", summary="mine", updatedAt="yesterday", createdAt="later")
    remote = make_bookmark("b1", summary="theirs", updatedAt="1999-01-01T00:00:00Z")

    result = merge_bookmarks([local], [remote])

    assert result.merged[0].summary == "theirs"


def test_one_sided_records_are_kept() -> None:
    local_only = make_bookmark("local", createdAt="2024-01-03T00:00:00Z")
    remote_only = make_bookmark("remote", createdAt="2024-01-02T00:00:00Z")

    result = merge_bookmarks([local_only], [remote_only])

    assert {bookmark.id for bookmark in result.merged} == {"local", "remote"}
    assert [bookmark.id for bookmark in result.to_upload] == ["local"]


def test_merged_list_is_newest_created_first() -> None:
    bookmarks = [
        make_bookmark("a", createdAt="2024-01-01T00:00:00Z"),
        make_bookmark("b", createdAt="2024-03-01T00:00:00Z"),
        make_bookmark("c", createdAt=None),
    ]
    remote = [make_bookmark("d", createdAt="2024-02-01T00:00:00Z")]

    result = merge_bookmarks(bookmarks, remote)

    assert [bookmark.id for bookmark in result.merged] == ["b", "d", "a", "c"]


# ---------------------------------------------------------------------------
# merge_categories
# ---------------------------------------------------------------------------


def test_shared_parent_children_are_unioned() -> None:
    local = make_tree(("1", "Tech", [("2", "Dev")]))
    remote = make_tree(("1", "Tech", [("3", "AI")]))

    merged = merge_categories(local, remote)

    assert [category.id for category in merged] == ["1"]
    assert [child.id for child in merged[0].children] == ["2", "3"]


def test_local_values_win_over_remote() -> None:
    local = [Category(id="1", name="Local name", icon="🔧")]
    remote = [Category(id="1", name="Remote name", icon="📁")]

    merged = merge_categories(local, remote)

    assert merged[0].name == "Local name"
    assert merged[0].icon == "🔧"


def test_empty_local_values_are_filled_from_remote() -> None:
    local = [Category(id="1", name="", icon="")]
    remote = [Category(id="1", name="Remote", icon="📁")]

    merged = merge_categories(local, remote)

    assert merged[0].name == "Remote"
    assert merged[0].icon == "📁"


def test_remote_only_top_level_is_appended_in_remote_order() -> None:
    local = make_tree(("1", "Tech", []))
    remote = make_tree(("9", "Later", []), ("1", "Tech", []), ("5", "News", [("6", "World")]))

    merged = merge_categories(local, remote)

    assert [category.id for category in merged] == ["1", "9", "5"]
    assert [child.id for child in merged[2].children] == ["6"]


def test_local_only_categories_survive() -> None:
    local = make_tree(("1", "Tech", [("2", "Dev")]), ("7", "Mine", []))
    remote = make_tree(("1", "Tech", []))

    merged = merge_categories(local, remote)

    assert flatten_categories(merged).keys() == {"1", "2", "7"}


def test_ids_stay_unique_when_a_child_moved_parents() -> None:
    local = make_tree(("1", "Tech", [("2", "Dev")]), ("4", "Work", []))
    remote = make_tree(("4", "Work", [("2", "Dev")]))

    merged = merge_categories(local, remote)

    ids = [category.id for category in merged]
    ids += [child.id for category in merged for child in category.children]
    assert sorted(ids) == ["1", "2", "4"]


def test_merge_never_deletes() -> None:
    local = make_tree(("1", "Tech", [("2", "Dev")]))

    assert flatten_categories(merge_categories(local, [])).keys() == {"1", "2"}
    assert flatten_categories(merge_categories([], local)).keys() == {"1", "2"}


def test_categories_differ_ignores_key_order_only() -> None:
    tree = make_tree(("1", "Tech", [("2", "Dev")]))
    same = [Category.model_validate(category.to_storage()) for category in tree]
    renamed = make_tree(("1", "Tech!", [("2", "Dev")]))

    assert categories_differ(tree, same) is False
    assert categories_differ(tree, renamed) is True


def test_categories_differ_ignores_sort_order_and_implied_parent_id() -> None:
    stored = [
        Category.model_validate(
            {
                "id": "1",
                "name": "Tech",
                "sortOrder": 0,
                "children": [{"id": "2", "name": "Dev", "sortOrder": 0}],
            }
        )
    ]
    fetched = make_tree(("1", "Tech", [("2", "Dev")]))
    moved = make_tree(("1", "Tech", []), ("2", "Dev", []))

    assert categories_differ(stored, fetched) is False
    assert categories_differ(stored, moved) is True
