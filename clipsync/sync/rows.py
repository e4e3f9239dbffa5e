"""Mapping between entities and rows of the remote ``bookmarks``/``categories`` tables."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from clipsync.adapters.turso.models import Statement
from clipsync.core.time_utils import utc_now_iso
from clipsync.domain.models import (
    DEFAULT_CATEGORY_NAME,
    DEFAULT_CHILD_ICON,
    DEFAULT_PARENT_ICON,
    Bookmark,
    Category,
)

logger = logging.getLogger(__name__)

BOOKMARK_UPSERT_SQL = """
INSERT INTO bookmarks (id, url, title, description, summary, category, tags, screenshot, domain, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
  title = excluded.title,
  description = excluded.description,
  summary = excluded.summary,
  category = excluded.category,
  tags = excluded.tags,
  screenshot = excluded.screenshot,
  updated_at = excluded.updated_at
"""

BOOKMARK_DELETE_SQL = "DELETE FROM bookmarks WHERE id = ?"
BOOKMARK_SELECT_SQL = "SELECT * FROM bookmarks ORDER BY created_at DESC"

CATEGORY_UPSERT_SQL = """
INSERT INTO categories (id, name, icon, parent_id, sort_order, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
  name = excluded.name,
  icon = excluded.icon,
  parent_id = excluded.parent_id,
  sort_order = excluded.sort_order,
  updated_at = excluded.updated_at
"""

CATEGORY_SELECT_SQL = "SELECT * FROM categories ORDER BY sort_order ASC"


def bookmark_params(bookmark: Bookmark) -> list[Any]:
    """Positional parameters for :data:`BOOKMARK_UPSERT_SQL`.

    The screenshot column is always written empty; screenshots stay local.
    """
    now = utc_now_iso()
    return [
        bookmark.id,
        bookmark.url,
        bookmark.title,
        bookmark.description,
        bookmark.summary,
        bookmark.category or DEFAULT_CATEGORY_NAME,
        json.dumps(bookmark.tags, ensure_ascii=False),
        "",
        bookmark.domain,
        bookmark.created_at or now,
        bookmark.updated_at or now,
    ]


def row_to_bookmark(record: dict[str, Any]) -> Bookmark | None:
    """Build a bookmark from a ``bookmarks`` row; rows without a usable id yield ``None``."""
    try:
        return Bookmark.model_validate(
            {
                "id": record.get("id"),
                "url": record.get("url"),
                "title": record.get("title"),
                "description": record.get("description"),
                "domain": record.get("domain"),
                "summary": record.get("summary"),
                "category": record.get("category"),
                "tags": record.get("tags"),
                "screenshot": record.get("screenshot"),
                "createdAt": record.get("created_at"),
                "updatedAt": record.get("updated_at"),
            }
        )
    except ValidationError as exc:
        logger.warning(
            "remote_bookmark_row_invalid",
            extra={"record_id": record.get("id"), "error": str(exc)},
        )
        return None


def category_statements(
    categories: Iterable[Category], *, now: str | None = None
) -> tuple[list[Statement], list[str]]:
    """Upsert statements for the whole tree plus a prune of every other remote id.

    ``sort_order`` is each category's position among its siblings. The prune runs last
    so it only removes rows that are not part of this tree.
    """
    timestamp = now or utc_now_iso()
    statements: list[Statement] = []
    ids: list[str] = []

    for index, parent in enumerate(categories):
        ids.append(parent.id)
        statements.append(
            Statement(
                sql=CATEGORY_UPSERT_SQL,
                params=[
                    parent.id,
                    parent.name,
                    parent.icon or DEFAULT_PARENT_ICON,
                    None,
                    index,
                    timestamp,
                    timestamp,
                ],
            )
        )
        for child_index, child in enumerate(parent.children):
            ids.append(child.id)
            statements.append(
                Statement(
                    sql=CATEGORY_UPSERT_SQL,
                    params=[
                        child.id,
                        child.name,
                        child.icon or DEFAULT_CHILD_ICON,
                        parent.id,
                        child_index,
                        timestamp,
                        timestamp,
                    ],
                )
            )

    if ids:
        placeholders = ",".join("?" for _ in ids)
        statements.append(
            Statement(
                sql=f"DELETE FROM categories WHERE id NOT IN ({placeholders})",  # noqa: S608
                params=list(ids),
            )
        )
    return statements, ids


def rows_to_category_tree(records: Iterable[dict[str, Any]]) -> list[Category]:
    """Rebuild the two-level tree from flat rows ordered by ``sort_order``.

    Rows pointing at a missing parent are dropped.
    """
    flat = [record for record in records if record.get("id")]
    parents = [record for record in flat if not record.get("parent_id")]
    parent_ids = {str(record["id"]) for record in parents}

    orphans = [
        record
        for record in flat
        if record.get("parent_id") and str(record["parent_id"]) not in parent_ids
    ]
    if orphans:
        logger.info(
            "remote_category_orphans_dropped",
            extra={"ids": [str(record["id"]) for record in orphans]},
        )

    tree: list[Category] = []
    for parent in parents:
        parent_id = str(parent["id"])
        children = [
            Category(
                id=str(child["id"]),
                name=child.get("name"),
                icon=child.get("icon"),
                parent_id=parent_id,
            )
            for child in flat
            if child.get("parent_id") and str(child["parent_id"]) == parent_id
        ]
        tree.append(
            Category(
                id=parent_id,
                name=parent.get("name"),
                icon=parent.get("icon"),
                children=children,
            )
        )
    return tree
