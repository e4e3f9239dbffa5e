"""Merge algorithms for divergent local and remote collections.

Both merges are total: any input produces a result, and neither drops data that
exists on only one side.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from clipsync.core.time_utils import timestamp_or_epoch
from clipsync.domain.models import Bookmark, Category


@dataclass
class BookmarkMerge:
    merged: list[Bookmark]
    to_upload: list[Bookmark] = field(default_factory=list)


def _modified_at(bookmark: Bookmark):
    return timestamp_or_epoch(bookmark.updated_at, bookmark.created_at)


def merge_bookmarks(local: Sequence[Bookmark], remote: Sequence[Bookmark]) -> BookmarkMerge:
    """Merge by id; the newer ``updatedAt`` wins and local screenshots always survive.

    Local records that are strictly newer, or missing remotely, are returned in
    ``to_upload``. The merged list is ordered newest ``createdAt`` first.
    """
    local_by_id = {bookmark.id: bookmark for bookmark in local}
    merged: list[Bookmark] = []
    to_upload: list[Bookmark] = []
    seen: set[str] = set()

    for remote_bookmark in remote:
        if remote_bookmark.id in seen:
            continue
        seen.add(remote_bookmark.id)

        local_bookmark = local_by_id.pop(remote_bookmark.id, None)
        if local_bookmark is None:
            merged.append(remote_bookmark)
            continue

        if _modified_at(local_bookmark) > _modified_at(remote_bookmark):
            merged.append(local_bookmark)
            to_upload.append(local_bookmark)
        else:
            screenshot = local_bookmark.screenshot or remote_bookmark.screenshot
            merged.append(remote_bookmark.model_copy(update={"screenshot": screenshot}))

    for local_bookmark in local_by_id.values():
        merged.append(local_bookmark)
        to_upload.append(local_bookmark)

    merged.sort(key=lambda b: timestamp_or_epoch(b.created_at), reverse=True)
    return BookmarkMerge(merged=merged, to_upload=to_upload)


def flatten_categories(categories: Iterable[Category]) -> dict[str, Category]:
    """Map every id in the tree to its node; children carry their parent's id."""
    flat: dict[str, Category] = {}
    for parent in categories:
        flat[parent.id] = parent
        for child in parent.children:
            flat[child.id] = child.model_copy(update={"parent_id": parent.id})
    return flat


def merge_categories(local: Sequence[Category], remote: Sequence[Category]) -> list[Category]:
    """Union the two trees by id, keeping local order and local values.

    ``name``/``icon`` come from the local node unless it has none and the remote has
    one. Children of a shared parent are the local children followed by remote-only
    children. Remote-only top-level categories are appended in remote order. Ids
    already used anywhere in the local tree are never added a second time; when a
    remote parent exists locally as a child, its remote-only children are attached to
    that child's local parent so the tree stays two levels deep.
    """
    local_flat = flatten_categories(local)
    remote_flat = flatten_categories(remote)
    used_ids = set(local_flat)

    merged: list[Category] = []
    for local_cat in local:
        remote_cat = remote_flat.get(local_cat.id)
        if remote_cat is None:
            merged.append(local_cat)
            continue

        children = list(local_cat.children)
        for child in remote_cat.children:
            if child.id in used_ids:
                continue
            children.append(child.model_copy(update={"parent_id": local_cat.id}))
            used_ids.add(child.id)

        update: dict[str, object] = {"children": children}
        if remote_cat.icon and not local_cat.icon:
            update["icon"] = remote_cat.icon
        if remote_cat.name and not local_cat.name:
            update["name"] = remote_cat.name
        merged.append(local_cat.model_copy(update=update))

    position = {category.id: index for index, category in enumerate(merged)}
    for remote_cat in remote:
        leftovers = [child for child in remote_cat.children if child.id not in used_ids]
        if remote_cat.id not in used_ids:
            used_ids.add(remote_cat.id)
            used_ids.update(child.id for child in leftovers)
            position[remote_cat.id] = len(merged)
            merged.append(remote_cat.model_copy(update={"children": leftovers}))
            continue

        # The remote parent is a child locally; its remote-only children join the local parent
        owner = local_flat.get(remote_cat.id)
        if not leftovers or owner is None or owner.parent_id not in position:
            continue
        index = position[owner.parent_id]
        parent = merged[index]
        used_ids.update(child.id for child in leftovers)
        adopted = [child.model_copy(update={"parent_id": parent.id}) for child in leftovers]
        merged[index] = parent.model_copy(update={"children": [*parent.children, *adopted]})

    return merged


def _canonical(category: Category, *, children: bool) -> dict[str, object]:
    node: dict[str, object] = {"id": category.id, "name": category.name, "icon": category.icon}
    if children:
        node["children"] = [_canonical(child, children=False) for child in category.children]
    return node


def serialize_categories(categories: Iterable[Category]) -> str:
    """Canonical JSON form used for change detection.

    Only ids, names, icons and tree position count. ``sortOrder`` and ``parentId`` are
    implied by position, and extra keys never reach the remote table.
    """
    return json.dumps(
        [_canonical(category, children=True) for category in categories],
        ensure_ascii=False,
        sort_keys=True,
    )


def categories_differ(left: Iterable[Category], right: Iterable[Category]) -> bool:
    return serialize_categories(left) != serialize_categories(right)
