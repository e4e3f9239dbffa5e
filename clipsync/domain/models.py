"""Entities persisted locally and mirrored to the remote store."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clipsync.core.time_utils import epoch_millis, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAME = "其他"
DEFAULT_CATEGORY_ID = "other"
DEFAULT_PARENT_ICON = "📁"
DEFAULT_CHILD_ICON = "📄"

# Tags of this length or longer are dropped
MAX_TAG_LENGTH = 20

_TEXT_FIELDS = ("url", "title", "description", "domain", "summary", "screenshot")
_PAGE_INFO_FIELDS = ("url", "title", "description", "domain")


def normalize_tags(value: Any) -> list[str]:
    """Return a clean tag list: decoded, stripped, de-duplicated and length-bounded."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("bookmark_tags_parse_failed", extra={"value": value[:200]})
            return []
    if not isinstance(value, list | tuple):
        return []

    tags: list[str] = []
    seen: set[str] = set()
    for raw in value:
        if raw is None:
            continue
        tag = str(raw).strip().lstrip("#＃").strip()
        if not tag or len(tag) >= MAX_TAG_LENGTH or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tags


class Bookmark(BaseModel):
    """A saved, annotated reference to a webpage.

    ``category`` holds the category *name*. ``screenshot`` never leaves the local store.
    Unknown keys written by other collaborators are preserved.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    url: str = ""
    title: str = ""
    description: str = ""
    domain: str = ""
    summary: str = ""
    category: str = DEFAULT_CATEGORY_NAME
    tags: list[str] = Field(default_factory=list)
    screenshot: str = ""
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @model_validator(mode="before")
    @classmethod
    def _flatten_legacy_record(cls, data: Any) -> Any:
        """Accept the older nested ``pageInfo`` layout and ``timestamp`` field."""
        if not isinstance(data, dict):
            return data
        if "pageInfo" not in data and "timestamp" not in data:
            return data

        result = dict(data)
        page_info = result.pop("pageInfo", None)
        if isinstance(page_info, dict):
            for key in _PAGE_INFO_FIELDS:
                if result.get(key) in (None, "") and page_info.get(key) is not None:
                    result[key] = page_info[key]

        timestamp = result.pop("timestamp", None)
        if not result.get("createdAt") and not result.get("created_at") and timestamp:
            result["createdAt"] = timestamp
        return result

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            msg = "Bookmark id is required"
            raise ValueError(msg)
        return text

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        return text or DEFAULT_CATEGORY_NAME

    @field_validator("tags", mode="before")
    @classmethod
    def _validate_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp_to_str(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    def touch(self, **changes: Any) -> Bookmark:
        """Return a copy with ``changes`` applied and ``updatedAt`` set to now."""
        data = self.to_storage()
        fields = type(self).model_fields
        for key, value in changes.items():
            field = fields.get(key)
            data[field.alias if field is not None and field.alias else key] = value
        data["updatedAt"] = utc_now_iso()
        return Bookmark.model_validate(data)

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Category(BaseModel):
    """A node of the two-level category tree.

    Top-level categories carry ``children``; children carry ``parent_id``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    icon: str = ""
    parent_id: str | None = Field(default=None, alias="parentId")
    sort_order: int | None = Field(default=None, alias="sortOrder")
    children: list[Category] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            msg = "Category id is required"
            raise ValueError(msg)
        return text

    @field_validator("name", "icon", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("children", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class RetryLedgerEntry(BaseModel):
    """A remote mutation that failed and is waiting to be replayed."""

    type: Literal["save", "delete"]
    data: dict[str, Any]
    retries: int = 1
    timestamp: int = Field(default_factory=epoch_millis)

    @property
    def entity_id(self) -> str:
        return str(self.data.get("id", ""))

    @property
    def key(self) -> tuple[str, str]:
        return self.type, self.entity_id


def _default_tree() -> list[dict[str, Any]]:
    return [
        {
            "id": "tech-tools",
            "name": "技术工具",
            "icon": "🔧",
            "children": [
                {"id": "dev-tools", "name": "开发工具", "icon": "💻", "parentId": "tech-tools"},
                {"id": "ai-tools", "name": "AI工具", "icon": "🤖", "parentId": "tech-tools"},
            ],
        },
        {
            "id": "learning",
            "name": "学习资源",
            "icon": "📚",
            "children": [
                {"id": "tutorials", "name": "教程文档", "icon": "📖", "parentId": "learning"},
                {"id": "courses", "name": "在线课程", "icon": "🎓", "parentId": "learning"},
            ],
        },
        {"id": "news", "name": "新闻资讯", "icon": "📰", "children": []},
        {"id": "entertainment", "name": "娱乐休闲", "icon": "🎮", "children": []},
        {"id": "business", "name": "商业服务", "icon": "💼", "children": []},
        {"id": "design", "name": "设计创意", "icon": "🎨", "children": []},
        {"id": "lifestyle", "name": "生活服务", "icon": "🏠", "children": []},
        {"id": DEFAULT_CATEGORY_ID, "name": DEFAULT_CATEGORY_NAME, "icon": "📁", "children": []},
    ]


def default_categories() -> list[Category]:
    """Fresh copy of the tree seeded when the local store has no categories."""
    return [Category.model_validate(item) for item in _default_tree()]
