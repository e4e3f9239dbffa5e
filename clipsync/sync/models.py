"""Result models returned by the sync coordinator."""

from __future__ import annotations

from pydantic import BaseModel, Field

from clipsync.domain.models import Bookmark, Category  # noqa: TC001 - Pydantic needs these at runtime


class FailedItem(BaseModel):
    """A bookmark that could not be pushed, for user-facing diagnostics."""

    id: str
    title: str
    error: str


class PushResult(BaseModel):
    success: bool
    success_count: int = 0
    fail_count: int = 0
    failed_items: list[FailedItem] = Field(default_factory=list)
    message: str = ""
    error: str | None = None


class PullResult(BaseModel):
    success: bool
    bookmarks: list[Bookmark] = Field(default_factory=list)
    uploaded: int = 0
    message: str = ""
    error: str | None = None


class RemoteBookmarks(BaseModel):
    success: bool
    bookmarks: list[Bookmark] = Field(default_factory=list)
    error: str | None = None


class RemoteCategories(BaseModel):
    success: bool
    categories: list[Category] = Field(default_factory=list)
    error: str | None = None


class CategoryPushResult(BaseModel):
    success: bool
    count: int = 0
    message: str = ""
    error: str | None = None


class CategorySyncResult(BaseModel):
    success: bool
    categories: list[Category] = Field(default_factory=list)
    changed: bool = False
    uploaded: bool = False
    message: str = ""
    error: str | None = None


class CategoryEditResult(BaseModel):
    """Outcome of a local category edit and its remote propagation."""

    categories: list[Category] = Field(default_factory=list)
    bookmarks_updated: int = 0
    remote: CategoryPushResult | None = None
