"""Synchronization coordinator between the local store and the remote SQL database.

The coordinator owns the single-flight lock, the retry ledger and the remote
transport. Coordinated cycles (pull, push, category sync and edits, ledger
drains) run under the lock one at a time in request order. Single-bookmark
mutations write locally first and then try the remote copy; remote failures
are recorded in the ledger and replayed at the start of the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from clipsync.adapters.turso.client import TursoClient
from clipsync.adapters.turso.models import BatchError, BatchOk, QueryError, QueryOk
from clipsync.core.logging_utils import generate_correlation_id
from clipsync.db.local_store import (
    BOOKMARKS_KEY,
    CATEGORIES_KEY,
    bookmarks_payload,
    categories_payload,
)
from clipsync.domain.exceptions import (
    BookmarkNotFoundError,
    CategoryDepthError,
    CategoryNotFoundError,
    InvalidCategoryError,
    SyncDisabledError,
)
from clipsync.domain.models import (
    DEFAULT_CATEGORY_NAME,
    DEFAULT_CHILD_ICON,
    DEFAULT_PARENT_ICON,
    Bookmark,
    Category,
    default_categories,
)
from clipsync.sync.constants import (
    BACKGROUND_UPLOAD_DELAY_SECONDS,
    BOOKMARKS_SCHEMA,
    CATEGORIES_SCHEMA,
    DEFAULT_MAX_RETRIES,
    DISABLED_ERROR,
)
from clipsync.sync.lock import SyncLock
from clipsync.sync.merge import (
    categories_differ,
    flatten_categories,
    merge_bookmarks,
    merge_categories,
)
from clipsync.sync.models import (
    CategoryEditResult,
    CategoryPushResult,
    CategorySyncResult,
    FailedItem,
    PullResult,
    PushResult,
    RemoteBookmarks,
    RemoteCategories,
)
from clipsync.sync.retry_ledger import DrainReport, RetryLedger
from clipsync.sync.rows import (
    BOOKMARK_DELETE_SQL,
    BOOKMARK_SELECT_SQL,
    BOOKMARK_UPSERT_SQL,
    CATEGORY_SELECT_SQL,
    bookmark_params,
    category_statements,
    row_to_bookmark,
    rows_to_category_tree,
)
from clipsync.sync.status import SyncStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from clipsync.adapters.turso.models import BatchResult, QueryResult
    from clipsync.config.sync import SyncConfig
    from clipsync.db.local_store import LocalStore
    from clipsync.domain.models import RetryLedgerEntry
    from clipsync.sync.protocols import SqlTransport, SqlTransportFactory

logger = logging.getLogger(__name__)

NOT_LOADED_MESSAGE = "Configuration not loaded"


def _find_category(
    tree: list[Category], category_id: str
) -> tuple[Category | None, Category | None]:
    """Return ``(category, parent)``; ``parent`` is ``None`` for top-level categories."""
    for parent in tree:
        if parent.id == category_id:
            return parent, None
        for child in parent.children:
            if child.id == category_id:
                return child, parent
    return None, None


def _new_category_id(prefix: str, taken: set[str]) -> str:
    millis = int(time.time() * 1000)
    candidate = f"{prefix}-{millis}"
    while candidate in taken:
        millis += 1
        candidate = f"{prefix}-{millis}"
    return candidate


class SyncCoordinator:
    """Keeps the local bookmark library and the remote database in step.

    Args:
        config: Remote sync settings; ``None`` means configuration was never loaded.
        store: Local key/value store.
        client: Ready transport to use instead of building one from ``config``.
        client_factory: Builds the transport on first remote call (default ``TursoClient``).
        upload_delay: Seconds to wait before uploading bookmarks found newer locally on pull.
    """

    def __init__(
        self,
        config: SyncConfig | None,
        store: LocalStore,
        *,
        client: SqlTransport | None = None,
        client_factory: SqlTransportFactory | None = None,
        upload_delay: float = BACKGROUND_UPLOAD_DELAY_SECONDS,
    ) -> None:
        self.config = config
        self._store = store
        self._client = client
        self._client_factory = client_factory or TursoClient
        self._upload_delay = upload_delay
        self._lock = SyncLock()
        self._ledger = RetryLedger(
            store,
            max_retries=config.max_retries if config is not None else DEFAULT_MAX_RETRIES,
        )
        self._background: set[asyncio.Task[None]] = set()

    # -- state ---------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.config is not None and self.config.is_active

    @property
    def lock(self) -> SyncLock:
        return self._lock

    @property
    def ledger(self) -> RetryLedger:
        return self._ledger

    def _remote(self) -> SqlTransport | None:
        if not self.enabled:
            return None
        if self._client is None:
            assert self.config is not None
            self._client = self._client_factory(
                self.config.db_url,
                self.config.auth_token,
                self.config.request_timeout_sec,
            )
        return self._client

    def require_enabled(self) -> None:
        """Raise when remote sync is not configured.

        Raises:
            SyncDisabledError: The configuration is missing, disabled or incomplete.
        """
        if not self.enabled:
            message = self.status_message()
            raise SyncDisabledError(message, details={"reason": message})

    def is_syncing(self) -> bool:
        return self._lock.locked

    def pending_retry_count(self) -> int:
        return self._ledger.pending_count()

    def status_message(self) -> str:
        if self.config is None:
            return NOT_LOADED_MESSAGE
        return self.config.status_message()

    def status(self) -> SyncStatus:
        return SyncStatus(
            enabled=self.enabled,
            syncing=self._lock.locked,
            holder=self._lock.holder,
            queued=self._lock.waiting,
            pending_retries=self._ledger.pending_count(),
            message=self.status_message(),
        )

    # -- lifecycle -----------------------------------------------------------

    async def initialize(self) -> DrainReport:
        """Replay whatever the ledger kept from a previous run."""
        if not self.enabled:
            logger.info("sync_disabled", extra={"reason": self.status_message()})
            return DrainReport(remaining=self._ledger.pending_count())
        async with self._lock.hold("initialize"):
            return await self._drain_unlocked(generate_correlation_id())

    async def retry_pending(self) -> DrainReport:
        if not self.enabled:
            return DrainReport(remaining=self._ledger.pending_count())
        async with self._lock.hold("retry_pending"):
            return await self._drain_unlocked(generate_correlation_id())

    async def wait_background(self) -> None:
        """Wait for scheduled background uploads to finish."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_background()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ensure_schema(self) -> BatchResult:
        """Create the remote tables when they do not exist yet."""
        client = self._remote()
        if client is None:
            return BatchError(message=DISABLED_ERROR)
        result = await client.batch([BOOKMARKS_SCHEMA, CATEGORIES_SCHEMA])
        if result.success:
            logger.info("remote_schema_ready")
        else:
            logger.error("remote_schema_failed", extra={"error": result.error})
        return result

    async def _drain_unlocked(self, correlation_id: str) -> DrainReport:
        if self._ledger.pending_count() == 0:
            return DrainReport()
        logger.info("retry_ledger_drain_started", extra={"correlation_id": correlation_id})
        return await self._ledger.drain(self._replay)

    async def _replay(self, entry: RetryLedgerEntry) -> bool:
        if entry.type == "delete":
            result = await self.delete_remote_bookmark(entry.entity_id, is_retry=True)
        else:
            bookmark = Bookmark.model_validate(entry.data)
            result = await self.upsert_remote_bookmark(bookmark, is_retry=True)
        return result.success

    # -- single bookmark -----------------------------------------------------

    async def upsert_remote_bookmark(
        self, bookmark: Bookmark, is_retry: bool = False
    ) -> QueryResult:
        """Insert or update one bookmark remotely; failures are recorded unless replaying."""
        client = self._remote()
        if client is None:
            return QueryError(message=DISABLED_ERROR)

        if not is_retry:
            # A newer save supersedes any pending delete of the same bookmark
            self._ledger.discard("delete", bookmark.id)
        result = await client.execute(BOOKMARK_UPSERT_SQL, bookmark_params(bookmark))
        if not result.success:
            logger.warning(
                "remote_bookmark_save_failed",
                extra={"bookmark_id": bookmark.id, "error": result.error, "is_retry": is_retry},
            )
            if not is_retry:
                payload = bookmark.to_storage()
                payload["screenshot"] = ""
                self._ledger.record("save", payload)
        elif not is_retry:
            self._ledger.discard("save", bookmark.id)
        return result

    async def delete_remote_bookmark(
        self, bookmark_id: str, is_retry: bool = False
    ) -> QueryResult:
        client = self._remote()
        if client is None:
            return QueryError(message=DISABLED_ERROR)

        if not is_retry:
            # A replayed save must not bring the bookmark back
            self._ledger.discard("save", bookmark_id)
        result = await client.execute(BOOKMARK_DELETE_SQL, [bookmark_id])
        if not result.success:
            logger.warning(
                "remote_bookmark_delete_failed",
                extra={"bookmark_id": bookmark_id, "error": result.error, "is_retry": is_retry},
            )
            if not is_retry:
                self._ledger.record("delete", {"id": bookmark_id})
        elif not is_retry:
            self._ledger.discard("delete", bookmark_id)
        return result

    async def fetch_remote_bookmarks(self) -> RemoteBookmarks:
        client = self._remote()
        if client is None:
            return RemoteBookmarks(success=False, error=DISABLED_ERROR)

        result = await client.execute(BOOKMARK_SELECT_SQL)
        if not isinstance(result, QueryOk):
            return RemoteBookmarks(success=False, error=result.error)

        bookmarks = [
            bookmark
            for bookmark in (row_to_bookmark(record) for record in result.records())
            if bookmark is not None
        ]
        return RemoteBookmarks(success=True, bookmarks=bookmarks)

    async def save_bookmark(self, bookmark: Bookmark) -> QueryResult:
        """Store ``bookmark`` locally (replacing any record with its id) and remotely."""
        bookmarks = self._store.load_bookmarks()
        for index, existing in enumerate(bookmarks):
            if existing.id == bookmark.id:
                bookmarks[index] = bookmark
                break
        else:
            bookmarks.insert(0, bookmark)
        self._store.save_bookmarks(bookmarks)
        return await self.upsert_remote_bookmark(bookmark)

    async def update_bookmark(self, bookmark_id: str, **changes: Any) -> Bookmark:
        """Apply ``changes`` to a stored bookmark, bump ``updatedAt`` and mirror it.

        Raises:
            BookmarkNotFoundError: No local bookmark has ``bookmark_id``.
        """
        for existing in self._store.load_bookmarks():
            if existing.id == bookmark_id:
                break
        else:
            msg = f"Bookmark {bookmark_id} not found"
            raise BookmarkNotFoundError(msg, details={"bookmark_id": bookmark_id})

        updated = existing.touch(**changes)
        await self.save_bookmark(updated)
        return updated

    async def delete_bookmark(self, bookmark_id: str) -> QueryResult:
        bookmarks = self._store.load_bookmarks()
        remaining = [bookmark for bookmark in bookmarks if bookmark.id != bookmark_id]
        if len(remaining) != len(bookmarks):
            self._store.save_bookmarks(remaining)
        return await self.delete_remote_bookmark(bookmark_id)

    # -- bookmark cycles -----------------------------------------------------

    async def pull_bookmarks(self) -> PullResult:
        """Merge the remote library into the local one.

        Local records that are newer or missing remotely are uploaded afterwards in
        a background task, outside the lock.
        """
        if not self.enabled:
            return PullResult(success=False, error=DISABLED_ERROR, message=DISABLED_ERROR)

        correlation_id = generate_correlation_id()
        async with self._lock.hold("pull_bookmarks"):
            await self._drain_unlocked(correlation_id)

            remote = await self.fetch_remote_bookmarks()
            if not remote.success:
                logger.warning(
                    "bookmark_pull_failed",
                    extra={"correlation_id": correlation_id, "error": remote.error},
                )
                return PullResult(success=False, error=remote.error, message=remote.error or "")

            merge = merge_bookmarks(self._store.load_bookmarks(), remote.bookmarks)
            self._store.save_bookmarks(merge.merged)

        if merge.to_upload:
            self._schedule_upload(merge.to_upload, correlation_id)

        uploaded = len(merge.to_upload)
        message = f"Synced {len(merge.merged)} bookmarks"
        if uploaded:
            message += f", {uploaded} uploaded"
        logger.info(
            "bookmark_pull_complete",
            extra={
                "correlation_id": correlation_id,
                "merged": len(merge.merged),
                "remote": len(remote.bookmarks),
                "to_upload": uploaded,
            },
        )
        return PullResult(success=True, bookmarks=merge.merged, uploaded=uploaded, message=message)

    def _schedule_upload(self, bookmarks: list[Bookmark], correlation_id: str) -> None:
        task = asyncio.create_task(self._upload_in_background(bookmarks, correlation_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _upload_in_background(self, bookmarks: list[Bookmark], correlation_id: str) -> None:
        await asyncio.sleep(self._upload_delay)
        failed = 0
        try:
            for bookmark in bookmarks:
                result = await self.upsert_remote_bookmark(bookmark)
                if not result.success:
                    failed += 1
        except Exception:
            logger.exception("background_upload_failed", extra={"correlation_id": correlation_id})
            return
        logger.info(
            "background_upload_complete",
            extra={"correlation_id": correlation_id, "total": len(bookmarks), "failed": failed},
        )

    async def push_bookmarks(self, bookmarks: Iterable[Bookmark] | None = None) -> PushResult:
        """Upsert every bookmark remotely; one failure never stops the rest."""
        if not self.enabled:
            return PushResult(success=False, error=DISABLED_ERROR, message=DISABLED_ERROR)

        correlation_id = generate_correlation_id()
        async with self._lock.hold("push_bookmarks"):
            await self._drain_unlocked(correlation_id)

            items = list(bookmarks) if bookmarks is not None else self._store.load_bookmarks()
            success_count = 0
            failed_items: list[FailedItem] = []
            for bookmark in items:
                result = await self.upsert_remote_bookmark(bookmark)
                if result.success:
                    success_count += 1
                else:
                    failed_items.append(
                        FailedItem(id=bookmark.id, title=bookmark.title, error=result.error)
                    )

        fail_count = len(failed_items)
        logger.info(
            "bookmark_push_complete",
            extra={
                "correlation_id": correlation_id,
                "succeeded": success_count,
                "failed": fail_count,
            },
        )
        return PushResult(
            success=fail_count == 0,
            success_count=success_count,
            fail_count=fail_count,
            failed_items=failed_items,
            message=f"Sync complete: {success_count} succeeded, {fail_count} failed",
        )

    # -- categories ----------------------------------------------------------

    async def fetch_remote_categories(self) -> RemoteCategories:
        client = self._remote()
        if client is None:
            return RemoteCategories(success=False, error=DISABLED_ERROR)

        result = await client.execute(CATEGORY_SELECT_SQL)
        if not isinstance(result, QueryOk):
            return RemoteCategories(success=False, error=result.error)
        return RemoteCategories(success=True, categories=rows_to_category_tree(result.records()))

    async def push_categories(
        self, categories: Iterable[Category] | None = None
    ) -> CategoryPushResult:
        """Replace the remote category table with ``categories`` in one batch."""
        if not self.enabled:
            return CategoryPushResult(success=False, error=DISABLED_ERROR, message=DISABLED_ERROR)

        async with self._lock.hold("push_categories"):
            tree = list(categories) if categories is not None else self.load_categories()
            return await self._push_categories_unlocked(tree)

    async def _push_categories_unlocked(self, tree: list[Category]) -> CategoryPushResult:
        client = self._remote()
        if client is None:
            return CategoryPushResult(success=False, error=DISABLED_ERROR, message=DISABLED_ERROR)

        statements, ids = category_statements(tree)
        if not statements:
            # Nothing local to keep; refuse to wipe the remote table
            return CategoryPushResult(success=True, count=0, message="Synced 0 categories")

        result = await client.batch(statements)
        if isinstance(result, BatchOk):
            logger.info("category_push_complete", extra={"count": len(ids)})
            return CategoryPushResult(
                success=True, count=len(ids), message=f"Synced {len(ids)} categories"
            )

        logger.warning("category_push_failed", extra={"error": result.error})
        return CategoryPushResult(
            success=False, error=result.error, message="Category sync failed"
        )

    async def sync_categories(self) -> CategorySyncResult:
        """Reconcile the local tree with the remote one without deleting either side's data."""
        local = self.load_categories()
        if not self.enabled:
            return CategorySyncResult(
                success=False, categories=local, error=DISABLED_ERROR, message=DISABLED_ERROR
            )

        correlation_id = generate_correlation_id()
        async with self._lock.hold("sync_categories"):
            remote = await self.fetch_remote_categories()
            if not remote.success:
                return CategorySyncResult(
                    success=False,
                    categories=local,
                    error=remote.error,
                    message="Category sync failed",
                )

            local = self.load_categories()
            if not remote.categories:
                pushed = await self._push_categories_unlocked(local)
                return CategorySyncResult(
                    success=pushed.success,
                    categories=local,
                    uploaded=pushed.success,
                    error=pushed.error,
                    message=pushed.message,
                )

            merged = merge_categories(local, remote.categories)
            changed = categories_differ(merged, local)
            uploaded = False
            error: str | None = None
            if changed:
                self._store.save_categories(merged)
                if categories_differ(merged, remote.categories):
                    pushed = await self._push_categories_unlocked(merged)
                    uploaded = pushed.success
                    error = pushed.error

        logger.info(
            "category_sync_complete",
            extra={
                "correlation_id": correlation_id,
                "count": len(merged),
                "changed": changed,
                "uploaded": uploaded,
            },
        )
        return CategorySyncResult(
            success=error is None,
            categories=merged,
            changed=changed,
            uploaded=uploaded,
            error=error,
            message=f"Sync complete, {len(flatten_categories(merged))} categories",
        )

    def load_categories(self) -> list[Category]:
        """Local tree; the default tree is seeded locally when none is stored."""
        categories = self._store.load_categories()
        if categories:
            return categories
        defaults = default_categories()
        self._store.save_categories(defaults)
        logger.info("default_categories_seeded", extra={"count": len(defaults)})
        return defaults

    async def save_categories(
        self, categories: Iterable[Category], *, sync_remote: bool = True
    ) -> CategoryEditResult:
        tree = list(categories)
        async with self._lock.hold("save_categories"):
            self._store.save_categories(tree)
            remote = await self._push_categories_unlocked(tree) if sync_remote else None
        return CategoryEditResult(categories=tree, remote=remote)

    async def add_category(
        self, name: str, icon: str | None = None, parent_id: str | None = None
    ) -> CategoryEditResult:
        """Create a category, top-level or under ``parent_id``, and push the tree."""
        clean_name = (name or "").strip()
        if not clean_name:
            msg = "Category name is required"
            raise InvalidCategoryError(msg)

        tree = [category.model_copy(deep=True) for category in self.load_categories()]
        taken = set(flatten_categories(tree))

        if parent_id is None:
            category = Category(
                id=_new_category_id("cat", taken),
                name=clean_name,
                icon=icon or DEFAULT_PARENT_ICON,
            )
            tree.append(category)
        else:
            parent, grandparent = _find_category(tree, parent_id)
            if parent is None:
                msg = f"Category {parent_id} not found"
                raise CategoryNotFoundError(msg, details={"category_id": parent_id})
            if grandparent is not None:
                msg = "Categories can only be nested one level deep"
                raise CategoryDepthError(msg, details={"parent_id": parent_id})
            parent.children.append(
                Category(
                    id=_new_category_id(parent.id, taken),
                    name=clean_name,
                    icon=icon or DEFAULT_CHILD_ICON,
                    parent_id=parent.id,
                )
            )

        return await self.save_categories(tree)

    async def rename_category(
        self, category_id: str, name: str, icon: str | None = None
    ) -> CategoryEditResult:
        """Rename a category and move every bookmark filed under the old name.

        The tree and the bookmarks are written in one local transaction.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            msg = "Category name is required"
            raise InvalidCategoryError(msg)

        async with self._lock.hold("rename_category"):
            tree = [category.model_copy(deep=True) for category in self.load_categories()]
            target, _ = _find_category(tree, category_id)
            if target is None:
                msg = f"Category {category_id} not found"
                raise CategoryNotFoundError(msg, details={"category_id": category_id})

            old_name = target.name
            target.name = clean_name
            if icon:
                target.icon = icon

            moved = 0
            bookmarks = self._store.load_bookmarks()
            changed: list[Bookmark] = []
            if old_name != clean_name:
                for index, bookmark in enumerate(bookmarks):
                    if bookmark.category == old_name:
                        bookmarks[index] = bookmark.touch(category=clean_name)
                        changed.append(bookmarks[index])
                moved = len(changed)

            self._store.set(
                {
                    CATEGORIES_KEY: categories_payload(tree),
                    BOOKMARKS_KEY: bookmarks_payload(bookmarks),
                }
            )
            logger.info(
                "category_renamed",
                extra={"category_id": category_id, "bookmarks_updated": moved},
            )

            remote = await self._push_categories_unlocked(tree)
            for bookmark in changed:
                await self.upsert_remote_bookmark(bookmark)

        return CategoryEditResult(categories=tree, bookmarks_updated=moved, remote=remote)

    async def delete_category(self, category_id: str) -> CategoryEditResult:
        """Remove a category; its bookmarks fall back to the default bucket."""
        async with self._lock.hold("delete_category"):
            tree = [category.model_copy(deep=True) for category in self.load_categories()]
            target, parent = _find_category(tree, category_id)
            if target is None:
                msg = f"Category {category_id} not found"
                raise CategoryNotFoundError(msg, details={"category_id": category_id})

            if parent is None:
                tree = [category for category in tree if category.id != category_id]
            else:
                parent.children = [child for child in parent.children if child.id != category_id]

            bookmarks = self._store.load_bookmarks()
            changed: list[Bookmark] = []
            for index, bookmark in enumerate(bookmarks):
                if bookmark.category in (target.name, target.id):
                    bookmarks[index] = bookmark.touch(category=DEFAULT_CATEGORY_NAME)
                    changed.append(bookmarks[index])

            self._store.set(
                {
                    CATEGORIES_KEY: categories_payload(tree),
                    BOOKMARKS_KEY: bookmarks_payload(bookmarks),
                }
            )
            logger.info(
                "category_deleted",
                extra={"category_id": category_id, "bookmarks_updated": len(changed)},
            )

            remote = await self._push_categories_unlocked(tree)
            for bookmark in changed:
                await self.upsert_remote_bookmark(bookmark)

        return CategoryEditResult(categories=tree, bookmarks_updated=len(changed), remote=remote)
