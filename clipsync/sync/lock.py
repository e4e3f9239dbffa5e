"""Single-flight lock for coordinated sync operations.

At most one protected operation runs at a time; callers that find the lock held wait
in strict FIFO order and receive ownership directly from the releasing holder, so no
newcomer can cut in between a release and the next waiter resuming.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class SyncLock:
    """FIFO hand-off lock.

    Example:
        lock = SyncLock()

        async with lock.hold("pull_bookmarks"):
            await pull()
    """

    def __init__(self) -> None:
        self._locked = False
        self._holder: str | None = None
        self._waiters: deque[tuple[str, asyncio.Future[None]]] = deque()

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def holder(self) -> str | None:
        """Name of the operation currently holding the lock."""
        return self._holder

    @property
    def waiting(self) -> int:
        return sum(1 for _, future in self._waiters if not future.done())

    async def acquire(self, operation: str) -> None:
        """Take the lock, queueing behind earlier callers if it is held."""
        if not self._locked:
            self._locked = True
            self._holder = operation
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append((operation, future))
        logger.debug(
            "sync_lock_queued",
            extra={"operation": operation, "holder": self._holder, "position": len(self._waiters)},
        )
        try:
            await future
        except asyncio.CancelledError:
            if future.done() and not future.cancelled():
                # Ownership was handed over just before cancellation; pass it on.
                self.release(operation)
            raise

    def release(self, operation: str) -> None:
        """Hand the lock to the oldest live waiter, or free it."""
        if not self._locked:
            logger.warning("sync_lock_release_unheld", extra={"operation": operation})
            return

        while self._waiters:
            next_operation, future = self._waiters.popleft()
            if future.done():
                continue
            self._holder = next_operation
            future.set_result(None)
            return

        self._locked = False
        self._holder = None

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        """Hold the lock for the body, releasing it on every exit path."""
        await self.acquire(operation)
        try:
            yield
        finally:
            self.release(operation)
