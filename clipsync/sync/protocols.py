"""Protocol definitions (ports) for the remote SQL transport.

The coordinator depends on these instead of ``TursoClient`` so tests can swap in
any executor.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from clipsync.adapters.turso.client import StatementLike
    from clipsync.adapters.turso.models import BatchResult, QueryResult


class SqlTransport(Protocol):
    async def execute(self, sql: str, params: Iterable[Any] = ()) -> QueryResult: ...

    async def batch(self, statements: Iterable[StatementLike]) -> BatchResult: ...

    async def aclose(self) -> None: ...


class SqlTransportFactory(Protocol):
    def __call__(self, db_url: str, auth_token: str, timeout: float) -> SqlTransport: ...
