"""Turso (libSQL) HTTP client.

Turns one statement or an ordered batch of statements into exactly one POST against
the executor endpoint and normalizes every outcome into a result variant. Public
methods never raise for remote failures.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from clipsync.adapters.turso.models import (
    BatchError,
    BatchOk,
    BatchResult,
    QueryError,
    QueryOk,
    QueryResult,
    Statement,
    WireStatementResult,
)

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds

StatementLike = Statement | tuple[str, Sequence[Any]] | str


class TursoClientError(Exception):
    """Base exception for transport-level failures (converted to results by the client)."""


class TursoTimeoutError(TursoClientError):
    """The executor did not answer within the configured timeout."""


def to_http_url(db_url: str) -> str:
    """Map a ``libsql://`` database URL onto its HTTPS endpoint."""
    url = db_url.strip().rstrip("/")
    if url.startswith("libsql://"):
        return "https://" + url[len("libsql://") :]
    return url


def _coerce_statement(stmt: StatementLike) -> Statement:
    if isinstance(stmt, Statement):
        return stmt
    if isinstance(stmt, str):
        return Statement(sql=stmt)
    sql, params = stmt
    return Statement(sql=sql, params=list(params or []))


def _to_query_result(item: WireStatementResult) -> QueryResult:
    if item.error is not None:
        return QueryError(message=item.error.message)
    results = item.results
    if results is None:
        return QueryOk()
    return QueryOk(
        rows=results.rows,
        columns=results.columns,
        rows_affected=results.rows_affected or 0,
    )


class TursoClient:
    """Async HTTP client for a Turso / libSQL statement executor.

    The client may be used as an async context manager; otherwise the underlying
    ``httpx.AsyncClient`` is created on first use and released by :meth:`aclose`.
    """

    def __init__(
        self,
        db_url: str,
        auth_token: str,
        timeout: float = DEFAULT_TIMEOUT,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            db_url: Database URL (``libsql://...`` or ``https://...``)
            auth_token: Bearer token attached to every request
            timeout: Upper bound in seconds for one request
            transport: Optional httpx transport (used by tests)
        """
        self.db_url = db_url
        self.http_url = to_http_url(db_url)
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        """Enter async context."""
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context."""
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {self.auth_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, statements: list[Statement]) -> list[WireStatementResult]:
        """Send statements in one request and return the per-statement results.

        Raises:
            TursoTimeoutError: The request exceeded the timeout.
            TursoClientError: Network failure, non-2xx status or malformed response.
        """
        payload = {"statements": [stmt.to_wire() for stmt in statements]}
        started = time.perf_counter()
        try:
            response = await self._ensure_client().post(self.http_url, json=payload)
        except httpx.TimeoutException as exc:
            msg = f"sync timed out after {self.timeout:g}s"
            raise TursoTimeoutError(msg) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            msg = f"{type(exc).__name__}: {exc}"
            raise TursoClientError(msg) from exc

        latency_ms = int((time.perf_counter() - started) * 1000)
        if not response.is_success:
            msg = f"HTTP {response.status_code}: {response.text}"
            raise TursoClientError(msg)

        try:
            data = response.json()
        except ValueError as exc:
            msg = f"Invalid JSON response: {exc}"
            raise TursoClientError(msg) from exc

        if not isinstance(data, list):
            msg = "Unexpected response shape: expected a list of statement results"
            raise TursoClientError(msg)

        try:
            parsed = [WireStatementResult.model_validate(item) for item in data]
        except ValidationError as exc:
            msg = f"Unexpected statement result: {exc.errors()[0].get('msg', exc)}"
            raise TursoClientError(msg) from exc

        logger.debug(
            "turso_request_complete",
            extra={"statements": len(statements), "latency_ms": latency_ms},
        )
        return parsed

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> QueryResult:
        """Execute a single parameterized statement.

        Returns:
            ``QueryOk`` with rows/columns/rows_affected, or ``QueryError``.
        """
        statement = Statement(sql=sql, params=list(params))
        try:
            results = await self._post([statement])
        except TursoClientError as exc:
            logger.warning(
                "turso_execute_failed",
                extra={"error": str(exc), "timed_out": isinstance(exc, TursoTimeoutError)},
            )
            return QueryError(message=str(exc), timed_out=isinstance(exc, TursoTimeoutError))

        if not results:
            return QueryError(message="Empty response from executor")

        result = _to_query_result(results[0])
        if isinstance(result, QueryError):
            logger.warning("turso_statement_error", extra={"error": result.message})
        return result

    async def batch(self, statements: Iterable[StatementLike]) -> BatchResult:
        """Execute statements in one request, aggregating per-statement errors.

        The executor applies a batch as one unit where it can; a failure here only
        says that at least one statement reported an error.
        """
        prepared = [_coerce_statement(stmt) for stmt in statements]
        if not prepared:
            return BatchOk()

        try:
            raw = await self._post(prepared)
        except TursoClientError as exc:
            logger.warning(
                "turso_batch_failed",
                extra={
                    "error": str(exc),
                    "statements": len(prepared),
                    "timed_out": isinstance(exc, TursoTimeoutError),
                },
            )
            return BatchError(message=str(exc), timed_out=isinstance(exc, TursoTimeoutError))

        results: list[QueryOk | QueryError] = [_to_query_result(item) for item in raw]
        if len(results) < len(prepared):
            missing = len(prepared) - len(results)
            results.extend(
                QueryError(message="No result returned for statement") for _ in range(missing)
            )

        errors = [result.message for result in results if isinstance(result, QueryError)]
        if errors:
            logger.warning(
                "turso_batch_partial_failure",
                extra={"failed": len(errors), "statements": len(prepared)},
            )
            return BatchError(message="; ".join(errors), results=results)

        return BatchOk(results=[result for result in results if isinstance(result, QueryOk)])
