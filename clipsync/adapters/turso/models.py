"""Pydantic models for the remote SQL executor wire format and its results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Statement(BaseModel):
    """One parameterized SQL statement."""

    sql: str
    params: list[Any] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {"q": self.sql, "params": self.params}


class WireStatementError(BaseModel):
    message: str = "SQL statement failed"

    model_config = {"extra": "ignore"}


class WireResultSet(BaseModel):
    rows: list[list[Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    rows_affected: int | None = 0

    model_config = {"extra": "ignore"}


class WireStatementResult(BaseModel):
    """One element of the executor's response array."""

    results: WireResultSet | None = None
    error: WireStatementError | None = None

    model_config = {"extra": "ignore"}


class QueryOk(BaseModel):
    """A statement that executed successfully."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ok"] = "ok"
    rows: list[list[Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    rows_affected: int = 0

    @property
    def success(self) -> bool:
        return True

    def records(self) -> list[dict[str, Any]]:
        """Rows as dicts keyed by column name."""
        return [dict(zip(self.columns, row, strict=False)) for row in self.rows]


class QueryError(BaseModel):
    """A statement or request that failed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    message: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return False

    @property
    def error(self) -> str:
        return self.message


QueryResult = QueryOk | QueryError


class BatchOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ok"] = "ok"
    results: list[QueryOk] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return True


class BatchError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    message: str
    results: list[QueryOk | QueryError] = Field(default_factory=list)
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return False

    @property
    def error(self) -> str:
        return self.message


BatchResult = BatchOk | BatchError
