"""Turso / libSQL HTTP adapter used to mirror the local library remotely."""

from clipsync.adapters.turso.client import TursoClient
from clipsync.adapters.turso.models import (
    BatchError,
    BatchOk,
    BatchResult,
    QueryError,
    QueryOk,
    QueryResult,
    Statement,
)

__all__ = [
    "BatchError",
    "BatchOk",
    "BatchResult",
    "QueryError",
    "QueryOk",
    "QueryResult",
    "Statement",
    "TursoClient",
]
