from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision and ``Z`` suffix."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_millis() -> int:
    return int(utc_now().timestamp() * 1000)


def ensure_datetime(value: Any) -> datetime | None:
    """Convert a value to an aware datetime, or ``None`` when it cannot be parsed.

    Naive values are assumed UTC. A trailing ``Z`` is accepted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("ensure_datetime_parse_failed", extra={"value": repr(value)})
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt
    logger.warning(
        "ensure_datetime_unexpected_type",
        extra={"type": type(value).__name__, "value": repr(value)},
    )
    return None


def timestamp_or_epoch(*values: Any) -> datetime:
    """Return the first parseable timestamp among ``values``, falling back to the epoch."""
    for value in values:
        if value in (None, ""):
            continue
        parsed = ensure_datetime(value)
        if parsed is not None:
            return parsed
    return EPOCH
