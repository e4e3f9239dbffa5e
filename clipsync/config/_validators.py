from __future__ import annotations

from typing import Any

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(value: Any, *, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    msg = f"{name} must be a boolean flag"
    raise ValueError(msg)


def _clean_token(value: Any) -> str:
    if value in (None, ""):
        return ""
    token = str(value).strip()
    if len(token) > 4096:
        msg = "Auth token appears to be too long"
        raise ValueError(msg)
    if any(char in token for char in (" ", "\n", "\t")):
        msg = "Auth token contains invalid characters"
        raise ValueError(msg)
    return token


def _normalize_db_url(value: Any) -> str:
    """Strip whitespace and trailing slashes; ``libsql://`` stays as configured."""
    if value in (None, ""):
        return ""
    url = str(value).strip().rstrip("/")
    if url and "://" not in url:
        msg = "Database URL must include a scheme (libsql://, https:// or http://)"
        raise ValueError(msg)
    return url
