from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _clean_token, _normalize_db_url, _parse_bool

logger = logging.getLogger(__name__)


class SyncConfig(BaseModel):
    """Remote SQL mirror configuration.

    Sync is active only when ``enabled`` is set and both the database URL and the
    auth token are present; see :attr:`is_active`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = Field(default=False, validation_alias="TURSO_ENABLED")
    db_url: str = Field(default="", validation_alias="TURSO_DB_URL")
    auth_token: str = Field(default="", validation_alias="TURSO_AUTH_TOKEN")
    request_timeout_sec: float = Field(
        default=30.0,
        validation_alias="TURSO_REQUEST_TIMEOUT_SEC",
        description="Upper bound for a single request to the remote executor",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="SYNC_MAX_RETRIES",
        description="Recorded attempts after which a failed mutation is abandoned",
    )

    @field_validator("enabled", mode="before")
    @classmethod
    def _validate_enabled(cls, value: Any) -> bool:
        return _parse_bool(value, name="TURSO_ENABLED")

    @field_validator("db_url", mode="before")
    @classmethod
    def _validate_db_url(cls, value: Any) -> str:
        return _normalize_db_url(value)

    @field_validator("auth_token", mode="before")
    @classmethod
    def _validate_auth_token(cls, value: Any) -> str:
        return _clean_token(value)

    @field_validator("request_timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        if value in (None, ""):
            return 30.0
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = "Request timeout must be a number of seconds"
            raise ValueError(msg) from exc
        if parsed <= 0 or parsed > 300:
            msg = "Request timeout must be between 0 and 300 seconds"
            raise ValueError(msg)
        return parsed

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any, info: ValidationInfo) -> int:
        if value in (None, ""):
            return int(cls.model_fields[info.field_name].default)
        try:
            parsed = int(str(value))
        except ValueError as exc:
            msg = "Sync max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 20:
            msg = "Sync max retries must be between 1 and 20"
            raise ValueError(msg)
        return parsed

    @property
    def is_active(self) -> bool:
        return bool(self.enabled and self.db_url and self.auth_token)

    def status_message(self) -> str:
        """Human-readable enablement state."""
        has_url = bool(self.db_url)
        has_token = bool(self.auth_token)
        if not self.enabled and has_url and has_token:
            return "Remote settings filled in but sync is not enabled"
        if not self.enabled:
            return "Remote sync is not enabled"
        if not has_url:
            return "Database URL is missing"
        if not has_token:
            return "Auth token is missing"
        return "Enabled"
