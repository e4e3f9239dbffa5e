"""Read-only snapshot of the coordinator state for status displays."""

from __future__ import annotations

from pydantic import BaseModel


class SyncStatus(BaseModel):
    enabled: bool
    syncing: bool
    holder: str | None = None
    queued: int = 0
    pending_retries: int = 0
    message: str = ""

    def summary(self) -> str:
        state = f"syncing ({self.holder})" if self.syncing else "idle"
        return (
            f"{self.message}; {state}; queued={self.queued}; "
            f"pending_retries={self.pending_retries}"
        )
