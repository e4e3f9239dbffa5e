"""Domain-specific exceptions.

Remote failures are reported through result objects, never raised; these exceptions
cover configuration, local persistence and invalid edits requested by callers.
"""


class ClipsyncError(Exception):
    """Base exception for all clipsync errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SyncDisabledError(ClipsyncError):
    """Raised when a remote operation is requested while sync is not configured."""


class LocalStoreError(ClipsyncError):
    """Raised when the local store cannot be read or written."""


class BookmarkNotFoundError(ClipsyncError):
    """Raised when a bookmark id is not present in the local store."""


class CategoryNotFoundError(ClipsyncError):
    """Raised when a category id is not present in the local tree."""


class CategoryDepthError(ClipsyncError):
    """Raised when an edit would nest a category more than one level deep."""


class InvalidCategoryError(ClipsyncError):
    """Raised when a category edit carries invalid values."""
