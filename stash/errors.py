"""
Stash — Core Error Types

Defines the exception hierarchy for the cache runtime.
All exceptions inherit from StashError for consistent error handling.

Misses, malformed stored data and missing files are NOT errors; adapters
report them as a miss and clean up silently. Only genuine medium failures
that survive one repair-and-retry cycle are surfaced.
"""

from typing import Any


class StashError(Exception):
    """Base exception for all Stash errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a plain dictionary (for logs and reports)."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(StashError):
    """Raised when configuration is invalid or missing."""


class CacheError(StashError):
    """Base exception for cache-related errors."""


class CacheOperationError(CacheError):
    """Raised when a cache operation fails."""


class StorageFullError(CacheOperationError):
    """Raised when the backing medium rejects a write even after repair-and-retry."""

    def __init__(self, backend: str, key: str, details: dict[str, Any] | None = None):
        message = f"Storage write failed after repair for key '{key}' ({backend} backend)"
        error_details = details or {}
        error_details.update({"backend": backend, "key": key})
        super().__init__(message, error_details)
        self.backend = backend
        self.key = key


class StorageQuotaExceededError(CacheOperationError):
    """Raised by a capacity-bounded key/value store when a write does not fit."""

    def __init__(self, quota: int, required: int):
        message = f"Key/value store quota exceeded: {required} > {quota} characters"
        super().__init__(message, {"quota": quota, "required": required})
        self.quota = quota
        self.required = required
