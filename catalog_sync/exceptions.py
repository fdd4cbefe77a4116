"""Exception taxonomy for catalog_sync.

Defines a small hierarchy of exceptions used across the store, the request
layer and the command handlers.

All exceptions accept a human-readable message. ``str(exception)`` returns the
message unchanged.
"""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base exception for catalog_sync errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(CatalogSyncError):
    """Raised when setter or command input fails validation."""


class FetchError(CatalogSyncError):
    """Raised when the list/search endpoint fails or returns a malformed payload."""


class ConfigError(CatalogSyncError):
    """Raised when engine options are invalid."""
