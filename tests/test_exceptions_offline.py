"""Offline tests for exception taxonomy.

Each test constructs an exception and asserts type relationships and message
round-tripping, ensuring ``str(exc)`` equals the provided message.
"""

from __future__ import annotations

import pytest
from catalog_sync.exceptions import (
    CatalogSyncError,
    ConfigError,
    FetchError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_validation_error_message_and_type():
    # ValidationError should subclass CatalogSyncError and preserve message
    message = "limit must be one of: 12, 24, 48, 96"
    exc = ValidationError(message)
    assert isinstance(exc, CatalogSyncError)
    assert str(exc) == message


@pytest.mark.asyncio
async def test_fetch_error_message_and_type():
    message = "backend answered with HTTP 503"
    exc = FetchError(message)
    assert isinstance(exc, CatalogSyncError)
    assert str(exc) == message


@pytest.mark.asyncio
async def test_config_error_message_and_type():
    message = "invalid options"
    exc = ConfigError(message)
    assert isinstance(exc, CatalogSyncError)
    assert str(exc) == message


def test_base_error_is_plain_exception():
    assert issubclass(CatalogSyncError, Exception)
    with pytest.raises(CatalogSyncError):
        raise FetchError("boom")
