"""catalog_sync bootstrap.

Builds a ``CatalogEngine`` backed by the HTTP client, loads the category
list, applies the address bar's current query and starts the first fetch.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from .client import CatalogClient
from .config import EngineOptions, load_options
from .const import DOMAIN, INTEGRATION_VERSION
from .engine import CatalogEngine
from .exceptions import CatalogSyncError, ConfigError, FetchError, ValidationError
from .url_sync import AddressBar, MemoryAddressBar

__all__ = [
    "INTEGRATION_VERSION",
    "CatalogClient",
    "CatalogEngine",
    "CatalogSyncError",
    "ConfigError",
    "EngineOptions",
    "FetchError",
    "MemoryAddressBar",
    "ValidationError",
    "async_setup",
    "async_unload",
]

LOGGER = logging.getLogger(__name__)


async def async_setup(
    session: aiohttp.ClientSession,
    options: Mapping[str, Any] | EngineOptions,
    *,
    address_bar: AddressBar | None = None,
) -> CatalogEngine:
    """Create and start an engine talking to ``options.base_url``.

    A failed category fetch does not abort setup: the engine runs with an
    empty category list, so category slugs in the URL fall back to ``"all"``.
    """

    opts = load_options(options)
    if not opts.base_url:
        raise ConfigError("base_url is required")

    client = CatalogClient(session, opts.base_url, timeout=opts.request_timeout)
    engine = CatalogEngine(client.async_fetch_page, address_bar=address_bar, options=opts)

    try:
        categories = await client.async_fetch_categories()
    except FetchError:
        LOGGER.error(
            "Failed to load categories during setup",
            extra={"domain": DOMAIN, "op": "setup_categories"},
            exc_info=True,
        )
        categories = []
    engine.set_categories(categories)
    await engine.async_start()
    LOGGER.debug(
        "Engine set up",
        extra={"domain": DOMAIN, "op": "setup", "categories": len(categories)},
    )
    return engine


async def async_unload(engine: CatalogEngine) -> bool:
    """Cancel pending timers and wait for in-flight refreshes."""

    await engine.async_close()
    return True
