"""Constants for the catalog_sync engine.

Defines the domain name used in structured log context and events, the
public package version, and the defaults shared by the store, dispatcher and
URL synchronizer.
"""

from typing import Final

# Domain used across all modules in log context and event payloads
DOMAIN: str = "catalog_sync"

# Public package version (kept in sync with pyproject.toml)
INTEGRATION_VERSION: str = "0.1.0"

# Sentinel category meaning "no category filter"
CATEGORY_ALL: Final[str] = "all"

# Page sizes a catalog listing may use
ALLOWED_LIMITS: Final[tuple[int, ...]] = (12, 24, 48, 96)
DEFAULT_LIMIT: Final[int] = 24

STOCK_FILTERS: Final[tuple[str, ...]] = ("all", "active", "out-of-stock")
DEFAULT_STOCK_FILTER: Final[str] = "active"

SORT_ORDERS: Final[tuple[str, ...]] = (
    "az",
    "za",
    "price-low",
    "price-high",
    "newest",
    "oldest",
    "stock-high",
    "stock-low",
    "relevance",
)
DEFAULT_SORT_ORDER: Final[str] = "az"

# Debounced suggestion channel (seconds / result size)
SUGGESTION_DEBOUNCE_DELAY: Final[float] = 0.15
SUGGESTION_LIMIT: Final[int] = 10
MIN_SUGGESTION_LENGTH: Final[int] = 2

# Committed search channel result size
COMMIT_LIMIT: Final[int] = 100

# Pagination window
MAX_VISIBLE_PAGES: Final[int] = 5
ELLIPSIS: Final[str] = "..."

# Address-bar query parameter names
PARAM_CATEGORY: Final[str] = "category"
PARAM_PAGE: Final[str] = "page"
PARAM_SEARCH: Final[str] = "search"

# Search history
HISTORY_MAX_ENTRIES: Final[int] = 5

# HTTP client
DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0
