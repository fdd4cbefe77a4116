"""Typed models and validation helpers for catalog_sync.

This module defines the query intent (``FilterState``), the structural request
fingerprint derived from it (``RequestKey``), the page shape returned by the
list/search endpoint (``ResultPage``) and the category record. It also
provides the validation and normalization helpers the store and the command
layer share.

The intent is to keep these models framework-agnostic and free of I/O. Higher
layers (store, deduplicator, HTTP client) are expected to compose them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypedDict

from .const import (
    ALLOWED_LIMITS,
    CATEGORY_ALL,
    COMMIT_LIMIT,
    DEFAULT_LIMIT,
    DEFAULT_SORT_ORDER,
    DEFAULT_STOCK_FILTER,
    SORT_ORDERS,
    STOCK_FILTERS,
    SUGGESTION_LIMIT,
)
from .exceptions import ValidationError

StockFilter = Literal["all", "active", "out-of-stock"]
SortOrder = Literal[
    "az",
    "za",
    "price-low",
    "price-high",
    "newest",
    "oldest",
    "stock-high",
    "stock-low",
    "relevance",
]

# Raw item payload as returned by the backend; identity lives in "_id" or "id".
Item = dict[str, Any]


@dataclass(frozen=True)
class FilterState:
    """Canonical filter/search/pagination intent of one browsing session.

    Attributes:
        category: ``"all"`` or a category id.
        page: Catalog listing page (1-based).
        limit: Catalog page size, one of ``ALLOWED_LIMITS``.
        stock_filter: Stock availability filter.
        sort_order: Backend sort key.
        search_text: Committed search text; empty when not searching.
        explicit_ids: Ordered item ids; when non-empty they override
            ``search_text`` for fetch purposes.
        search_page: Page of the search listing, independent of ``page``.
    """

    category: str = CATEGORY_ALL
    page: int = 1
    limit: int = DEFAULT_LIMIT
    stock_filter: StockFilter = DEFAULT_STOCK_FILTER  # type: ignore[assignment]
    sort_order: SortOrder = DEFAULT_SORT_ORDER  # type: ignore[assignment]
    search_text: str = ""
    explicit_ids: tuple[str, ...] = ()
    search_page: int = 1

    @property
    def search_active(self) -> bool:
        return bool(self.search_text) or bool(self.explicit_ids)

    @property
    def identifier_mode(self) -> bool:
        return bool(self.explicit_ids)

    @property
    def active_page(self) -> int:
        return self.search_page if self.search_active else self.page


DEFAULT_FILTER_STATE = FilterState()


@dataclass(frozen=True)
class RequestKey:
    """Structural fingerprint of every parameter that affects a fetch.

    Field-wise equal keys compare and hash equal, so they can be used directly
    as dictionary keys by the deduplicator.
    """

    category: str | None
    search_text: str | None
    explicit_ids: tuple[str, ...]
    page: int
    limit: int
    stock_filter: str
    sort_order: str

    @classmethod
    def for_results(cls, state: FilterState, *, commit_limit: int = COMMIT_LIMIT) -> RequestKey:
        """Build the key for the main result listing of ``state``.

        Explicit ids win over search text, and search text wins over the
        category. Search listings use ``search_page`` and ``commit_limit``.
        """

        if state.explicit_ids:
            return cls(
                category=None,
                search_text=None,
                explicit_ids=state.explicit_ids,
                page=state.search_page,
                limit=commit_limit,
                stock_filter=state.stock_filter,
                sort_order=state.sort_order,
            )
        if state.search_text:
            return cls(
                category=None,
                search_text=state.search_text,
                explicit_ids=(),
                page=state.search_page,
                limit=commit_limit,
                stock_filter=state.stock_filter,
                sort_order=state.sort_order,
            )
        return cls(
            category=state.category,
            search_text=None,
            explicit_ids=(),
            page=state.page,
            limit=state.limit,
            stock_filter=state.stock_filter,
            sort_order=state.sort_order,
        )

    @classmethod
    def for_suggestions(
        cls, state: FilterState, text: str, *, suggestion_limit: int = SUGGESTION_LIMIT
    ) -> RequestKey:
        """Build the key for an inline suggestion lookup of ``text``."""

        return cls(
            category=None,
            search_text=text,
            explicit_ids=(),
            page=1,
            limit=suggestion_limit,
            stock_filter=state.stock_filter,
            sort_order=state.sort_order,
        )

    @property
    def mode(self) -> Literal["ids", "search", "catalog"]:
        if self.explicit_ids:
            return "ids"
        if self.search_text:
            return "search"
        return "catalog"

    def to_params(self) -> dict[str, str]:
        """Render the key as list/search endpoint query parameters."""

        params: dict[str, str] = {
            "category": self.category or CATEGORY_ALL,
            "page": str(self.page),
            "limit": str(self.limit),
            "stockFilter": self.stock_filter,
            "sortBy": self.sort_order,
        }
        if self.explicit_ids:
            params["productIds"] = ",".join(self.explicit_ids)
        elif self.search_text:
            params["search"] = self.search_text
        return params


@dataclass(frozen=True)
class ResultPage:
    """One page of results as returned by the list/search endpoint."""

    items: tuple[Item, ...] = ()
    total: int = 0
    page: int = 1
    total_pages: int = 1


EMPTY_RESULT_PAGE = ResultPage()


@dataclass(frozen=True)
class Category:
    """Category record supplied by the category provider."""

    id: str
    slug: str
    name: str
    position: int = 0


class PageInfo(TypedDict):
    """Derived pagination metadata for a listing."""

    start_item: int
    end_item: int
    has_next_page: bool
    has_previous_page: bool
    is_first_page: bool
    is_last_page: bool


class SnapshotPagination(TypedDict):
    current_page: int
    total_pages: int
    visible_pages: list[int | str]


@dataclass
class FetchStatus:
    """Mutable status of the main result listing."""

    status: Literal["idle", "loading", "succeeded", "failed"] = "idle"
    error: str | None = None
    key: RequestKey | None = field(default=None)


# -----------------------------
# Validation helpers
# -----------------------------


def validate_positive_int(value: Any, *, field_name: str) -> int:
    """Return ``value`` as an int >= 1 or raise ValidationError.

    Booleans are rejected even though they are ints.
    """

    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer >= 1")
    if value < 1:
        raise ValidationError(f"{field_name} must be an integer >= 1")
    return value


def validate_limit(value: Any) -> int:
    limit = validate_positive_int(value, field_name="limit")
    if limit not in ALLOWED_LIMITS:
        allowed = ", ".join(str(x) for x in ALLOWED_LIMITS)
        raise ValidationError(f"limit must be one of: {allowed}")
    return limit


def validate_stock_filter(value: Any) -> StockFilter:
    if value not in STOCK_FILTERS:
        raise ValidationError("stock_filter must be one of: " + ", ".join(STOCK_FILTERS))
    return value  # type: ignore[return-value]


def validate_sort_order(value: Any) -> SortOrder:
    if value not in SORT_ORDERS:
        raise ValidationError("sort_order must be one of: " + ", ".join(SORT_ORDERS))
    return value  # type: ignore[return-value]


def validate_category(value: Any) -> str:
    """Validate a category id and return it trimmed; empty means ``"all"``."""

    if value is None:
        return CATEGORY_ALL
    if not isinstance(value, str):
        raise ValidationError("category must be a string")
    trimmed = value.strip()
    if not trimmed or trimmed.casefold() == CATEGORY_ALL:
        return CATEGORY_ALL
    return trimmed


def normalize_search_text(value: Any) -> str:
    """Trim and collapse internal whitespace of a search string."""

    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("search text must be a string")
    return " ".join(value.split())


def normalize_ids(ids: Iterable[Any] | None) -> tuple[str, ...]:
    """Trim and de-duplicate item ids, preserving order."""

    if not ids:
        return ()
    if isinstance(ids, str):
        raise ValidationError("explicit_ids must be a list of ids, not a string")
    seen: set[str] = set()
    result: list[str] = []
    for raw in ids:
        if raw is None:
            continue
        item_id = str(raw).strip()
        if not item_id:
            continue
        if item_id not in seen:
            seen.add(item_id)
            result.append(item_id)
    return tuple(result)


def parse_page_param(value: str | None) -> int:
    """Parse a ``page`` query value; anything unusable becomes page 1."""

    if value is None:
        return 1
    try:
        page = int(str(value).strip())
    except ValueError:
        return 1
    return max(1, page)


def filter_state_from_dict(data: Mapping[str, Any]) -> FilterState:
    """Build a validated FilterState from a plain dict (see ``filter_state_to_dict``)."""

    if not isinstance(data, Mapping):
        raise ValidationError("filter state payload must be a mapping")
    return FilterState(
        category=validate_category(data.get("category", CATEGORY_ALL)),
        page=validate_positive_int(data.get("page", 1), field_name="page"),
        limit=validate_limit(data.get("limit", DEFAULT_LIMIT)),
        stock_filter=validate_stock_filter(data.get("stock_filter", DEFAULT_STOCK_FILTER)),
        sort_order=validate_sort_order(data.get("sort_order", DEFAULT_SORT_ORDER)),
        search_text=normalize_search_text(data.get("search_text", "")),
        explicit_ids=normalize_ids(data.get("explicit_ids")),
        search_page=validate_positive_int(data.get("search_page", 1), field_name="search_page"),
    )


def filter_state_to_dict(state: FilterState) -> dict[str, Any]:
    return {
        "category": state.category,
        "page": state.page,
        "limit": state.limit,
        "stock_filter": state.stock_filter,
        "sort_order": state.sort_order,
        "search_text": state.search_text,
        "explicit_ids": list(state.explicit_ids),
        "search_page": state.search_page,
    }
