"""Filter State Store for catalog_sync.

Holds the canonical ``FilterState`` of a browsing session. Every setter
validates its input, derives the next state with ``dataclasses.replace`` and
swaps it in as a whole, so readers never observe a half-applied change.
Listeners are notified synchronously, in registration order, with
``(old, new, origin)``.

A setter whose result equals the current state is a no-op: it returns False
and notifies nobody. Repeating an action is therefore idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any, Literal

from .const import DOMAIN
from .models import (
    DEFAULT_FILTER_STATE,
    FilterState,
    filter_state_from_dict,
    filter_state_to_dict,
    normalize_ids,
    normalize_search_text,
    validate_category,
    validate_limit,
    validate_positive_int,
    validate_sort_order,
    validate_stock_filter,
)

LOGGER = logging.getLogger(__name__)

Origin = Literal["user", "url", "engine"]
StateListener = Callable[[FilterState, FilterState, Origin], None]

# Fields whose change alters the catalog listing only
CATALOG_FIELDS: frozenset[str] = frozenset(
    {"category", "page", "limit", "stock_filter", "sort_order"}
)
SEARCH_FIELDS: frozenset[str] = frozenset({"search_text", "explicit_ids", "search_page"})


def changed_fields(old: FilterState, new: FilterState) -> frozenset[str]:
    """Return the names of the fields that differ between two states."""

    names = CATALOG_FIELDS | SEARCH_FIELDS
    return frozenset(name for name in names if getattr(old, name) != getattr(new, name))


class FilterStateStore:
    """Single-writer holder of the session's ``FilterState``."""

    def __init__(self, initial: FilterState | None = None) -> None:
        self._state: FilterState = initial if initial is not None else DEFAULT_FILTER_STATE
        self._listeners: list[StateListener] = []

    # -----------------------------
    # Read access & listeners
    # -----------------------------

    @property
    def state(self) -> FilterState:
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _commit(self, new: FilterState, *, origin: Origin, op: str) -> bool:
        old = self._state
        if new == old:
            return False
        self._state = new
        LOGGER.debug(
            "Filter state changed",
            extra={
                "domain": DOMAIN,
                "op": op,
                "origin": origin,
                "fields": sorted(changed_fields(old, new)),
            },
        )
        # Iterate over a snapshot so listeners may unsubscribe themselves
        for listener in list(self._listeners):
            listener(old, new, origin)
        return True

    # -----------------------------
    # Catalog setters
    # -----------------------------

    def set_category(self, category: str | None, *, origin: Origin = "user") -> bool:
        """Select a category; always lands on page 1."""

        value = validate_category(category)
        return self._commit(
            replace(self._state, category=value, page=1), origin=origin, op="set_category"
        )

    def set_stock_filter(self, stock_filter: str, *, origin: Origin = "user") -> bool:
        value = validate_stock_filter(stock_filter)
        return self._commit(
            replace(self._state, stock_filter=value, page=1, search_page=1),
            origin=origin,
            op="set_stock_filter",
        )

    def set_sort_order(self, sort_order: str, *, origin: Origin = "user") -> bool:
        value = validate_sort_order(sort_order)
        return self._commit(
            replace(self._state, sort_order=value, page=1, search_page=1),
            origin=origin,
            op="set_sort_order",
        )

    def set_limit(self, limit: int, *, origin: Origin = "user") -> bool:
        value = validate_limit(limit)
        return self._commit(replace(self._state, limit=value, page=1), origin=origin, op="set_limit")

    def set_page(self, page: int, *, origin: Origin = "user") -> bool:
        value = validate_positive_int(page, field_name="page")
        return self._commit(replace(self._state, page=value), origin=origin, op="set_page")

    def set_search_page(self, page: int, *, origin: Origin = "user") -> bool:
        value = validate_positive_int(page, field_name="search_page")
        return self._commit(
            replace(self._state, search_page=value), origin=origin, op="set_search_page"
        )

    # -----------------------------
    # Search setters
    # -----------------------------

    def commit_search(self, text: str, *, origin: Origin = "user") -> bool:
        """Commit free-text search; drops any explicit ids and restarts at page 1.

        Committing empty text clears the search instead.
        """

        value = normalize_search_text(text)
        if not value:
            return self.clear_search(origin=origin)
        return self._commit(
            replace(self._state, search_text=value, explicit_ids=(), search_page=1),
            origin=origin,
            op="commit_search",
        )

    def set_explicit_ids(
        self, ids: Iterable[Any], *, label: str | None = None, origin: Origin = "user"
    ) -> bool:
        """Switch to identifier mode.

        ``label`` becomes the displayed search text when given; the ids take
        priority over it for fetch purposes.
        """

        value = normalize_ids(ids)
        text = self._state.search_text if label is None else normalize_search_text(label)
        return self._commit(
            replace(self._state, explicit_ids=value, search_text=text, search_page=1),
            origin=origin,
            op="set_explicit_ids",
        )

    def clear_explicit_ids(self, *, origin: Origin = "user") -> bool:
        return self._commit(
            replace(self._state, explicit_ids=()), origin=origin, op="clear_explicit_ids"
        )

    def clear_search(self, *, origin: Origin = "user") -> bool:
        """Leave search mode; the catalog page is preserved."""

        return self._commit(
            replace(self._state, search_text="", explicit_ids=(), search_page=1),
            origin=origin,
            op="clear_search",
        )

    # -----------------------------
    # URL application
    # -----------------------------

    def preview_url_state(self, *, category: str, page: int, search_text: str) -> FilterState:
        """Return the state a decoded address-bar query would produce.

        In search mode ``page`` is the search page and the catalog page is kept
        when the category did not change. Explicit ids survive only when the
        decoded search text equals the current one. Nothing is committed.
        """

        current = self._state
        category_value = validate_category(category)
        text = normalize_search_text(search_text)
        page_value = validate_positive_int(page, field_name="page")

        catalog_page = current.page if category_value == current.category else 1
        ids = current.explicit_ids if text and text == current.search_text else ()
        if text:
            new = replace(
                current,
                category=category_value,
                page=catalog_page,
                search_text=text,
                explicit_ids=ids,
                search_page=page_value,
            )
        else:
            new = replace(
                current,
                category=category_value,
                page=page_value,
                search_text="",
                explicit_ids=(),
                search_page=1,
            )
        return new

    def apply_url_state(
        self,
        *,
        category: str,
        page: int,
        search_text: str,
        origin: Origin = "url",
    ) -> bool:
        """Write a decoded address-bar state in one step (see ``preview_url_state``)."""

        new = self.preview_url_state(category=category, page=page, search_text=search_text)
        return self._commit(new, origin=origin, op="apply_url_state")

    # -----------------------------
    # Persistence: export/import
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        return filter_state_to_dict(self._state)

    def load_state(self, data: dict[str, Any], *, origin: Origin = "engine") -> bool:
        return self._commit(filter_state_from_dict(data), origin=origin, op="load_state")

    def reset(self, *, origin: Origin = "user") -> bool:
        return self._commit(DEFAULT_FILTER_STATE, origin=origin, op="reset")
