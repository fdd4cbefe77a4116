"""URL Synchronizer: keeps the address bar query and the FilterState equivalent.

The synchronizer is a three-state machine:

- ``IDLE``: waiting for either a navigation event or a store mutation;
- ``APPLYING_FROM_URL``: writing a decoded navigation into the store; store
  notifications raised meanwhile never push back to the address bar;
- ``PUSHING_TO_URL``: replacing the address bar query after a store mutation;
  navigation events delivered meanwhile are ignored.

Only three query parameters are owned: ``category`` (slug, omitted for
``"all"``), ``page`` (omitted for 1) and ``search`` (omitted when empty).
Every other parameter in the query is preserved on push.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .categories import CategoryIndex
from .const import CATEGORY_ALL, DOMAIN, PARAM_CATEGORY, PARAM_PAGE, PARAM_SEARCH
from .models import FilterState, normalize_search_text, parse_page_param
from .state import CATALOG_FIELDS, FilterStateStore, Origin, changed_fields

LOGGER = logging.getLogger(__name__)

URL_PARAMS: tuple[str, ...] = (PARAM_CATEGORY, PARAM_PAGE, PARAM_SEARCH)


class SyncState(Enum):
    IDLE = "idle"
    APPLYING_FROM_URL = "applying_from_url"
    PUSHING_TO_URL = "pushing_to_url"


class AddressBar(Protocol):
    """What the synchronizer needs from the host's address bar."""

    @property
    def query(self) -> dict[str, str]: ...

    def replace(self, query: Mapping[str, str]) -> None: ...


class MemoryAddressBar:
    """In-process address bar keeping a history of its queries."""

    def __init__(self, query: Mapping[str, str] | None = None) -> None:
        self._query: dict[str, str] = dict(query or {})
        self.history: list[dict[str, str]] = [dict(self._query)]
        self.replace_count = 0
        self.push_count = 0

    @property
    def query(self) -> dict[str, str]:
        return dict(self._query)

    def replace(self, query: Mapping[str, str]) -> None:
        """Swap the current entry's query without adding a history entry."""

        self._query = dict(query)
        self.history[-1] = dict(self._query)
        self.replace_count += 1

    def push(self, query: Mapping[str, str]) -> None:
        """Add a history entry, as a link click would."""

        self._query = dict(query)
        self.history.append(dict(self._query))
        self.push_count += 1

    def back(self) -> dict[str, str]:
        """Drop the current entry and return the previous query."""

        if len(self.history) > 1:
            self.history.pop()
        self._query = dict(self.history[-1])
        return self.query


@dataclass(frozen=True)
class UrlState:
    """Decoded address-bar parameters; ``category`` is still a slug."""

    category: str | None = None
    page: int = 1
    search: str = ""


def encode_url_state(
    state: FilterState, categories: CategoryIndex | None = None
) -> dict[str, str]:
    """Render ``state`` as the sparse owned query parameters."""

    query: dict[str, str] = {}
    if state.category != CATEGORY_ALL:
        slug = categories.slug_for(state.category) if categories is not None else None
        query[PARAM_CATEGORY] = slug or state.category
    if state.active_page > 1:
        query[PARAM_PAGE] = str(state.active_page)
    if state.search_text:
        query[PARAM_SEARCH] = state.search_text
    return query


def decode_url_state(query: Mapping[str, str]) -> UrlState:
    """Parse the owned parameters; bad page values become 1."""

    raw_category = query.get(PARAM_CATEGORY)
    category = raw_category.strip() if isinstance(raw_category, str) else None
    if not category or category.casefold() == CATEGORY_ALL:
        category = None
    raw_search = query.get(PARAM_SEARCH)
    search = normalize_search_text(raw_search) if isinstance(raw_search, str) else ""
    return UrlState(category=category, page=parse_page_param(query.get(PARAM_PAGE)), search=search)


def query_diff(current: Mapping[str, str], desired: Mapping[str, str]) -> dict[str, str | None]:
    """Owned parameters whose value changes; None marks a removal."""

    diff: dict[str, str | None] = {}
    for name in URL_PARAMS:
        if current.get(name) != desired.get(name):
            diff[name] = desired.get(name)
    return diff


class UrlSynchronizer:
    """Binds a FilterStateStore to an address bar."""

    def __init__(
        self,
        store: FilterStateStore,
        address_bar: AddressBar,
        categories: CategoryIndex,
        *,
        on_push: Callable[[dict[str, str]], None] | None = None,
        clamp_page: Callable[[FilterState], int] | None = None,
    ) -> None:
        self._store = store
        self._address_bar = address_bar
        self._categories = categories
        self._on_push = on_push
        self._clamp_page = clamp_page
        self._state = SyncState.IDLE
        self._pending_navigation: UrlState | None = None
        self._remove_listener = store.add_listener(self._on_state_changed)

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def navigation_pending(self) -> bool:
        return self._pending_navigation is not None

    def close(self) -> None:
        self._remove_listener()
        self._pending_navigation = None

    # -----------------------------
    # URL -> store
    # -----------------------------

    def handle_navigation(self, query: Mapping[str, str]) -> bool:
        """Apply an external navigation (back/forward, reload).

        Returns True when the store changed. A navigation carrying a category
        slug is held back until the category list is loaded.
        """

        if self._state is SyncState.PUSHING_TO_URL:
            LOGGER.debug(
                "Navigation ignored while pushing",
                extra={"domain": DOMAIN, "op": "url_navigation_ignored"},
            )
            return False

        decoded = decode_url_state(query)
        if decoded.category is not None and not self._categories.loaded:
            self._pending_navigation = decoded
            LOGGER.debug(
                "Navigation deferred until categories load",
                extra={"domain": DOMAIN, "op": "url_navigation_deferred"},
            )
            return False

        self._pending_navigation = None
        return self._apply(decoded)

    def handle_categories_loaded(self) -> bool:
        """Apply a navigation that was waiting for the category list."""

        pending = self._pending_navigation
        if pending is None:
            return False
        self._pending_navigation = None
        return self._apply(pending)

    def _apply(self, decoded: UrlState) -> bool:
        category = self._categories.resolve(decoded.category)
        if category is None:
            LOGGER.warning(
                "Unknown category slug in URL, falling back to all",
                extra={"domain": DOMAIN, "op": "url_unknown_category", "slug": decoded.category},
            )
            category = CATEGORY_ALL

        page = decoded.page
        if self._clamp_page is not None:
            candidate = self._store.preview_url_state(
                category=category, page=page, search_text=decoded.search
            )
            page = self._clamp_page(candidate)
        clamped = page != decoded.page
        if clamped:
            LOGGER.debug(
                "Clamped URL page %s to %s",
                decoded.page,
                page,
                extra={"domain": DOMAIN, "op": "url_page_clamped", "requested": decoded.page},
            )

        self._state = SyncState.APPLYING_FROM_URL
        try:
            changed = self._store.apply_url_state(
                category=category, page=page, search_text=decoded.search, origin="url"
            )
        finally:
            self._state = SyncState.IDLE
        LOGGER.debug(
            "Navigation applied",
            extra={"domain": DOMAIN, "op": "url_apply", "changed": changed},
        )
        if clamped:
            # The address bar still shows the out-of-range page
            self.push()
        return changed

    # -----------------------------
    # Store -> URL
    # -----------------------------

    def _on_state_changed(self, old: FilterState, new: FilterState, origin: Origin) -> None:
        if origin == "url" or self._state is not SyncState.IDLE:
            return
        if self._pending_navigation is not None:
            # A newer action supersedes the navigation waiting for categories
            self._pending_navigation = None
            LOGGER.debug(
                "Deferred navigation dropped",
                extra={"domain": DOMAIN, "op": "url_navigation_dropped", "origin": origin},
            )
        fields = changed_fields(old, new)
        if new.search_active and fields <= CATALOG_FIELDS:
            # Search owns the address bar
            LOGGER.debug(
                "URL push suspended during search",
                extra={"domain": DOMAIN, "op": "url_push_suspended", "fields": sorted(fields)},
            )
            return
        self.push()

    def push(self) -> bool:
        """Replace the address bar query with the store's state.

        Unrelated parameters are kept. Returns False when nothing changed.
        """

        current = self._address_bar.query
        desired = encode_url_state(self._store.state, self._categories)
        diff = query_diff(current, desired)
        if not diff:
            return False

        query = {k: v for k, v in current.items() if k not in URL_PARAMS}
        query.update(desired)
        self._state = SyncState.PUSHING_TO_URL
        try:
            self._address_bar.replace(query)
        finally:
            self._state = SyncState.IDLE
        LOGGER.debug(
            "Address bar updated",
            extra={"domain": DOMAIN, "op": "url_push", "params": sorted(diff)},
        )
        if self._on_push is not None:
            self._on_push(query)
        return True
