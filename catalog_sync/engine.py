"""CatalogEngine: wires the store, dispatcher, deduplicator and URL sync.

One engine serves one browsing session. Every cache it relies on (pending
requests, last completed keys, timers, history) is an instance field, so two
engines never share state.

Flow overview:

- consumer handlers mutate the ``FilterStateStore``;
- the engine's store listener schedules a refresh task whenever the results
  ``RequestKey`` changes; refresh tasks started in the same loop iteration
  read the key when they run, so they collapse into one network call;
- typing feeds the debounced suggestion channel only; submitting or
  selecting a suggestion goes through the commit channel;
- accepted results are merged, fed to the listing's pagination controller
  and published to subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from .categories import CategoryIndex
from .config import EngineOptions, load_options
from .const import DOMAIN
from .dedup import RESULTS_CHANNEL, SUGGESTIONS_CHANNEL, FetchPage, RequestDeduplicator
from .dispatcher import QueryDispatcher
from .exceptions import FetchError, ValidationError
from .history import SearchHistory
from .merger import merge_items
from .models import (
    EMPTY_RESULT_PAGE,
    Category,
    FetchStatus,
    FilterState,
    Item,
    PageInfo,
    RequestKey,
    ResultPage,
    SnapshotPagination,
    normalize_search_text,
)
from .pagination import PaginationController, clamp_page
from .state import FilterStateStore, Origin
from .suggestions import SuggestionResolver
from .url_sync import AddressBar, MemoryAddressBar, UrlSynchronizer

LOGGER = logging.getLogger(__name__)

EVENT_TOPICS: frozenset[str] = frozenset({"results", "suggestions", "status", "url"})

EventCallback = Callable[[dict[str, Any]], None]


def _now_ts() -> str:
    return datetime.now(UTC).isoformat()


class CatalogEngine:
    """Query synchronization engine for one catalog browsing session."""

    def __init__(
        self,
        fetch_page: FetchPage,
        *,
        address_bar: AddressBar | None = None,
        options: Mapping[str, Any] | EngineOptions | None = None,
        categories: Iterable[Category | Mapping[str, Any]] | None = None,
        initial_state: FilterState | None = None,
    ) -> None:
        self._options = load_options(options)
        self._tasks: set[asyncio.Task[Any]] = set()

        self._store = FilterStateStore(initial_state)
        self._categories = CategoryIndex(categories) if categories is not None else CategoryIndex()
        self._address_bar: AddressBar = address_bar if address_bar is not None else MemoryAddressBar()
        self._dedup = RequestDeduplicator(fetch_page)
        self._history = SearchHistory(
            self._options.history_max_entries, min_length=self._options.min_suggestion_length
        )

        max_visible = self._options.max_visible_pages
        self._catalog_pager = PaginationController(self._store, "page", max_visible=max_visible)
        self._search_pager = PaginationController(
            self._store, "search_page", max_visible=max_visible
        )

        self._dispatcher = QueryDispatcher(
            on_suggest=self._async_fetch_suggestions,
            on_commit=self._on_commit,
            delay=self._options.suggestion_delay,
            min_length=self._options.min_suggestion_length,
            create_task=self._create_task,
        )
        self._resolver = SuggestionResolver(self._store, self._dedup, self._dispatcher.commit)
        self._url_sync = UrlSynchronizer(
            self._store,
            self._address_bar,
            self._categories,
            on_push=self._on_url_pushed,
            clamp_page=self._clamp_url_page,
        )
        self._remove_listener = self._store.add_listener(self._on_state_changed)

        self._result: ResultPage = EMPTY_RESULT_PAGE
        self._items: list[Item] = []
        self._displayed_key: RequestKey | None = None
        self._suggestions: list[Item] = []
        self._input_text = self._store.state.search_text
        self._status = FetchStatus()
        self._subscribers: dict[str, dict[int, EventCallback]] = {}
        self._next_subscription_id = 1
        self._started = False
        self._closed = False

    # -----------------------------
    # Collaborators
    # -----------------------------

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def store(self) -> FilterStateStore:
        return self._store

    @property
    def dedup(self) -> RequestDeduplicator:
        return self._dedup

    @property
    def dispatcher(self) -> QueryDispatcher:
        return self._dispatcher

    @property
    def url_sync(self) -> UrlSynchronizer:
        return self._url_sync

    @property
    def categories(self) -> CategoryIndex:
        return self._categories

    @property
    def history(self) -> SearchHistory:
        return self._history

    @property
    def address_bar(self) -> AddressBar:
        return self._address_bar

    # -----------------------------
    # Consumer outputs
    # -----------------------------

    @property
    def state(self) -> FilterState:
        return self._store.state

    @property
    def items(self) -> list[Item]:
        return list(self._items)

    @property
    def unique_count(self) -> int:
        return len(self._items)

    @property
    def result(self) -> ResultPage:
        return self._result

    @property
    def loading(self) -> bool:
        if self._status.status == "loading":
            return True
        return self._dedup.is_pending(self._dedup.desired_key(RESULTS_CHANNEL))

    @property
    def status(self) -> str:
        return self._status.status

    @property
    def error(self) -> str | None:
        return self._status.error

    @property
    def suggestions(self) -> list[Item]:
        return list(self._suggestions)

    @property
    def input_text(self) -> str:
        return self._input_text

    @property
    def search_active(self) -> bool:
        return self._store.state.search_active

    @property
    def _active_pager(self) -> PaginationController:
        return self._search_pager if self._store.state.search_active else self._catalog_pager

    @property
    def catalog_pagination(self) -> PaginationController:
        return self._catalog_pager

    @property
    def search_pagination(self) -> PaginationController:
        return self._search_pager

    @property
    def pagination(self) -> SnapshotPagination:
        pager = self._active_pager
        return {
            "current_page": pager.current_page,
            "total_pages": pager.total_pages or 1,
            "visible_pages": pager.visible_pages(),
        }

    @property
    def page_info(self) -> PageInfo:
        return self._active_pager.info()

    def results_key(self) -> RequestKey:
        return RequestKey.for_results(self._store.state, commit_limit=self._options.commit_limit)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of every consumer output."""

        return {
            "state": self._store.export_state(),
            "items": self.items,
            "unique_count": self.unique_count,
            "total": self._result.total,
            "loading": self.loading,
            "status": self.status,
            "error": self.error,
            "suggestions": self.suggestions,
            "input_text": self._input_text,
            "search_active": self.search_active,
            "pagination": self.pagination,
            "page_info": self.page_info,
            "url": self._address_bar.query,
            "history": self._history.recent,
        }

    # -----------------------------
    # Lifecycle
    # -----------------------------

    async def async_start(self) -> None:
        """Apply the address bar's current query and load the first listing."""

        if self._started:
            return
        self._started = True
        changed = self._url_sync.handle_navigation(self._address_bar.query)
        if not changed and not self._url_sync.navigation_pending:
            self._schedule_refresh()
        LOGGER.debug(
            "Engine started",
            extra={
                "domain": DOMAIN,
                "op": "engine_start",
                "deferred": self._url_sync.navigation_pending,
            },
        )

    async def async_block_till_done(self) -> None:
        """Wait until every engine task (timers and refreshes) has finished."""

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def async_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._dispatcher.cancel()
        await self.async_block_till_done()
        self._remove_listener()
        self._url_sync.close()
        self._subscribers.clear()
        LOGGER.debug("Engine closed", extra={"domain": DOMAIN, "op": "engine_close"})

    def _create_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -----------------------------
    # Handlers: catalog
    # -----------------------------

    def set_category(self, category: str | None) -> bool:
        """Select a category by id, slug or name; ``None``/``"all"`` clears it."""

        value = category
        if isinstance(category, str):
            resolved = self._categories.resolve(category)
            if resolved is None:
                if self._categories.loaded:
                    raise ValidationError(f"unknown category: {category}")
            else:
                value = resolved
        return self._store.set_category(value)

    def set_sort_order(self, sort_order: str) -> bool:
        return self._store.set_sort_order(sort_order)

    def set_stock_filter(self, stock_filter: str) -> bool:
        return self._store.set_stock_filter(stock_filter)

    def set_limit(self, limit: int) -> bool:
        return self._store.set_limit(limit)

    def set_page(self, page: int) -> int:
        """Go to ``page`` of the active listing; out-of-range pages are clamped."""

        if isinstance(page, bool) or not isinstance(page, int):
            raise ValidationError("page must be an integer")
        return self._active_pager.request_page(page)

    def next_page(self) -> int:
        return self._active_pager.go_to_next()

    def previous_page(self) -> int:
        return self._active_pager.go_to_previous()

    def refresh(self) -> None:
        """Re-run the current results request; a failed key is fetched again."""

        self._schedule_refresh()

    # -----------------------------
    # Handlers: search
    # -----------------------------

    def change_search_text(self, text: str) -> bool:
        """Record a keystroke; returns True when a suggestion lookup was scheduled."""

        if text is None:
            text = ""
        if not isinstance(text, str):
            raise ValidationError("search text must be a string")
        self._input_text = text
        self._resolver.on_manual_edit(text)
        if self._dispatcher.suggest(text):
            return True
        self._clear_suggestions()
        return False

    def submit_search(self, text: str | None = None) -> None:
        """Commit ``text`` (default: the current input) as the search."""

        value = self._input_text if text is None else text
        value = normalize_search_text(value)
        self._input_text = value
        self._dispatcher.commit(value)

    def select_suggestion(self, item_id: str, label: str | None = None) -> None:
        if label is not None:
            self._input_text = normalize_search_text(label)
        self._resolver.select(item_id, label)

    def select_suggestions(self, ids: Iterable[str], label: str | None = None) -> None:
        if label is not None:
            self._input_text = normalize_search_text(label)
        self._resolver.select_many(ids, label)

    def clear_search(self) -> bool:
        self._dispatcher.cancel()
        self._clear_suggestions()
        self._input_text = ""
        changed = self._store.clear_search()
        self._search_pager.reset()
        return changed

    # -----------------------------
    # Handlers: URL and categories
    # -----------------------------

    def handle_navigation(self, query: Mapping[str, str] | None = None) -> bool:
        """Apply a back/forward navigation; defaults to the address bar's query."""

        return self._url_sync.handle_navigation(
            self._address_bar.query if query is None else query
        )

    def set_categories(self, categories: Iterable[Category | Mapping[str, Any]]) -> None:
        """Load the category list and apply a navigation waiting for it."""

        self._categories.load(categories)
        changed = self._url_sync.handle_categories_loaded()
        if not self._started or changed:
            return
        if not self.search_active:
            # Category ids written before the list arrived become slugs
            self._url_sync.push()
        if self._status.key is None:
            self._schedule_refresh()

    # -----------------------------
    # Persistence
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        return {"filter": self._store.export_state(), "history": self._history.export_state()}

    def load_state(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise ValidationError("engine state must be a mapping")
        if "history" in data:
            self._history.load_state(data["history"])
        if "filter" in data:
            self._store.load_state(data["filter"])
            self._input_text = self._store.state.search_text

    # -----------------------------
    # Subscriptions
    # -----------------------------

    def subscribe(self, topic: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback`` for ``topic`` events; returns the unsubscribe callable."""

        if topic not in EVENT_TOPICS:
            raise ValidationError("topic must be one of: " + ", ".join(sorted(EVENT_TOPICS)))
        sub_id = self._next_subscription_id
        self._next_subscription_id += 1
        self._subscribers.setdefault(topic, {})[sub_id] = callback
        LOGGER.debug(
            "Subscribed",
            extra={"domain": DOMAIN, "op": "subscribe", "subscription_id": sub_id, "topic": topic},
        )

        def _unsubscribe() -> None:
            subs = self._subscribers.get(topic)
            removed = subs is not None and subs.pop(sub_id, None) is not None
            LOGGER.debug(
                "Unsubscribed",
                extra={
                    "domain": DOMAIN,
                    "op": "unsubscribe",
                    "subscription_id": sub_id,
                    "removed": removed,
                },
            )

        return _unsubscribe

    def _emit(self, topic: str, action: str, payload: dict[str, Any] | None = None) -> None:
        event: dict[str, Any] = {"domain": DOMAIN, "topic": topic, "action": action, "ts": _now_ts()}
        if payload:
            event.update(payload)
        # Iterate over a snapshot so callbacks may unsubscribe
        for sub_id, callback in list(self._subscribers.get(topic, {}).items()):
            try:
                callback(event)
            except Exception:  # pragma: no cover - subscriber bug
                LOGGER.debug(
                    "Subscriber callback failed",
                    extra={"domain": DOMAIN, "op": "send_event", "subscription_id": sub_id},
                    exc_info=True,
                )

    # -----------------------------
    # Reactions
    # -----------------------------

    def _on_state_changed(self, old: FilterState, new: FilterState, origin: Origin) -> None:
        if origin == "url":
            self._input_text = new.search_text
        commit_limit = self._options.commit_limit
        if RequestKey.for_results(old, commit_limit=commit_limit) != RequestKey.for_results(
            new, commit_limit=commit_limit
        ):
            self._schedule_refresh()

    def _on_commit(self, text: str, ids: tuple[str, ...]) -> None:
        if ids:
            changed = self._store.set_explicit_ids(ids, label=text or None)
        else:
            changed = self._store.commit_search(text)
        if text:
            self._history.record(text)
        self._clear_suggestions()
        if not changed:
            # Same intent resubmitted; a failed key must be fetched again
            self._schedule_refresh()

    def _clamp_url_page(self, candidate: FilterState) -> int:
        """Clamp a navigation's page against the totals of the listing it targets.

        Totals are only known for the displayed listing; a navigation to any
        other listing keeps its page and relies on the empty-page step-back.
        """

        page = candidate.active_page
        displayed = self._displayed_key
        if displayed is None:
            return page
        key = RequestKey.for_results(candidate, commit_limit=self._options.commit_limit)
        if replace(key, page=displayed.page) != displayed:
            return page
        pager = self._search_pager if candidate.search_active else self._catalog_pager
        return clamp_page(page, pager.total_pages)

    def _on_url_pushed(self, query: dict[str, str]) -> None:
        self._emit("url", "replaced", {"query": dict(query)})

    def _clear_suggestions(self) -> None:
        self._dedup.abandon(SUGGESTIONS_CHANNEL)
        if self._suggestions:
            self._suggestions = []
            self._emit("suggestions", "cleared")

    def _set_status(self, status: str, *, key: RequestKey | None, error: str | None = None) -> None:
        previous = self._status.status
        self._status.status = status  # type: ignore[assignment]
        self._status.error = error
        self._status.key = key
        if previous != status or error is not None:
            self._emit("status", status, {"error": error})

    # -----------------------------
    # Fetching
    # -----------------------------

    def _schedule_refresh(self) -> None:
        key = self.results_key()
        # Desire the key now so responses for older keys are already stale
        self._dedup.desire(key, RESULTS_CHANNEL)
        self._set_status("loading", key=key)
        self._create_task(self._async_refresh())

    async def _async_refresh(self) -> None:
        state = self._store.state
        key = RequestKey.for_results(state, commit_limit=self._options.commit_limit)
        pager = self._search_pager if state.search_active else self._catalog_pager
        try:
            result = await self._dedup.async_request(key, channel=RESULTS_CHANNEL)
        except FetchError as exc:
            if self._dedup.desired_key(RESULTS_CHANNEL) != key:
                return
            self._set_status("failed", key=key, error=str(exc))
            return
        except Exception:  # pragma: no cover - unexpected
            LOGGER.error(
                "Unhandled refresh error",
                exc_info=True,
                extra={"domain": DOMAIN, "op": "refresh"},
            )
            return
        if result is None:
            return
        self._apply_result(key, result, pager)

    def _apply_result(
        self, key: RequestKey, result: ResultPage, pager: PaginationController
    ) -> None:
        if key == self._displayed_key and result is self._result:
            # A joined refresh already published this page
            if self._status.status != "succeeded":
                self._set_status("succeeded", key=key)
            return

        pager.update_from_result(result, limit=key.limit)
        if pager.step_back_if_empty(result, requested_page=key.page):
            return

        self._result = result
        self._items = merge_items(result.items)
        self._displayed_key = key
        self._set_status("succeeded", key=key)
        LOGGER.debug(
            "Results updated",
            extra={
                "domain": DOMAIN,
                "op": "results_updated",
                "mode": key.mode,
                "page": result.page,
                "count": len(self._items),
                "total": result.total,
            },
        )
        self._emit(
            "results",
            "updated",
            {
                "mode": key.mode,
                "page": result.page,
                "total": result.total,
                "total_pages": result.total_pages,
                "count": len(self._items),
            },
        )

    async def _async_fetch_suggestions(self, text: str) -> None:
        key = RequestKey.for_suggestions(
            self._store.state, text, suggestion_limit=self._options.suggestion_limit
        )
        try:
            result = await self._dedup.async_request(key, channel=SUGGESTIONS_CHANNEL)
        except FetchError as exc:
            if self._dedup.desired_key(SUGGESTIONS_CHANNEL) != key:
                return
            LOGGER.warning(
                "Suggestion lookup failed",
                extra={"domain": DOMAIN, "op": "suggestions_failed"},
            )
            self._suggestions = []
            self._emit("suggestions", "failed", {"text": text, "error": str(exc)})
            return
        if result is None:
            return
        self._suggestions = merge_items(result.items)
        self._emit("suggestions", "updated", {"text": text, "count": len(self._suggestions)})
