"""Pagination window, clamping and self-correction for result listings.

Two controllers run side by side: one for the catalog listing, bound to the
store's ``page`` field, and one for search results, bound to ``search_page``.
Each tracks the totals of the last accepted ``ResultPage`` for its listing.
"""

from __future__ import annotations

import logging
from math import ceil
from typing import TYPE_CHECKING, Literal

from .const import DOMAIN, ELLIPSIS, MAX_VISIBLE_PAGES
from .models import PageInfo, ResultPage

if TYPE_CHECKING:
    from .state import FilterStateStore

LOGGER = logging.getLogger(__name__)

PageField = Literal["page", "search_page"]


def clamp_page(page: int, total_pages: int | None) -> int:
    """Clamp ``page`` into ``[1, total_pages]``.

    When ``total_pages`` is unknown (None) only the lower bound applies. An
    empty listing (``total_pages`` of 0) still has page 1.
    """

    page = max(1, int(page))
    if total_pages is None:
        return page
    return min(page, max(1, int(total_pages)))


def visible_pages(
    current_page: int, total_pages: int, max_visible: int = MAX_VISIBLE_PAGES
) -> list[int | str]:
    """Return the display sequence of page numbers and ellipses.

    - ``total_pages <= max_visible``: every page.
    - Otherwise page 1, an ellipsis when the window starts beyond 2, a window
      of up to ``max_visible`` pages centered on ``current_page``, an ellipsis
      when the window ends before ``total_pages - 1``, and the last page.
    """

    if total_pages <= 0:
        return []
    if total_pages <= max_visible:
        return list(range(1, total_pages + 1))

    current = clamp_page(current_page, total_pages)
    half = max_visible // 2
    start = max(1, current - half)
    end = min(total_pages, current + half)

    pages: list[int | str] = list(range(start, end + 1))
    if start > 1:
        if start > 2:  # noqa: PLR2004
            pages.insert(0, ELLIPSIS)
        pages.insert(0, 1)
    if end < total_pages:
        if end < total_pages - 1:
            pages.append(ELLIPSIS)
        pages.append(total_pages)
    return pages


class PaginationController:
    """Pagination state for one listing, bound to a page field of the store."""

    def __init__(
        self,
        store: FilterStateStore,
        field: PageField,
        *,
        max_visible: int = MAX_VISIBLE_PAGES,
    ) -> None:
        self._store = store
        self._field: PageField = field
        self._max_visible = max_visible
        self.total_items: int = 0
        self.total_pages: int | None = None
        self.limit: int | None = None

    @property
    def field(self) -> PageField:
        return self._field

    @property
    def current_page(self) -> int:
        return int(getattr(self._store.state, self._field))

    def visible_pages(self) -> list[int | str]:
        return visible_pages(self.current_page, self.total_pages or 1, self._max_visible)

    def update_from_result(self, result: ResultPage, *, limit: int) -> None:
        """Adopt the totals of an accepted result page."""

        self.total_items = max(0, int(result.total))
        self.limit = limit
        if result.total_pages:
            self.total_pages = max(1, int(result.total_pages))
        else:
            self.total_pages = max(1, ceil(self.total_items / limit)) if limit else 1

    def reset(self) -> None:
        self.total_items = 0
        self.total_pages = None
        self.limit = None

    def request_page(self, page: int, *, origin: str = "user") -> int:
        """Clamp ``page`` and write it to the bound store field.

        Returns the page that was actually applied.
        """

        target = clamp_page(page, self.total_pages)
        if target != page:
            LOGGER.debug(
                "Clamped requested page %s to %s",
                page,
                target,
                extra={
                    "domain": DOMAIN,
                    "op": "clamp_page",
                    "field": self._field,
                    "requested": page,
                    "applied": target,
                },
            )
        if self._field == "page":
            self._store.set_page(target, origin=origin)
        else:
            self._store.set_search_page(target, origin=origin)
        return target

    def info(self) -> PageInfo:
        current = self.current_page
        limit = self.limit or 0
        total_pages = self.total_pages or 0
        start_item = (current - 1) * limit + 1 if self.total_items else 0
        end_item = min(current * limit, self.total_items) if limit else self.total_items
        return {
            "start_item": start_item,
            "end_item": end_item,
            "has_next_page": current < total_pages,
            "has_previous_page": current > 1,
            "is_first_page": current == 1,
            "is_last_page": current >= total_pages,
        }

    def go_to_next(self) -> int:
        if self.info()["has_next_page"]:
            return self.request_page(self.current_page + 1)
        return self.current_page

    def go_to_previous(self) -> int:
        if self.info()["has_previous_page"]:
            return self.request_page(self.current_page - 1)
        return self.current_page

    def go_to_first(self) -> int:
        return self.request_page(1)

    def go_to_last(self) -> int:
        return self.request_page(self.total_pages or 1)

    def step_back_if_empty(self, result: ResultPage, *, requested_page: int) -> bool:
        """Step back when a page beyond the first came back empty.

        Lands on the last known page when the request was past it, otherwise
        one page earlier.

        Returns True when a step-back was applied to the store.
        """

        if result.items or requested_page <= 1:
            return False
        if self.current_page != requested_page:
            # The user already moved elsewhere
            return False
        target = requested_page - 1
        if self.total_pages is not None:
            target = max(1, min(target, self.total_pages))
        LOGGER.debug(
            "Empty page %s, stepping back to %s",
            requested_page,
            target,
            extra={
                "domain": DOMAIN,
                "op": "page_step_back",
                "field": self._field,
                "page": requested_page,
                "target": target,
            },
        )
        if self._field == "page":
            self._store.set_page(target, origin="engine")
        else:
            self._store.set_search_page(target, origin="engine")
        return True
