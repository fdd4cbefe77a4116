"""aiohttp client for the list/search and category endpoints.

Endpoints:
- ``GET {base}/get-products`` with the parameters of ``RequestKey.to_params``;
  answers ``{"data": [...], "pagination": {"total", "page", "limit",
  "totalPages"}}``.
- ``GET {base}/all-category``; answers ``{"data": [{"_id", "name", "slug",
  "position"}, ...]}``.

Transport errors, timeouts, non-2xx statuses and malformed payloads all raise
``FetchError``. The client never retries; retry is user-initiated.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from .categories import category_from_dict
from .const import DEFAULT_REQUEST_TIMEOUT, DOMAIN
from .exceptions import FetchError, ValidationError
from .models import Category, RequestKey, ResultPage

LOGGER = logging.getLogger(__name__)

PRODUCTS_PATH = "/get-products"
CATEGORIES_PATH = "/all-category"


def _non_negative_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def parse_result_page(payload: Any, *, requested_page: int = 1) -> ResultPage:
    """Convert a list/search response body into a ResultPage.

    A missing ``pagination`` block is tolerated: totals fall back to the
    number of returned items on a single page.
    """

    if not isinstance(payload, dict):
        raise FetchError("malformed response: expected an object")
    data = payload.get("data")
    if data is None:
        data = []
    if not isinstance(data, list):
        raise FetchError("malformed response: 'data' must be a list")

    pagination = payload.get("pagination")
    if pagination is None:
        pagination = {}
    if not isinstance(pagination, dict):
        raise FetchError("malformed response: 'pagination' must be an object")

    total = _non_negative_int(pagination.get("total"), len(data))
    page = max(1, _non_negative_int(pagination.get("page"), requested_page))
    total_pages = max(1, _non_negative_int(pagination.get("totalPages"), 1))
    return ResultPage(items=tuple(data), total=total, page=page, total_pages=total_pages)


class CatalogClient:
    """Thin HTTP client over a caller-owned session."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_json(self, path: str, params: dict[str, str] | None, *, op: str) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with self._session.get(url, params=params, timeout=self._timeout) as resp:
                if resp.status >= 300:  # noqa: PLR2004
                    LOGGER.warning(
                        "Backend answered with HTTP %s",
                        resp.status,
                        extra={"domain": DOMAIN, "op": op, "status": resp.status},
                    )
                    raise FetchError(f"backend answered with HTTP {resp.status}")
                return await resp.json(content_type=None)
        except FetchError:
            raise
        except TimeoutError as exc:
            raise FetchError("request timed out") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise FetchError(f"request failed: {exc}") from exc

    async def async_fetch_page(self, key: RequestKey) -> ResultPage:
        """Fetch one result page for ``key``."""

        payload = await self._get_json(PRODUCTS_PATH, key.to_params(), op="fetch_page")
        page = parse_result_page(payload, requested_page=key.page)
        LOGGER.debug(
            "Fetched result page",
            extra={
                "domain": DOMAIN,
                "op": "fetch_page",
                "mode": key.mode,
                "page": page.page,
                "items": len(page.items),
                "total": page.total,
            },
        )
        return page

    async def async_fetch_categories(self) -> list[Category]:
        """Fetch the category list; malformed records are skipped."""

        payload = await self._get_json(CATEGORIES_PATH, None, op="fetch_categories")
        if isinstance(payload, dict):
            records = payload.get("data", payload.get("categories"))
        else:
            records = payload
        if not isinstance(records, list):
            raise FetchError("malformed category response")

        categories: list[Category] = []
        for record in records:
            try:
                categories.append(category_from_dict(record))
            except ValidationError:
                LOGGER.warning(
                    "Skipping malformed category record",
                    extra={"domain": DOMAIN, "op": "fetch_categories"},
                )
        return categories
