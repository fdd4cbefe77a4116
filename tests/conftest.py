"""Offline fakes and fixtures for catalog_sync tests.

``FakeBackend`` answers list/search requests from an in-memory product list
the way the storefront backend does, records every call, and can hold a
request open (``block``) or fail it (``fail``) to exercise ordering and error
paths without a network.

Also enforces a selector-based event loop policy on Windows to avoid
ProactorEventLoop self-pipe issues.
"""

from __future__ import annotations

import asyncio
import os
import platform
from math import ceil
from typing import Any

import pytest
from catalog_sync.engine import CatalogEngine
from catalog_sync.exceptions import FetchError
from catalog_sync.models import Category, RequestKey, ResultPage
from catalog_sync.url_sync import MemoryAddressBar

# Only load pytest-asyncio explicitly when plugin auto-loading is disabled.
if os.environ.get("PYTEST_DISABLE_PLUGIN_AUTOLOAD") == "1":
    pytest_plugins = ("pytest_asyncio.plugin",)

# On Windows force SelectorEventLoopPolicy early (pytest-asyncio will reuse it)
if platform.system() == "Windows":  # pragma: no cover - environment-specific
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


# Short debounce keeps the suite fast while still exercising real timers
TEST_SUGGESTION_DELAY = 0.02

CATEGORIES: list[Category] = [
    Category(id="c-spoilers", slug="spoilers", name="Spoilers", position=2),
    Category(id="c-wheels", slug="wheels", name="Wheels", position=1),
    Category(id="c-lights", slug="lights", name="Head Lights", position=3),
]


def _product(pid: str, title: str, category: str, stock: int = 5) -> dict[str, Any]:
    return {"_id": pid, "title": title, "category": category, "stock": stock, "price": 10}


def default_products() -> list[dict[str, Any]]:
    products = [
        _product(f"W{n:02d}", f"Wheel {n:02d}", "c-wheels") for n in range(1, 61)
    ]
    products += [
        _product("P123", "Spoiler 2002 Kit", "c-spoilers"),
        _product("P124", "Spoiler 2002 Lip", "c-spoilers"),
        _product("P125", "Spoiler Universal", "c-spoilers"),
        _product("P126", "Spoiler 200 Series", "c-spoilers"),
        _product("L01", "Head Light Left", "c-lights"),
        _product("L02", "Head Light Right", "c-lights", stock=0),
    ]
    return products


class FakeBackend:
    """In-memory list/search endpoint recording every request key."""

    def __init__(self, products: list[dict[str, Any]] | None = None) -> None:
        self.products = products if products is not None else default_products()
        self.calls: list[RequestKey] = []
        self._gates: dict[RequestKey, asyncio.Event] = {}
        self._failing: set[RequestKey] = set()
        self.fail_all = False

    def block(self, key: RequestKey) -> asyncio.Event:
        """Hold requests for ``key`` open until the returned event is set."""

        gate = asyncio.Event()
        self._gates[key] = gate
        return gate

    def fail(self, key: RequestKey) -> None:
        self._failing.add(key)

    def heal(self) -> None:
        self._failing.clear()
        self.fail_all = False

    def calls_by_mode(self, mode: str) -> list[RequestKey]:
        return [key for key in self.calls if key.mode == mode]

    async def fetch(self, key: RequestKey) -> ResultPage:
        self.calls.append(key)
        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_all or key in self._failing:
            raise FetchError("backend unavailable")
        return self.answer(key)

    def answer(self, key: RequestKey) -> ResultPage:
        matches = self._select(key)
        total = len(matches)
        total_pages = max(1, ceil(total / key.limit))
        start = (key.page - 1) * key.limit
        items = tuple(matches[start : start + key.limit])
        return ResultPage(items=items, total=total, page=key.page, total_pages=total_pages)

    def _select(self, key: RequestKey) -> list[dict[str, Any]]:
        products = self.products
        if key.stock_filter == "active":
            products = [p for p in products if p.get("stock", 0) > 0]
        elif key.stock_filter == "out-of-stock":
            products = [p for p in products if p.get("stock", 0) <= 0]

        if key.explicit_ids:
            by_id = {p["_id"]: p for p in products}
            return [by_id[i] for i in key.explicit_ids if i in by_id]
        if key.search_text:
            words = key.search_text.lower().split()
            products = [p for p in products if all(w in p["title"].lower() for w in words)]
        elif key.category and key.category != "all":
            products = [p for p in products if p.get("category") == key.category]

        if key.sort_order == "az":
            products = sorted(products, key=lambda p: p["title"])
        elif key.sort_order == "za":
            products = sorted(products, key=lambda p: p["title"], reverse=True)
        return list(products)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def categories() -> list[Category]:
    return list(CATEGORIES)


@pytest.fixture
def engine_factory(backend: FakeBackend):
    """Build engines on the shared fake backend with a short debounce."""

    def _make(
        query: dict[str, str] | None = None,
        *,
        with_categories: bool = True,
        **options: Any,
    ) -> CatalogEngine:
        opts = {"suggestion_delay": TEST_SUGGESTION_DELAY, **options}
        return CatalogEngine(
            backend.fetch,
            address_bar=MemoryAddressBar(query),
            options=opts,
            categories=CATEGORIES if with_categories else None,
        )

    return _make
