"""Offline tests for the Filter State Store.

Scenarios:
- page resets on category/stock/sort/limit changes
- idempotent setters notify once
- search mode setters keep the catalog page
- URL application in catalog and search mode
"""

from __future__ import annotations

import logging

import pytest
from catalog_sync.exceptions import ValidationError
from catalog_sync.models import DEFAULT_FILTER_STATE, FilterState
from catalog_sync.state import FilterStateStore, changed_fields


def _recording_store(initial: FilterState | None = None):
    store = FilterStateStore(initial)
    events: list[tuple[FilterState, FilterState, str]] = []
    store.add_listener(lambda old, new, origin: events.append((old, new, origin)))
    return store, events


@pytest.mark.asyncio
async def test_set_category_twice_resets_page_once() -> None:
    store, events = _recording_store(FilterState(page=4))

    assert store.set_category("c-wheels") is True
    assert store.set_category("c-wheels") is False

    assert store.state.category == "c-wheels"
    assert store.state.page == 1
    assert len(events) == 1
    old, new, origin = events[0]
    assert (old.page, new.page, origin) == (4, 1, "user")


@pytest.mark.asyncio
async def test_filter_changes_reset_pages() -> None:
    store, _ = _recording_store(FilterState(page=3, search_page=2))
    store.set_stock_filter("all")
    assert (store.state.page, store.state.search_page) == (1, 1)

    store.set_page(3)
    store.set_search_page(2)
    store.set_sort_order("za")
    assert (store.state.page, store.state.search_page) == (1, 1)

    store.set_page(3)
    store.set_limit(48)
    assert store.state.page == 1
    assert store.state.limit == 48


@pytest.mark.asyncio
async def test_setters_validate_input() -> None:
    store, events = _recording_store()
    with pytest.raises(ValidationError):
        store.set_limit(30)
    with pytest.raises(ValidationError):
        store.set_page(0)
    with pytest.raises(ValidationError):
        store.set_sort_order("cheapest")
    with pytest.raises(ValidationError):
        store.set_explicit_ids("P123")
    assert events == []
    assert store.state == DEFAULT_FILTER_STATE


@pytest.mark.asyncio
async def test_commit_search_keeps_catalog_page() -> None:
    store, _ = _recording_store(FilterState(category="c-wheels", page=3, search_page=4))
    assert store.commit_search("  spoiler   2002 ")
    state = store.state
    assert state.search_text == "spoiler 2002"
    assert state.search_page == 1
    assert state.page == 3
    assert state.category == "c-wheels"

    assert store.clear_search()
    assert store.state.search_active is False
    assert store.state.page == 3


@pytest.mark.asyncio
async def test_commit_empty_text_clears_search() -> None:
    store, _ = _recording_store(FilterState(search_text="spoiler", explicit_ids=("P1",)))
    assert store.commit_search("   ")
    assert store.state.search_text == ""
    assert store.state.explicit_ids == ()


@pytest.mark.asyncio
async def test_explicit_ids_keep_label_as_search_text() -> None:
    store, _ = _recording_store(FilterState(search_text="spoiler"))
    store.set_explicit_ids(["P123"], label="Spoiler 2002 Kit")
    assert store.state.explicit_ids == ("P123",)
    assert store.state.search_text == "Spoiler 2002 Kit"

    store.clear_explicit_ids()
    assert store.state.explicit_ids == ()
    assert store.state.search_text == "Spoiler 2002 Kit"

    store.set_explicit_ids(["P1", "P2"])
    assert store.state.search_text == "Spoiler 2002 Kit"

    # Committing free text drops the identifiers
    store.commit_search("lip")
    assert store.state.explicit_ids == ()


@pytest.mark.asyncio
async def test_apply_url_state_catalog_mode() -> None:
    store, events = _recording_store(FilterState(search_text="old", explicit_ids=("P1",)))
    assert store.apply_url_state(category="c-wheels", page=2, search_text="")
    state = store.state
    assert (state.category, state.page, state.search_text, state.explicit_ids) == (
        "c-wheels",
        2,
        "",
        (),
    )
    assert events[-1][2] == "url"


@pytest.mark.asyncio
async def test_apply_url_state_search_mode() -> None:
    store, _ = _recording_store(FilterState(category="c-wheels", page=3))
    store.apply_url_state(category="c-wheels", page=2, search_text="spoiler")
    assert store.state.search_page == 2
    assert store.state.page == 3

    # Category change in search mode resets the catalog page
    store.apply_url_state(category="c-lights", page=1, search_text="spoiler")
    assert store.state.page == 1


@pytest.mark.asyncio
async def test_apply_url_state_keeps_ids_only_for_same_text() -> None:
    store, _ = _recording_store(FilterState(search_text="Kit", explicit_ids=("P123",)))
    store.apply_url_state(category="all", page=1, search_text="Kit")
    assert store.state.explicit_ids == ("P123",)
    store.apply_url_state(category="all", page=1, search_text="Lip")
    assert store.state.explicit_ids == ()


@pytest.mark.asyncio
async def test_changed_fields_and_logging(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="catalog_sync.state")
    store, _ = _recording_store()
    old = store.state
    store.set_category("c-wheels")
    assert changed_fields(old, store.state) == frozenset({"category"})
    assert any(getattr(r, "op", None) == "set_category" for r in caplog.records)


@pytest.mark.asyncio
async def test_listener_removal_and_export_round_trip() -> None:
    store = FilterStateStore()
    seen: list[str] = []
    remove = store.add_listener(lambda _o, _n, origin: seen.append(origin))
    store.set_page(2)
    remove()
    store.set_page(3)
    assert seen == ["user"]

    exported = store.export_state()
    other = FilterStateStore()
    assert other.load_state(exported) is True
    assert other.state == store.state

    assert store.reset() is True
    assert store.state == DEFAULT_FILTER_STATE
