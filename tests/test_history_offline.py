"""Offline tests for search history and popular searches."""

from __future__ import annotations

import pytest
from catalog_sync.exceptions import ValidationError
from catalog_sync.history import SearchHistory


@pytest.mark.asyncio
async def test_recent_is_most_recent_first_and_bounded() -> None:
    history = SearchHistory(max_entries=5)
    for term in ("wheel", "spoiler", "grill", "mirror", "bumper", "light"):
        history.record(term)
    assert history.recent == ["light", "bumper", "mirror", "grill", "spoiler"]


@pytest.mark.asyncio
async def test_repeated_term_moves_to_front_case_insensitively() -> None:
    history = SearchHistory()
    history.record("Spoiler")
    history.record("wheel")
    history.record("  spoiler ")
    assert history.recent == ["spoiler", "wheel"]


@pytest.mark.asyncio
async def test_short_terms_are_ignored() -> None:
    history = SearchHistory()
    assert history.record("a") is False
    assert history.record("   ") is False
    assert history.recent == []


@pytest.mark.asyncio
async def test_popular_orders_by_count_then_recency() -> None:
    history = SearchHistory()
    for term in ("wheel", "spoiler", "wheel", "grill", "spoiler", "mirror"):
        history.record(term)
    assert history.popular() == ["spoiler", "wheel", "mirror", "grill"]
    assert history.popular(1) == ["spoiler"]
    assert history.matching("e") == ["spoiler", "wheel"]
    assert history.matching("LL") == ["grill"]
    assert history.matching("") == []


@pytest.mark.asyncio
async def test_export_load_round_trip() -> None:
    history = SearchHistory()
    for term in ("wheel", "spoiler", "wheel"):
        history.record(term)
    exported = history.export_state()

    restored = SearchHistory()
    restored.load_state(exported)
    assert restored.recent == history.recent
    assert restored.popular() == history.popular()

    with pytest.raises(ValidationError):
        restored.load_state(["not", "a", "dict"])  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        SearchHistory(max_entries=0)


@pytest.mark.asyncio
async def test_configured_minimum_length() -> None:
    history = SearchHistory(min_length=4)
    assert history.record("abc") is False
    assert history.record("grill") is True
    assert history.recent == ["grill"]
