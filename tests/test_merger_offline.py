"""Offline tests for result merging."""

from __future__ import annotations

import logging

import pytest
from catalog_sync.merger import item_identity, merge_items, unique_count


def _ids(items):
    return [item_identity(i) for i in items]


@pytest.mark.asyncio
async def test_merge_keeps_first_seen_order() -> None:
    a, b, c = {"_id": "A"}, {"_id": "B"}, {"_id": "C"}
    raw = [a, b, {"_id": "A", "title": "dup"}, c, {"_id": "B"}]
    merged = merge_items(raw)
    assert _ids(merged) == ["A", "B", "C"]
    # First occurrence wins
    assert merged[0] is a


@pytest.mark.asyncio
async def test_merge_drops_malformed_entries(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="catalog_sync.merger")
    raw = [{"_id": "A"}, {"title": "no id"}, None, "x", {"_id": ""}, {"id": "B"}, {"_id": True}]
    merged = merge_items(raw)
    assert _ids(merged) == ["A", "B"]
    assert any(getattr(r, "op", None) == "merge_items" for r in caplog.records)


@pytest.mark.asyncio
async def test_identity_prefers_backend_field() -> None:
    assert item_identity({"_id": "X", "id": "Y"}) == "X"
    assert item_identity({"id": 42}) == "42"
    assert item_identity({"_id": None, "id": "Y"}) == "Y"
    assert item_identity([]) is None


@pytest.mark.asyncio
async def test_unique_count_matches_merged_length() -> None:
    raw = [{"_id": "A"}, {"_id": "B"}, {"_id": "A"}, {"_id": "C"}, {"_id": "B"}, {}]
    assert unique_count(raw) == len(merge_items(raw)) == 3
    assert unique_count(None) == 0
    assert merge_items([]) == []
