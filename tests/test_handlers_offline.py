"""Offline tests for command envelopes, schema validation and error mapping."""

from __future__ import annotations

import logging

import pytest
from catalog_sync.const import INTEGRATION_VERSION
from catalog_sync.handlers import COMMANDS, async_dispatch, error_message, result_message


@pytest.mark.asyncio
async def test_envelopes() -> None:
    assert result_message(3, {"a": 1}) == {
        "id": 3,
        "type": "result",
        "success": True,
        "result": {"a": 1},
    }
    err = error_message(4, "validation_error", "bad", {"op": "x"})
    assert err["success"] is False
    assert err["error"] == {"code": "validation_error", "message": "bad", "data": {"op": "x"}}
    assert "data" not in error_message(5, "fetch_error", "down")["error"]


@pytest.mark.asyncio
async def test_every_command_is_prefixed() -> None:
    assert COMMANDS
    assert all(name.startswith("catalog/") for name in COMMANDS)


@pytest.mark.asyncio
async def test_version(engine_factory) -> None:
    engine = engine_factory()
    resp = await async_dispatch(engine, {"id": 1, "type": "catalog/version"})
    assert resp == result_message(1, {"version": INTEGRATION_VERSION})


@pytest.mark.asyncio
async def test_unknown_command(engine_factory) -> None:
    engine = engine_factory()
    resp = await async_dispatch(engine, {"id": 2, "type": "catalog/nope"})
    assert resp["success"] is False
    assert resp["error"]["code"] == "unknown_command"

    resp = await async_dispatch(engine, "not a message")
    assert resp["id"] == 0
    assert resp["error"]["code"] == "unknown_command"


@pytest.mark.asyncio
async def test_schema_violation_is_invalid_format(engine_factory) -> None:
    engine = engine_factory()
    resp = await async_dispatch(engine, {"id": 3, "type": "catalog/set_page", "page": "2"})
    assert resp["error"]["code"] == "invalid_format"

    resp = await async_dispatch(
        engine,
        {"id": 4, "type": "catalog/select_suggestion", "item_id": "P1", "item_ids": ["P2"]},
    )
    assert resp["error"]["code"] == "invalid_format"

    resp = await async_dispatch(engine, {"id": 5, "type": "catalog/set_sort", "extra": 1, "sort_order": "az"})
    assert resp["error"]["code"] == "invalid_format"


@pytest.mark.asyncio
async def test_domain_error_is_mapped_and_logged(engine_factory, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="catalog_sync.handlers")
    engine = engine_factory()

    resp = await async_dispatch(
        engine, {"id": 6, "type": "catalog/set_category", "category": "no-such"}
    )
    assert resp["success"] is False
    assert resp["error"]["code"] == "validation_error"
    assert resp["error"]["data"] == {"op": "set_category", "category": "no-such"}
    assert any(getattr(r, "op", None) == "set_category" for r in caplog.records)

    resp = await async_dispatch(
        engine, {"id": 7, "type": "catalog/set_stock_filter", "stock_filter": "bogus"}
    )
    assert resp["error"]["code"] == "validation_error"

    resp = await async_dispatch(engine, {"id": 8, "type": "catalog/select_suggestion"})
    assert resp["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_wait_returns_settled_snapshot(engine_factory) -> None:
    engine = engine_factory()
    await engine.async_start()

    resp = await async_dispatch(
        engine, {"id": 9, "type": "catalog/set_category", "category": "spoilers", "wait": True}
    )
    assert resp["success"] is True
    result = resp["result"]
    assert result["changed"] is True
    snapshot = result["snapshot"]
    assert snapshot["status"] == "succeeded"
    assert snapshot["loading"] is False
    assert [i["_id"] for i in snapshot["items"]] == ["P126", "P123", "P124", "P125"]
    assert snapshot["url"] == {"category": "spoilers"}
    assert snapshot["state"]["category"] == "c-spoilers"
    await engine.async_close()


@pytest.mark.asyncio
async def test_search_commands_and_history(engine_factory) -> None:
    engine = engine_factory()
    await engine.async_start()

    resp = await async_dispatch(
        engine, {"id": 10, "type": "catalog/change_search", "text": "head", "wait": True}
    )
    assert resp["result"]["scheduled"] is True
    assert [i["_id"] for i in resp["result"]["snapshot"]["suggestions"]] == ["L01"]

    resp = await async_dispatch(engine, {"id": 11, "type": "catalog/submit_search", "wait": True})
    assert resp["result"]["snapshot"]["search_active"] is True

    resp = await async_dispatch(
        engine,
        {
            "id": 12,
            "type": "catalog/select_suggestion",
            "item_ids": ["P124", "P123"],
            "label": "spoilers",
            "wait": True,
        },
    )
    assert [i["_id"] for i in resp["result"]["snapshot"]["items"]] == ["P124", "P123"]

    resp = await async_dispatch(engine, {"id": 13, "type": "catalog/history", "limit": 5})
    assert resp["result"]["recent"] == ["spoilers", "head"]

    resp = await async_dispatch(engine, {"id": 14, "type": "catalog/clear_search", "wait": True})
    assert resp["result"]["changed"] is True
    assert resp["result"]["snapshot"]["search_active"] is False
    await engine.async_close()


@pytest.mark.asyncio
async def test_navigate_reports_deferral(engine_factory) -> None:
    engine = engine_factory(with_categories=False)
    resp = await async_dispatch(
        engine, {"id": 15, "type": "catalog/navigate", "query": {"category": "wheels"}}
    )
    assert resp["result"]["changed"] is False
    assert resp["result"]["deferred"] is True
