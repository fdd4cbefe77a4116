"""Command handlers for catalog_sync.

Every consumer callback of the engine is reachable as a command message.
Adheres to the envelope: input ``{id, type, ...payload}``, output
``result_message``/``error_message``. Payloads are validated with voluptuous
before the handler runs; domain errors raised by the engine are mapped to
error envelopes by ``handler_guard``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol

from .const import DOMAIN, INTEGRATION_VERSION
from .engine import CatalogEngine
from .exceptions import ConfigError, FetchError, ValidationError

LOGGER = logging.getLogger(__name__)

COMMAND_PREFIX = "catalog/"

_Handler = Callable[[CatalogEngine, dict], Awaitable[dict[str, Any]]]

# type -> (schema, handler)
COMMANDS: dict[str, tuple[vol.Schema, _Handler]] = {}


# -----------------------------
# Envelopes
# -----------------------------


def result_message(msg_id: int, result: Any = None) -> dict[str, Any]:
    return {"id": msg_id, "type": "result", "success": True, "result": result}


def error_message(
    msg_id: int, code: str, message: str, data: dict[str, Any] | None = None
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data:
        error["data"] = data
    return {"id": msg_id, "type": "result", "success": False, "error": error}


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, FetchError):
        return "fetch_error"
    if isinstance(exc, ConfigError):
        return "config_error"
    return "unknown_error"


def _ctx(op: str, **extra: Any) -> dict[str, Any]:
    """Build a structured logging context; ``op`` is always present."""
    base: dict[str, Any] = {"op": op}
    if extra:
        base.update(extra)
    return base


def _context_from_msg(op: str, msg: dict, fields: tuple[str, ...]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for field in fields:
        if field in msg:
            payload[field] = msg.get(field)
    return _ctx(op, **payload)


def _error_from_exc(msg_id: int, exc: Exception, *, context: dict[str, Any]) -> dict[str, Any]:
    level = logging.ERROR if isinstance(exc, FetchError) else logging.WARNING
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, **context}, exc_info=True)
    return error_message(msg_id, _error_code(exc), str(exc), context or None)


def handler_guard(
    op: str, context_fields: tuple[str, ...] = ()
) -> Callable[[_Handler], _Handler]:
    """Decorator mapping domain exceptions to error envelopes.

    Builds a structured context from selected fields of the incoming message.
    """

    def decorator(func: _Handler) -> _Handler:
        async def wrapper(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
            try:
                return await func(engine, msg)
            except (ValidationError, FetchError) as exc:
                ctx = _context_from_msg(op, msg, context_fields)
                return _error_from_exc(msg.get("id", 0), exc, context=ctx)

        wrapper.__name__ = getattr(func, "__name__", op)
        return wrapper

    return decorator


def command(command_type: str, schema: dict) -> Callable[[_Handler], _Handler]:
    """Register a handler under ``catalog/<command_type>``."""

    full_type = f"{COMMAND_PREFIX}{command_type}"
    compiled = vol.Schema(
        {vol.Required("id"): int, vol.Required("type"): full_type, **schema}
    )

    def decorator(func: _Handler) -> _Handler:
        COMMANDS[full_type] = (compiled, func)
        return func

    return decorator


async def async_dispatch(engine: CatalogEngine, msg: Any) -> dict[str, Any]:
    """Validate ``msg`` against its command schema and run the handler."""

    msg_id = msg.get("id", 0) if isinstance(msg, dict) else 0
    msg_type = msg.get("type") if isinstance(msg, dict) else None
    entry = COMMANDS.get(msg_type) if isinstance(msg_type, str) else None
    if entry is None:
        LOGGER.warning(
            "Unknown command",
            extra={"domain": DOMAIN, "op": "dispatch", "command": msg_type},
        )
        return error_message(msg_id, "unknown_command", f"unknown command: {msg_type}")

    schema, handler = entry
    try:
        payload = schema(msg)
    except vol.Invalid as exc:
        LOGGER.warning(
            "Invalid command payload: %s",
            exc,
            extra={"domain": DOMAIN, "op": "dispatch", "command": msg_type},
        )
        return error_message(msg_id, "invalid_format", str(exc))
    return await handler(engine, payload)


async def _finish(engine: CatalogEngine, msg: dict, result: dict[str, Any]) -> dict[str, Any]:
    """Optionally wait for the fetches the command triggered."""

    if msg.get("wait"):
        await engine.async_block_till_done()
    result["snapshot"] = engine.snapshot()
    return result_message(msg.get("id", 0), result)


_WAIT = {vol.Optional("wait", default=False): bool}


# -----------------------------
# Utility commands
# -----------------------------


@command("version", {})
async def cmd_version(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    return result_message(msg.get("id", 0), {"version": INTEGRATION_VERSION})


@command("snapshot", dict(_WAIT))
async def cmd_snapshot(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    return await _finish(engine, msg, {})


@command("history", {vol.Optional("limit", default=10): vol.All(int, vol.Range(min=1))})
async def cmd_history(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    history = engine.history
    return result_message(
        msg.get("id", 0), {"recent": history.recent, "popular": history.popular(msg["limit"])}
    )


@command("refresh", dict(_WAIT))
async def cmd_refresh(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    engine.refresh()
    return await _finish(engine, msg, {})


# -----------------------------
# Catalog commands
# -----------------------------


@command("set_category", {vol.Required("category"): vol.Any(str, None), **_WAIT})
@handler_guard("set_category", ("category",))
async def cmd_set_category(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.set_category(msg["category"])
    return await _finish(engine, msg, {"changed": changed})


@command("set_sort", {vol.Required("sort_order"): str, **_WAIT})
@handler_guard("set_sort_order", ("sort_order",))
async def cmd_set_sort(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.set_sort_order(msg["sort_order"])
    return await _finish(engine, msg, {"changed": changed})


@command("set_stock_filter", {vol.Required("stock_filter"): str, **_WAIT})
@handler_guard("set_stock_filter", ("stock_filter",))
async def cmd_set_stock_filter(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.set_stock_filter(msg["stock_filter"])
    return await _finish(engine, msg, {"changed": changed})


@command("set_page", {vol.Required("page"): int, **_WAIT})
@handler_guard("set_page", ("page",))
async def cmd_set_page(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    applied = engine.set_page(msg["page"])
    return await _finish(engine, msg, {"page": applied})


@command("set_limit", {vol.Required("limit"): int, **_WAIT})
@handler_guard("set_limit", ("limit",))
async def cmd_set_limit(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.set_limit(msg["limit"])
    return await _finish(engine, msg, {"changed": changed})


# -----------------------------
# Search commands
# -----------------------------


@command("change_search", {vol.Required("text"): vol.Any(str, None), **_WAIT})
@handler_guard("change_search_text")
async def cmd_change_search(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    scheduled = engine.change_search_text(msg["text"] or "")
    return await _finish(engine, msg, {"scheduled": scheduled})


@command("submit_search", {vol.Optional("text"): vol.Any(str, None), **_WAIT})
@handler_guard("submit_search")
async def cmd_submit_search(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    engine.submit_search(msg.get("text"))
    return await _finish(engine, msg, {})


@command(
    "select_suggestion",
    {
        vol.Exclusive("item_id", "selection"): str,
        vol.Exclusive("item_ids", "selection"): [str],
        vol.Optional("label"): vol.Any(str, None),
        **_WAIT,
    },
)
@handler_guard("select_suggestion", ("item_id", "item_ids"))
async def cmd_select_suggestion(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    label = msg.get("label")
    if "item_ids" in msg:
        engine.select_suggestions(msg["item_ids"], label)
    elif "item_id" in msg:
        engine.select_suggestion(msg["item_id"], label)
    else:
        raise ValidationError("item_id or item_ids is required")
    return await _finish(engine, msg, {})


@command("clear_search", dict(_WAIT))
@handler_guard("clear_search")
async def cmd_clear_search(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.clear_search()
    return await _finish(engine, msg, {"changed": changed})


# -----------------------------
# Navigation
# -----------------------------


@command("navigate", {vol.Required("query"): {str: str}, **_WAIT})
@handler_guard("navigate")
async def cmd_navigate(engine: CatalogEngine, msg: dict) -> dict[str, Any]:
    changed = engine.handle_navigation(msg["query"])
    return await _finish(
        engine, msg, {"changed": changed, "deferred": engine.url_sync.navigation_pending}
    )
