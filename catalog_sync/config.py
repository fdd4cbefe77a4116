"""Engine options: voluptuous schema and loaders.

Options can come from a plain mapping (``load_options``) or from
``CATALOG_*`` environment variables (``options_from_env``). Both paths go
through ``OPTIONS_SCHEMA`` and raise ``ConfigError`` on invalid input.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import voluptuous as vol

from .const import (
    COMMIT_LIMIT,
    DEFAULT_REQUEST_TIMEOUT,
    DOMAIN,
    HISTORY_MAX_ENTRIES,
    MAX_VISIBLE_PAGES,
    MIN_SUGGESTION_LENGTH,
    SUGGESTION_DEBOUNCE_DELAY,
    SUGGESTION_LIMIT,
)
from .exceptions import ConfigError

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "CATALOG_"

_POSITIVE_INT = vol.All(vol.Coerce(int), vol.Range(min=1))

OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional("base_url", default=None): vol.Any(None, vol.All(str, vol.Length(min=1))),
        vol.Optional("suggestion_delay", default=SUGGESTION_DEBOUNCE_DELAY): vol.All(
            vol.Coerce(float), vol.Range(min=0, max=5)
        ),
        vol.Optional("suggestion_limit", default=SUGGESTION_LIMIT): _POSITIVE_INT,
        vol.Optional("min_suggestion_length", default=MIN_SUGGESTION_LENGTH): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional("commit_limit", default=COMMIT_LIMIT): _POSITIVE_INT,
        vol.Optional("max_visible_pages", default=MAX_VISIBLE_PAGES): vol.All(
            vol.Coerce(int), vol.Range(min=3)
        ),
        vol.Optional("history_max_entries", default=HISTORY_MAX_ENTRIES): _POSITIVE_INT,
        vol.Optional("request_timeout", default=DEFAULT_REQUEST_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
    }
)


@dataclass(frozen=True)
class EngineOptions:
    """Validated engine options."""

    base_url: str | None = None
    suggestion_delay: float = SUGGESTION_DEBOUNCE_DELAY
    suggestion_limit: int = SUGGESTION_LIMIT
    min_suggestion_length: int = MIN_SUGGESTION_LENGTH
    commit_limit: int = COMMIT_LIMIT
    max_visible_pages: int = MAX_VISIBLE_PAGES
    history_max_entries: int = HISTORY_MAX_ENTRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_options(data: Mapping[str, Any] | EngineOptions | None = None) -> EngineOptions:
    """Validate ``data`` and return EngineOptions; raises ConfigError."""

    if isinstance(data, EngineOptions):
        return data
    try:
        validated = OPTIONS_SCHEMA(dict(data or {}))
    except vol.Invalid as exc:
        LOGGER.warning(
            "Invalid engine options: %s",
            exc,
            extra={"domain": DOMAIN, "op": "load_options"},
        )
        raise ConfigError(f"invalid options: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError("options must be a mapping") from exc
    return EngineOptions(**validated)


def options_from_env(environ: Mapping[str, str] | None = None) -> EngineOptions:
    """Read ``CATALOG_<OPTION>`` variables, e.g. ``CATALOG_BASE_URL``."""

    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}
    for key in OPTIONS_SCHEMA.schema:
        name = str(key)
        value = env.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value != "":
            raw[name] = value
    return load_options(raw)
