"""Result merging for catalog and search listings.

Overlapping pages and relevance-overlapping responses can repeat an item, and
the backend occasionally returns entries without an identifier. Everything
shown to the user passes through ``merge_items`` so that the displayed list
and the displayed count agree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .const import DOMAIN
from .models import Item

LOGGER = logging.getLogger(__name__)

# Identity fields in lookup order: backend documents use "_id"
IDENTITY_FIELDS: tuple[str, ...] = ("_id", "id")


def item_identity(item: Any) -> str | None:
    """Return the identifier of ``item`` or None when it has none."""

    if not isinstance(item, dict):
        return None
    for key in IDENTITY_FIELDS:
        value = item.get(key)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def merge_items(raw: Iterable[Any] | None) -> list[Item]:
    """Keep each identifier once, in first-seen order, dropping malformed entries."""

    if not raw:
        return []
    seen: set[str] = set()
    merged: list[Item] = []
    dropped = 0
    for entry in raw:
        identity = item_identity(entry)
        if identity is None:
            dropped += 1
            continue
        if identity in seen:
            continue
        seen.add(identity)
        merged.append(entry)
    if dropped:
        LOGGER.debug(
            "Dropped %s malformed result entries",
            dropped,
            extra={"domain": DOMAIN, "op": "merge_items", "dropped": dropped},
        )
    return merged


def unique_count(raw: Iterable[Any] | None) -> int:
    return len(merge_items(raw))
