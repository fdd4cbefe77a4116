"""Search history and popular searches.

Committed search terms are recorded twice: in a short most-recent-first
history and in per-term counters from which the popular list is derived.
Both survive an engine restart through ``export_state``/``load_state``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .const import DOMAIN, HISTORY_MAX_ENTRIES, MIN_SUGGESTION_LENGTH
from .exceptions import ValidationError
from .models import normalize_search_text

LOGGER = logging.getLogger(__name__)

POPULAR_MAX_ENTRIES = 10


@dataclass
class _TermStats:
    count: int
    last_seq: int


class SearchHistory:
    """Most-recent-first committed terms plus usage counters."""

    def __init__(
        self, max_entries: int = HISTORY_MAX_ENTRIES, *, min_length: int = MIN_SUGGESTION_LENGTH
    ) -> None:
        if max_entries < 1:
            raise ValidationError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._min_length = max(1, min_length)
        self._recent: list[str] = []
        self._stats: dict[str, _TermStats] = {}
        self._seq = 0

    @property
    def recent(self) -> list[str]:
        return list(self._recent)

    def record(self, term: str) -> bool:
        """Record a committed term. Returns False when the term is too short."""

        text = normalize_search_text(term)
        if len(text) < self._min_length:
            return False

        folded = text.casefold()
        self._recent = [t for t in self._recent if t.casefold() != folded]
        self._recent.insert(0, text)
        del self._recent[self._max_entries :]

        self._seq += 1
        stats = self._stats.get(folded)
        if stats is None:
            self._stats[folded] = _TermStats(count=1, last_seq=self._seq)
        else:
            stats.count += 1
            stats.last_seq = self._seq
        LOGGER.debug(
            "Search term recorded",
            extra={"domain": DOMAIN, "op": "history_record", "count": self._stats[folded].count},
        )
        return True

    def popular(self, limit: int = POPULAR_MAX_ENTRIES) -> list[str]:
        """Terms by commit count, most recent first among equal counts."""

        ranked = sorted(
            self._stats.items(), key=lambda kv: (-kv[1].count, -kv[1].last_seq)
        )
        return [term for term, _ in ranked[: max(0, limit)]]

    def matching(self, text: str, limit: int = 5) -> list[str]:
        """Previously committed terms containing ``text``, by popularity."""

        needle = normalize_search_text(text).casefold()
        if not needle:
            return []
        return [term for term in self.popular(len(self._stats)) if needle in term][:limit]

    def clear(self) -> None:
        self._recent.clear()
        self._stats.clear()
        self._seq = 0

    # -----------------------------
    # Persistence
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        return {
            "recent": list(self._recent),
            "counts": {term: s.count for term, s in self._stats.items()},
            "order": [term for term, _ in sorted(self._stats.items(), key=lambda kv: kv[1].last_seq)],
        }

    def load_state(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValidationError("history payload must be a mapping")
        recent = data.get("recent") or []
        counts = data.get("counts") or {}
        order = data.get("order") or list(counts)
        if not isinstance(recent, list) or not isinstance(counts, dict):
            raise ValidationError("history payload is malformed")

        self.clear()
        for term in recent[: self._max_entries]:
            text = normalize_search_text(term)
            if text:
                self._recent.append(text)
        for term in order:
            count = counts.get(term)
            if isinstance(count, bool) or not isinstance(count, int) or count < 1:
                continue
            self._seq += 1
            self._stats[str(term).casefold()] = _TermStats(count=count, last_seq=self._seq)
