"""Suggestion Resolver: explicit-identifier selection and its invalidation.

Selecting a suggested item switches the result listing to identifier mode
and fetches immediately. Any later manual edit of the text field leaves
identifier mode again and forgets the results channel's last completed key,
so the next free-text request is never skipped as a repeat of the
identifier-mode request.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from .const import DOMAIN
from .dedup import RESULTS_CHANNEL, RequestDeduplicator
from .exceptions import ValidationError
from .models import normalize_ids, normalize_search_text
from .state import FilterStateStore

LOGGER = logging.getLogger(__name__)

Commit = Callable[[str, Iterable[str]], Awaitable[None] | None]


class SuggestionResolver:
    """Applies suggestion selections and manual edits to the store."""

    def __init__(
        self,
        store: FilterStateStore,
        dedup: RequestDeduplicator,
        commit: Commit,
    ) -> None:
        self._store = store
        self._dedup = dedup
        self._commit = commit

    def select(self, item_id: Any, label: str | None = None) -> Awaitable[None] | None:
        """Show exactly one item; ``label`` stays the displayed text."""

        return self.select_many([item_id], label)

    def select_many(self, ids: Iterable[Any], label: str | None = None) -> Awaitable[None] | None:
        """Show exactly these items, in this order."""

        value = normalize_ids(ids)
        if not value:
            raise ValidationError("at least one item id is required")
        text = normalize_search_text(label)
        self._dedup.invalidate(RESULTS_CHANNEL)
        LOGGER.debug(
            "Suggestion selected",
            extra={"domain": DOMAIN, "op": "select_suggestion", "ids_count": len(value)},
        )
        return self._commit(text, value)

    def on_manual_edit(self, text: str) -> bool:
        """Leave identifier mode after the user edits the text field.

        Returns True when explicit ids were cleared.
        """

        del text  # any edit counts, including one that restores the label
        if not self._store.state.explicit_ids:
            return False
        self._dedup.invalidate(RESULTS_CHANNEL)
        self._store.clear_explicit_ids(origin="user")
        LOGGER.debug(
            "Explicit ids cleared by manual edit",
            extra={"domain": DOMAIN, "op": "clear_explicit_ids"},
        )
        return True
