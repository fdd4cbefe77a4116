"""Request deduplication and stale-response guarding for catalog_sync.

Several reactions (a filter change, a URL-driven change, a suggestion
selection) can each decide to fetch within the same loop iteration. The
deduplicator keys every fetch by its ``RequestKey`` and guarantees:

- at most one in-flight network call per key; later callers join it;
- no call at all when the key equals the channel's last completed key;
- a response whose key is no longer the channel's desired key is discarded,
  so the last desired key always wins regardless of arrival order.

Network calls are never cancelled. A caller that gives up waiting does not
cancel the shared call, which is why joins go through ``asyncio.shield``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .const import DOMAIN
from .exceptions import FetchError
from .models import RequestKey, ResultPage

LOGGER = logging.getLogger(__name__)

FetchPage = Callable[[RequestKey], Awaitable[ResultPage]]

# Channel carrying the main result listing
RESULTS_CHANNEL = "results"
SUGGESTIONS_CHANNEL = "suggestions"


@dataclass
class PendingRequest:
    """An in-flight fetch, removed from the table as soon as it settles."""

    key: RequestKey
    future: asyncio.Task[ResultPage]
    started_at: float


class RequestDeduplicator:
    """Owns the pending-request table and the per-channel completion cache."""

    def __init__(self, fetch_page: FetchPage) -> None:
        self._fetch_page = fetch_page
        self._pending: dict[RequestKey, PendingRequest] = {}
        self._desired: dict[str, RequestKey] = {}
        self._last_completed: dict[str, tuple[RequestKey, ResultPage]] = {}
        self.network_calls = 0

    # -----------------------------
    # Introspection
    # -----------------------------

    def is_pending(self, key: RequestKey | None) -> bool:
        return key is not None and key in self._pending

    @property
    def pending_keys(self) -> list[RequestKey]:
        return list(self._pending)

    def desired_key(self, channel: str = RESULTS_CHANNEL) -> RequestKey | None:
        return self._desired.get(channel)

    def last_completed_key(self, channel: str = RESULTS_CHANNEL) -> RequestKey | None:
        entry = self._last_completed.get(channel)
        return entry[0] if entry is not None else None

    # -----------------------------
    # Cache control
    # -----------------------------

    def desire(self, key: RequestKey, channel: str = RESULTS_CHANNEL) -> None:
        """Record ``key`` as the channel's desired key without fetching."""

        self._desired[channel] = key

    def abandon(self, channel: str) -> None:
        """Drop the channel's desired key; responses still in flight become stale."""

        self._desired.pop(channel, None)

    def invalidate(self, channel: str = RESULTS_CHANNEL) -> bool:
        """Forget the channel's last completed key so the next request runs."""

        removed = self._last_completed.pop(channel, None) is not None
        if removed:
            LOGGER.debug(
                "Invalidated last completed request",
                extra={"domain": DOMAIN, "op": "dedup_invalidate", "channel": channel},
            )
        return removed

    # -----------------------------
    # Requests
    # -----------------------------

    async def async_request(
        self, key: RequestKey, *, channel: str = RESULTS_CHANNEL
    ) -> ResultPage | None:
        """Fetch ``key`` for ``channel`` with deduplication.

        Returns the ResultPage, or None when the response arrived after the
        channel moved on to another key. Raises FetchError when the fetch
        failed.
        """

        self._desired[channel] = key

        pending = self._pending.get(key)
        if pending is not None:
            LOGGER.debug(
                "Joining in-flight request",
                extra={"domain": DOMAIN, "op": "dedup_join", "channel": channel},
            )
        else:
            last = self._last_completed.get(channel)
            if last is not None and last[0] == key:
                LOGGER.debug(
                    "Skipping repeat of last completed request",
                    extra={"domain": DOMAIN, "op": "dedup_skip", "channel": channel},
                )
                return last[1]
            pending = self._start(key)

        result = await asyncio.shield(pending.future)

        if self._desired.get(channel) != key:
            LOGGER.debug(
                "Discarding stale response",
                extra={
                    "domain": DOMAIN,
                    "op": "dedup_stale",
                    "channel": channel,
                    "mode": key.mode,
                    "page": key.page,
                },
            )
            return None

        self._last_completed[channel] = (key, result)
        return result

    def _start(self, key: RequestKey) -> PendingRequest:
        self.network_calls += 1
        task = asyncio.get_running_loop().create_task(self._run_fetch(key))
        pending = PendingRequest(key=key, future=task, started_at=time.monotonic())
        self._pending[key] = pending
        task.add_done_callback(lambda t, k=key: self._settle(k, t))
        LOGGER.debug(
            "Request started",
            extra={
                "domain": DOMAIN,
                "op": "dedup_start",
                "mode": key.mode,
                "page": key.page,
                "limit": key.limit,
                "in_flight": len(self._pending),
            },
        )
        return pending

    def _settle(self, key: RequestKey, task: asyncio.Task[ResultPage]) -> None:
        entry = self._pending.get(key)
        if entry is not None and entry.future is task:
            self._pending.pop(key, None)
            elapsed = time.monotonic() - entry.started_at
            LOGGER.debug(
                "Request settled",
                extra={
                    "domain": DOMAIN,
                    "op": "dedup_settle",
                    "mode": key.mode,
                    "elapsed_ms": int(elapsed * 1000),
                },
            )
        # Mark the outcome retrieved even when every caller stopped waiting
        if not task.cancelled():
            task.exception()

    async def _run_fetch(self, key: RequestKey) -> ResultPage:
        try:
            return await self._fetch_page(key)
        except FetchError:
            LOGGER.error(
                "Fetch failed",
                extra={"domain": DOMAIN, "op": "fetch_failed", "mode": key.mode, "page": key.page},
                exc_info=True,
            )
            raise
        except Exception as exc:
            LOGGER.error(
                "Fetch failed with unexpected error",
                extra={"domain": DOMAIN, "op": "fetch_failed", "mode": key.mode, "page": key.page},
                exc_info=True,
            )
            raise FetchError("failed to fetch results") from exc
