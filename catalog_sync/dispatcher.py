"""Debounced query dispatch for catalog_sync.

Two channels feed the engine:

- the suggestion channel, which coalesces keystrokes: each call cancels the
  pending timer and schedules a new one, so only the last text typed within
  the delay window reaches the backend;
- the commit channel, which fires immediately on explicit submission (Enter,
  button press or suggestion selection).

``ScheduledCall`` is the cancellable timer both rely on. It owns its asyncio
task; cancelling it before the delay expires guarantees the callback never
runs. Once the delay has expired the call counts as fired and is no longer
affected by rescheduling.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable
from typing import Any

from .const import DOMAIN, MIN_SUGGESTION_LENGTH, SUGGESTION_DEBOUNCE_DELAY
from .models import normalize_search_text

LOGGER = logging.getLogger(__name__)

TaskFactory = Callable[[Coroutine[Any, Any, None]], "asyncio.Task[None]"]
SuggestCallback = Callable[[str], Awaitable[None] | None]
CommitCallback = Callable[[str, tuple[str, ...]], Awaitable[None] | None]


def _default_create_task(coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    return asyncio.get_running_loop().create_task(coro)


class ScheduledCall:
    """A single cancellable delayed call with cancel-then-reschedule semantics."""

    def __init__(self, name: str, *, create_task: TaskFactory | None = None) -> None:
        self._name = name
        self._create_task: TaskFactory = create_task or _default_create_task
        self._timer: asyncio.Task[None] | None = None
        self.fired_count = 0
        self.cancelled_count = 0

    @property
    def pending(self) -> bool:
        """True while a scheduled call is waiting for its delay to expire."""

        return self._timer is not None and not self._timer.done()

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        """Cancel any pending call, then schedule ``callback(*args)`` after ``delay``."""

        self.cancel()
        self._timer = self._create_task(self._run(delay, callback, args))

    def cancel(self) -> bool:
        """Cancel the pending call. Returns True when a call was cancelled."""

        timer = self._timer
        self._timer = None
        if timer is None or timer.done():
            return False
        timer.cancel()
        self.cancelled_count += 1
        LOGGER.debug(
            "Cancelled pending call",
            extra={"domain": DOMAIN, "op": "schedule_cancel", "channel": self._name},
        )
        return True

    async def _run(self, delay: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            # Rescheduled or cancelled before the delay expired; never fires
            LOGGER.debug(
                "Scheduled call cancelled before firing",
                extra={"domain": DOMAIN, "op": "schedule_cancelled", "channel": self._name},
            )
            raise

        # Fired: from here on rescheduling must not cancel this run
        if self._timer is asyncio.current_task():
            self._timer = None
        self.fired_count += 1
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:  # pragma: no cover - unexpected
            LOGGER.error(
                "Scheduled call failed",
                extra={"domain": DOMAIN, "op": "schedule_failed", "channel": self._name},
                exc_info=True,
            )


class QueryDispatcher:
    """Suggestion (debounced) and commit (immediate) channels."""

    def __init__(
        self,
        *,
        on_suggest: SuggestCallback,
        on_commit: CommitCallback,
        delay: float = SUGGESTION_DEBOUNCE_DELAY,
        min_length: int = MIN_SUGGESTION_LENGTH,
        create_task: TaskFactory | None = None,
    ) -> None:
        self._on_suggest = on_suggest
        self._on_commit = on_commit
        self._delay = delay
        self._min_length = min_length
        self._suggestion_call = ScheduledCall("suggestions", create_task=create_task)

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def suggestion_pending(self) -> bool:
        return self._suggestion_call.pending

    @property
    def suggestion_call(self) -> ScheduledCall:
        return self._suggestion_call

    def suggest(self, text: str) -> bool:
        """Reschedule the suggestion lookup for ``text``.

        Text shorter than the minimum length cancels any pending lookup and
        returns False; the caller is expected to clear its suggestions.
        """

        value = normalize_search_text(text)
        if len(value) < self._min_length:
            self._suggestion_call.cancel()
            return False
        self._suggestion_call.schedule(self._delay, self._on_suggest, value)
        LOGGER.debug(
            "Suggestion lookup scheduled",
            extra={
                "domain": DOMAIN,
                "op": "suggest_schedule",
                "delay_s": self._delay,
                "text_length": len(value),
            },
        )
        return True

    def commit(self, text: str, explicit_ids: Iterable[str] = ()) -> Awaitable[None] | None:
        """Fire the commit channel now; a pending suggestion lookup is dropped."""

        self._suggestion_call.cancel()
        ids = tuple(explicit_ids)
        LOGGER.debug(
            "Search committed",
            extra={"domain": DOMAIN, "op": "commit", "ids_count": len(ids)},
        )
        return self._on_commit(text, ids)

    def cancel(self) -> None:
        self._suggestion_call.cancel()
