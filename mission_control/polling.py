"""
Periodic refresh driver for one resource.

States::

    IDLE ──enable()──▶ FETCHING ──done──▶ SCHEDULED ──tick──▶ FETCHING ...
      ▲                                       │
      └──────────────disable()────────────────┘

``enable()`` fetches immediately and arms a fixed-interval timer. ``refresh()``
fetches on demand without touching the timer's phase. A tick or refresh that
arrives while a fetch is running joins it rather than starting another.
``disable()`` stops the timer but lets a running fetch finish and publish.

Consumers read ``data`` (never None), ``is_loading`` and ``error``. A failed
fetch keeps the last good ``data`` and sets ``error`` until the next success.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from .constants import DEFAULT_POLL_INTERVAL
from .models import PollState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollingController(Generic[T]):
    """Drives ``fetch`` on a timer and on demand. Use from inside the event loop."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T | None]],
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        empty: Callable[[], T],
        on_update: Callable[[PollingController[T]], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.fetch = fetch
        self.interval = interval
        self.empty = empty
        self.on_update = on_update
        self.state = PollState.IDLE
        self.enabled = False
        self.data: T = empty()
        self.is_loading = True
        self.error: Exception | None = None
        self.updated_at: float | None = None
        self.fetch_count = 0
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic
        self._timer: asyncio.Task | None = None
        self._fetching: asyncio.Task | None = None

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def enable(self) -> None:
        """Fetch now, then every ``interval`` seconds (never if interval <= 0)."""
        if self.enabled:
            return
        self.enabled = True
        self._start_fetch()
        if self.interval > 0:
            self._timer = asyncio.ensure_future(self._run_timer())

    def disable(self) -> None:
        """Stop scheduling. A fetch already running is left to complete."""
        self.enabled = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = PollState.IDLE

    async def refresh(self) -> T:
        """Fetch now, independent of the timer, and return the current data."""
        self.is_loading = True
        await asyncio.shield(self._start_fetch())
        return self.data

    async def wait(self) -> None:
        """Wait for a running fetch, if any."""
        if self._fetching is not None:
            await asyncio.shield(self._fetching)

    def _start_fetch(self) -> asyncio.Task:
        self.state = PollState.FETCHING
        if self._fetching is None:
            self._fetching = asyncio.ensure_future(self._fetch_once())
        return self._fetching

    async def _run_timer(self) -> None:
        # Ticks fall on enable time + k * interval however long fetches take.
        next_tick = self._monotonic() + self.interval
        while True:
            await self._sleep(max(0.0, next_tick - self._monotonic()))
            next_tick += self.interval
            now = self._monotonic()
            while next_tick <= now:
                next_tick += self.interval
            self._start_fetch()

    async def _fetch_once(self) -> None:
        self.fetch_count += 1
        try:
            value = await self.fetch()
        except Exception as e:
            logger.warning("Poll failed, keeping last good data: %s", e)
            self.error = e
        else:
            self.data = self.empty() if value is None else value
            self.error = None
            self.updated_at = self._clock()
        finally:
            self.is_loading = False
            self._fetching = None
            if self.state is PollState.FETCHING:
                self.state = PollState.SCHEDULED if self._timer is not None else PollState.IDLE
        if self.on_update is not None:
            try:
                self.on_update(self)
            except Exception:
                logger.exception("Poll update callback failed")
