"""
Cached, single-flight access to ``gt status --json``.

``gt status`` walks every rig and session and can take seconds. Many
consumers poll it at the same cadence, so results are cached for a TTL equal
to the default poll interval and concurrent callers share one execution:

- a fresh cached snapshot is returned immediately;
- otherwise, if a fetch is already running, callers await that same task;
- otherwise a new fetch task is created and registered *before* the first
  await, so two callers in the same tick can never both start one.

Failures are never cached: the next call retries straight away.
:meth:`invalidate` detaches a running fetch as well as the cached entry, so
its result is handed to the callers already waiting on it but never stored.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from .command_runner import CommandRunner
from .constants import EMPTY_JSON, STATUS_CACHE_TTL, STATUS_COMMAND, STATUS_TIMEOUT
from .errors import ExecutionError
from .models import CacheEntry, StatusSnapshot
from .status_parser import parse_status

logger = logging.getLogger(__name__)


class StatusCoalescer:
    """Owns the status cache entry and the in-flight status fetch."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        ttl: float = STATUS_CACHE_TTL,
        command: Sequence[str] = STATUS_COMMAND,
        timeout: float = STATUS_TIMEOUT,
    ):
        self.runner = runner or CommandRunner()
        self.ttl = ttl
        self.command = tuple(command)
        self.timeout = timeout
        self._clock = clock
        self._entry: CacheEntry[StatusSnapshot] | None = None
        self._inflight: asyncio.Task | None = None
        self._generation = 0

    @property
    def cached(self) -> StatusSnapshot | None:
        """The cached snapshot if still fresh."""
        if self._entry and self._entry.is_valid(self._clock()):
            return self._entry.value
        return None

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    async def get(self) -> StatusSnapshot | None:
        """Return the fleet status, or None if it could not be read."""
        cached = self.cached
        if cached is not None:
            return cached
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch(self._generation))
        # shield: a cancelled caller must not cancel the fetch other callers share
        return await asyncio.shield(self._inflight)

    def invalidate(self) -> None:
        """Drop the cached snapshot and stop sharing the in-flight fetch."""
        self._generation += 1
        self._entry = None
        self._inflight = None

    async def _fetch(self, generation: int) -> StatusSnapshot | None:
        try:
            degraded = False
            try:
                result = await self.runner.execute(self.command, timeout=self.timeout)
                text = result.stdout
            except ExecutionError as e:
                logger.warning("Status command failed: %s", e)
                text, degraded = EMPTY_JSON, True

            snapshot = parse_status(text)
            if not degraded and generation == self._generation:
                self._entry = CacheEntry(value=snapshot, timestamp=self._clock(), ttl=self.ttl)
            return snapshot
        except Exception:
            logger.exception("Error getting fleet status")
            return None
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None
