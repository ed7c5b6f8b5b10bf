"""In-memory sliding-window counter store.

The default backend for development, tests and single-process
deployments.  Multi-process deployments use ``RedisCounterStore`` or any
other implementation of the ``CounterStore`` protocol.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime

from casebrief.models.rate_limit import RateLimitWindow

logger = logging.getLogger(__name__)


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, UTC)


class InMemoryCounterStore:
    """Sliding-log counters guarded by a single lock.

    Each key keeps the timestamps of the requests admitted within the
    trailing window.  ``hit`` prunes expired timestamps, compares the count
    with the limit and records the request in one critical section, so
    concurrent checks never over-admit.

    Keys whose whole log has expired are swept at most once per
    ``sweep_interval`` seconds, so per-address keys do not accumulate in a
    long-running process.

    Implements the ``CounterStore`` protocol.

    Parameters:
        clock: Source of the current time in epoch seconds.
        sweep_interval: Minimum number of seconds between sweeps.
    """

    __slots__ = ("_clock", "_lock", "_next_sweep", "_spans", "_sweep_interval", "_windows")

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 60.0) -> None:
        if sweep_interval < 0:
            msg = f"sweep_interval must not be negative, got {sweep_interval}"
            raise ValueError(msg)
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}
        self._spans: dict[str, float] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = float("-inf")

    def _drop(self, key: str) -> None:
        del self._windows[key]
        self._spans.pop(key, None)

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, entries in self._windows.items()
            if not entries or entries[-1] <= now - self._spans.get(key, 0.0)
        ]
        for key in expired:
            self._drop(key)
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %d expired rate limit counter(s)", len(expired))

    def _prune(self, key: str, now: float, window_seconds: float) -> deque[float]:
        entries = self._windows.setdefault(key, deque())
        self._spans[key] = window_seconds
        cutoff = now - window_seconds
        while entries and entries[0] <= cutoff:
            entries.popleft()
        return entries

    @staticmethod
    def _window(
        key: str,
        entries: deque[float],
        now: float,
        limit: int,
        window_seconds: float,
        *,
        admitted: bool,
    ) -> RateLimitWindow:
        reset_at = entries[0] + window_seconds if entries else now + window_seconds
        return RateLimitWindow(
            key=key,
            window_start=_to_datetime(now - window_seconds),
            count=len(entries),
            limit=limit,
            reset_time=_to_datetime(reset_at),
            admitted=admitted,
        )

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            entries = self._prune(key, now, window_seconds)
            admitted = len(entries) < limit
            if admitted:
                entries.append(now)
            elif not entries:
                self._drop(key)
            return self._window(key, entries, now, limit, window_seconds, admitted=admitted)

    def peek(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        with self._lock:
            now = self._clock()
            entries = self._prune(key, now, window_seconds)
            window = self._window(key, entries, now, limit, window_seconds, admitted=len(entries) < limit)
            if not entries:
                self._drop(key)
            return window

    def reset(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._windows if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                self._drop(key)
        if matched:
            logger.info("Reset %d rate limit counter(s) matching %r", len(matched), pattern)
        return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
            self._spans.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(keys={len(self._windows)})"
