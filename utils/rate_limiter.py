"""Rate limiter module for paid AI calls.

The limiter uses a sliding window per identifier by storing monotonic
timestamps in a deque, pruning entries older than the rolling window on each
call, and enforcing the cap against the remaining timestamps.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TypeAlias

from utils.errors import ConfigurationError

Timestamp: TypeAlias = float
EventDeque: TypeAlias = deque[Timestamp]


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single check-and-record call."""

    allowed: bool
    remaining: int
    reset_in_seconds: int


@dataclass
class _Window:
    # Length of the window last applied to this identifier, in seconds.
    seconds: float
    events: EventDeque = field(default_factory=deque)


class RateLimiter:
    """Sliding window rate limiter keyed by caller identity.

    Each identifier maps to a deque of monotonic timestamps plus the window
    length its caller asked for. The limiter prunes entries older than the
    rolling window before enforcing the max request cap, so bursts straddling
    a window boundary are counted exactly.

    ``max_requests`` and ``window_seconds`` are defaults; ``check_and_record``
    accepts per-call overrides so one limiter can serve several endpoints.
    """

    _max_requests: int
    _window_seconds: float
    _windows: dict[str, _Window]

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0) -> None:
        if max_requests <= 0:
            raise ConfigurationError("max_requests must be positive")
        if window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive")
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows = {}
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _prune_events(self, events: EventDeque, window_start: float) -> None:
        """Drop timestamps that have aged out of the current window.

        The deque is ordered by arrival time, so pruning stops as soon as the
        first remaining timestamp falls within the active window.
        """
        while events and events[0] <= window_start:
            events.popleft()

    def check_and_record(
        self,
        identifier: str,
        max_requests: int | None = None,
        window_ms: float | None = None,
    ) -> RateLimitResult:
        """Admit and record a request, or report how long until a slot frees up.

        Prune, compare, and append happen under one lock acquisition. Denied
        requests are not recorded, so a client hammering the limiter does not
        push its own reset time further out. ``max_requests <= 0`` always
        denies; a non-positive ``window_ms`` override is a caller bug.
        """
        limit = self._max_requests if max_requests is None else max_requests
        window = self._window_seconds if window_ms is None else window_ms / 1000.0
        if window <= 0:
            raise ConfigurationError("window_ms must be positive")

        now: Timestamp = time.monotonic()
        with self._lock:
            state = self._windows.get(identifier)
            if state is None:
                state = self._windows[identifier] = _Window(window)
            else:
                # Idle expiry must outlast the longest window this key was limited under.
                state.seconds = max(state.seconds, window)
            events = state.events
            self._prune_events(events, now - window)
            if limit <= 0 or len(events) >= limit:
                oldest = events[0] if events else now
                reset_in = max(math.ceil(oldest + window - now), 1)
                if not events:
                    self._windows.pop(identifier, None)
                return RateLimitResult(allowed=False, remaining=0, reset_in_seconds=reset_in)
            events.append(now)
            reset_in = max(math.ceil(events[0] + window - now), 0)
            return RateLimitResult(
                allowed=True,
                remaining=limit - len(events),
                reset_in_seconds=reset_in,
            )

    def reset(self, identifier: str) -> None:
        """Forget every recorded request for ``identifier``."""
        with self._lock:
            self._windows.pop(identifier, None)

    def purge_idle(self, idle_seconds: float | None = None) -> int:
        """Drop identifiers whose newest request is older than the idle cutoff.

        Without ``idle_seconds`` each identifier is kept for twice the window
        it was limited under, which keeps memory bounded as the population of
        distinct identifiers grows without forgetting a live quota early.
        """
        now = time.monotonic()
        with self._lock:
            idle = []
            for key, state in self._windows.items():
                ttl = 2 * state.seconds if idle_seconds is None else idle_seconds
                if not state.events or state.events[-1] <= now - ttl:
                    idle.append(key)
            for key in idle:
                del self._windows[key]
        return len(idle)

    def get_stats(self) -> dict[str, int | list[str]]:
        with self._lock:
            identifiers = list(self._windows)
        return {"tracked_identifiers": len(identifiers), "identifiers": identifiers}
