"""In-memory fixed-window rate limiter with a block period.

Notes:
- Per-process only: running multiple workers multiplies the effective limit,
  and all state is lost on restart.
- Thread-safe: uses a lock around shared state.
- Expiry is lazy: a key's window is only discarded when the key is touched
  again, plus an occasional sweep of the whole table.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult, RateLimitStatus


@dataclass
class _KeyState:
    count: int
    window_reset_at: float
    blocked_until: float = 0.0

    def is_expired(self, now: float) -> bool:
        return self.window_reset_at <= now and self.blocked_until <= now


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Allow ``points`` attempts per key within ``window_seconds``.

    The window for a key opens on its first attempt. Once the count goes past
    ``points`` the key is blocked for ``block_seconds``; attempts made while
    blocked are rejected and not counted. With ``block_seconds=0`` the key
    stays blocked until its window resets.
    """

    def __init__(
        self,
        *,
        points: int,
        window_seconds: int,
        block_seconds: int = 0,
        clock: Callable[[], float] = time.time,
        purge_interval: int = 1000,
    ) -> None:
        """Initialize the limiter.

        Args:
            points: Maximum number of allowed units per window.
            window_seconds: Size of the window in seconds.
            block_seconds: How long a key stays blocked after exceeding ``points``.
            clock: Time source function returning UNIX time in seconds.
            purge_interval: Sweep expired keys every N consume calls.

        Raises:
            ValueError: If any argument is out of range.
        """
        if points < 1:
            raise ValueError("points must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if block_seconds < 0:
            raise ValueError("block_seconds must be >= 0")
        if purge_interval < 1:
            raise ValueError("purge_interval must be >= 1")

        self._points = points
        self._window_seconds = window_seconds
        self._block_seconds = block_seconds
        self._clock = clock
        self._purge_interval = purge_interval
        self._consumes_since_purge = 0
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _KeyState] = {}

    @property
    def points(self) -> int:
        return self._points

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    @property
    def block_seconds(self) -> int:
        return self._block_seconds

    def __len__(self) -> int:
        return len(self._state_by_key)

    def _live_state(self, key: str, now: float) -> _KeyState | None:
        state = self._state_by_key.get(key)
        if state is not None and state.is_expired(now):
            del self._state_by_key[key]
            return None
        return state

    def _blocked(self, state: _KeyState, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=False,
            limit=self._points,
            remaining=0,
            reset_at=int(math.ceil(state.blocked_until)),
            retry_after_seconds=max(1, int(math.ceil(state.blocked_until - now))),
        )

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume budget for ``key`` and report whether the attempt may proceed.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()

        with self._lock:
            self._maybe_purge(now)

            state = self._live_state(key, now)
            if state is not None and state.blocked_until > now:
                return self._blocked(state, now)

            if state is None or state.window_reset_at <= now or state.blocked_until:
                # First attempt, elapsed window, or a block that has been served.
                state = _KeyState(count=0, window_reset_at=now + self._window_seconds)
                self._state_by_key[key] = state

            state.count += cost
            if state.count <= self._points:
                return RateLimitResult(
                    allowed=True,
                    limit=self._points,
                    remaining=self._points - state.count,
                    reset_at=int(math.ceil(state.window_reset_at)),
                    retry_after_seconds=None,
                )

            state.blocked_until = (
                now + self._block_seconds if self._block_seconds else state.window_reset_at
            )
            return self._blocked(state, now)

    def peek(self, key: str) -> RateLimitStatus:
        now = self._clock()
        with self._lock:
            state = self._live_state(key, now)
            if state is None:
                return RateLimitStatus(
                    limit=self._points,
                    remaining=self._points,
                    reset_at=int(math.ceil(now + self._window_seconds)),
                    is_limited=False,
                )
            if state.blocked_until > now:
                return RateLimitStatus(
                    limit=self._points,
                    remaining=0,
                    reset_at=int(math.ceil(state.blocked_until)),
                    is_limited=True,
                )
            if state.window_reset_at <= now or state.blocked_until:
                return RateLimitStatus(
                    limit=self._points,
                    remaining=self._points,
                    reset_at=int(math.ceil(now + self._window_seconds)),
                    is_limited=False,
                )
            remaining = max(0, self._points - state.count)
            return RateLimitStatus(
                limit=self._points,
                remaining=remaining,
                reset_at=int(math.ceil(state.window_reset_at)),
                is_limited=remaining == 0,
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every key whose window and block have both expired.

        Returns:
            Number of keys removed.
        """
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [k for k, s in self._state_by_key.items() if s.is_expired(now)]
        for k in expired:
            del self._state_by_key[k]
        self._consumes_since_purge = 0
        return len(expired)

    def _maybe_purge(self, now: float) -> None:
        self._consumes_since_purge += 1
        if self._consumes_since_purge >= self._purge_interval:
            self._purge(now)
