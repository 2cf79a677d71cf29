"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the storage backend can be swapped later with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the attempt is allowed to proceed.
        limit: Max attempts per window.
        remaining: Remaining attempts in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the window (or block) expires.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of a key's budget, as returned by ``peek``."""

    limit: int
    remaining: int
    reset_at: int
    is_limited: bool


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume rate limit budget for a given key.

        Args:
            key: Unique identifier (e.g., tier-scoped client IP).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str) -> RateLimitStatus:
        """Report the key's current budget without consuming any of it."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget all state held for ``key``."""
        raise NotImplementedError
