"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.

Rate limiting strategy:
- Four tiers with their own budgets: ``auth`` (registration), ``login``
  (credential checks, cleared on success), ``api`` (reads) and
  ``sensitive`` (writes).
- Keys are ``"{tier}:ip:{client_ip}"``; one process-wide limiter per tier.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Callable, Literal

from fastapi import HTTPException, Request, status

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitStatus
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.config import RateLimitSettings, settings
from app.core.security import get_client_ip

logger = logging.getLogger(__name__)

Tier = Literal["auth", "login", "api", "sensitive"]
TIERS: tuple[Tier, ...] = ("auth", "login", "api", "sensitive")

_limiters: dict[str, AbstractRateLimiter] = {}
_limiter_configs: dict[str, tuple[int, int, int]] = {}


def _tier_config(tier: Tier, cfg: RateLimitSettings) -> tuple[int, int, int]:
    return (
        getattr(cfg, f"{tier}_points"),
        getattr(cfg, f"{tier}_window_seconds"),
        getattr(cfg, f"{tier}_block_seconds"),
    )


def get_rate_limiter(tier: Tier) -> AbstractRateLimiter:
    """Return the process-wide limiter for ``tier``.

    The instance is cached in-module to preserve state across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.
    """

    config = _tier_config(tier, settings.rate_limit)

    if tier not in _limiters or _limiter_configs.get(tier) != config:
        points, window_seconds, block_seconds = config
        _limiters[tier] = InMemoryFixedWindowRateLimiter(
            points=points,
            window_seconds=window_seconds,
            block_seconds=block_seconds,
        )
        _limiter_configs[tier] = config

    return _limiters[tier]


def reset_rate_limiters() -> None:
    """Drop every limiter (and all tracked keys)."""
    _limiters.clear()
    _limiter_configs.clear()


def build_rate_limit_key(tier: Tier, request: Request) -> str:
    return f"{tier}:ip:{get_client_ip(request)}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def reset_rate_limit(tier: Tier, request: Request) -> None:
    """Clear the caller's budget for ``tier`` (e.g. after a successful login)."""
    get_rate_limiter(tier).reset(build_rate_limit_key(tier, request))


def get_rate_limit_status(tier: Tier, request: Request) -> RateLimitStatus:
    return get_rate_limiter(tier).peek(build_rate_limit_key(tier, request))


def rate_limit(tier: Tier) -> Callable[[Request], None]:
    """Build a FastAPI dependency enforcing the ``tier`` budget.

    Usage:
        @router.post("/users", dependencies=[Depends(rate_limit("sensitive"))])
    """

    async def enforce_rate_limit(request: Request) -> None:
        """Consume one unit from the caller's budget or raise HTTP 429."""

        if not settings.rate_limit.enabled:
            return

        limiter = get_rate_limiter(tier)
        key = build_rate_limit_key(tier, request)
        key_hash = _hash_limiter_key(key)

        result = limiter.consume(key)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "tier": tier,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            return

        retry_after = result.retry_after_seconds or 1
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "tier": tier,
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "retry_after_s": retry_after,
                "request_path": request.url.path,
            },
        )

        headers: dict[str, str] = {}
        if settings.rate_limit.include_headers:
            headers["Retry-After"] = str(retry_after)
            headers["X-RateLimit-Limit"] = str(result.limit)
            headers["X-RateLimit-Remaining"] = str(result.remaining)
            headers["X-RateLimit-Reset"] = str(result.reset_at)

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers=headers or None,
        )

    enforce_rate_limit.__name__ = f"enforce_{tier}_rate_limit"
    return enforce_rate_limit
