from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.rate_limit import TIERS, get_rate_limit_status
from app.core.security import block_malicious_requests, get_client_ip

router = APIRouter(
    prefix="/security",
    tags=["Security"],
    dependencies=[Depends(block_malicious_requests)],
)


@router.get("/headers-check")
def headers_check() -> dict:
    """Echo endpoint for inspecting the security headers on a response."""
    return {
        "success": True,
        "message": "Security headers check",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/rate-limit-status")
def rate_limit_status(request: Request) -> dict:
    """Report the caller's budget on every tier without consuming any of it."""
    tiers = {}
    for tier in TIERS:
        current = get_rate_limit_status(tier, request)
        tiers[tier] = {
            "limit": current.limit,
            "remaining": current.remaining,
            "reset_at": current.reset_at,
            "is_limited": current.is_limited,
        }

    return {
        "success": True,
        "data": {
            "client_ip": get_client_ip(request),
            "enabled": settings.rate_limit.enabled,
            "tiers": tiers,
        },
    }
