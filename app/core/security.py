"""Request screening and response hardening helpers.

- ``get_client_ip`` resolves the caller's address behind proxies.
- ``validate_client_ip`` flags addresses that are missing or unparsable.
- ``detect_malicious_patterns`` screens the path and query string for common
  injection payloads (XSS, Mongo operators, SQL, path traversal).
- ``build_security_headers`` returns the hardening headers added to every
  response.
"""

from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote_plus

from fastapi import Request

from app.core.config import SecuritySettings, settings
from app.core.errors import PermissionAppError

logger = logging.getLogger(__name__)

ANONYMOUS_IP = "anonymous"

_MALICIOUS_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("script_tag", re.compile(r"<\s*/?\s*script", re.IGNORECASE)),
    ("javascript_uri", re.compile(r"javascript\s*:", re.IGNORECASE)),
    ("event_handler", re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE)),
    ("html_injection", re.compile(r"<\s*(iframe|object|embed|svg|img)\b", re.IGNORECASE)),
    ("nosql_operator", re.compile(r"\$(where|ne|gt|gte|lt|lte|regex|exists|or|and|nin|in)\b", re.IGNORECASE)),
    ("sql_injection", re.compile(r"\bunion\b.+\bselect\b|\bdrop\s+table\b|;\s*--|'\s*or\s+'?1'?\s*=\s*'?1", re.IGNORECASE)),
    ("path_traversal", re.compile(r"\.\./|\.\.\\")),
)


@dataclass(frozen=True)
class ThreatCheck:
    is_malicious: bool
    reason: str | None = None


@dataclass(frozen=True)
class IPCheck:
    ip: str
    is_suspicious: bool
    reason: str | None = None


def get_client_ip(request: Request) -> str:
    """Return the originating client address.

    Order: first ``X-Forwarded-For`` hop, ``X-Real-IP``, ``CF-Connecting-IP``,
    then the socket peer. Falls back to ``"anonymous"``.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS_IP


def validate_client_ip(request: Request) -> IPCheck:
    ip = get_client_ip(request)
    if ip == ANONYMOUS_IP:
        return IPCheck(ip=ip, is_suspicious=True, reason="missing client address")
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return IPCheck(ip=ip, is_suspicious=True, reason="unparsable client address")
    return IPCheck(ip=ip, is_suspicious=False)


def detect_malicious_patterns(path: str, query: str = "") -> ThreatCheck:
    """Screen a URL path and raw query string for known attack payloads."""
    candidate = unquote_plus(f"{path}?{query}" if query else path)
    for reason, pattern in _MALICIOUS_PATTERNS:
        if pattern.search(candidate):
            return ThreatCheck(is_malicious=True, reason=reason)
    return ThreatCheck(is_malicious=False)


async def block_malicious_requests(request: Request) -> None:
    """FastAPI dependency rejecting requests whose URL carries an attack payload.

    Raises:
        PermissionAppError: 403 when a pattern matches and blocking is enabled.
    """
    if not settings.security.block_malicious_requests:
        return

    check = detect_malicious_patterns(request.url.path, request.url.query)
    if not check.is_malicious:
        return

    logger.warning(
        "security.malicious_request",
        extra={
            "reason": check.reason,
            "client_ip": get_client_ip(request),
            "user_agent": request.headers.get("user-agent", "unknown"),
            "request_path": request.url.path,
            "request_method": request.method,
            "severity": "high",
        },
    )
    raise PermissionAppError(
        code="request_blocked",
        message="Request blocked for security reasons",
    )


def build_security_headers(security_settings: SecuritySettings | None = None) -> dict[str, str]:
    cfg = security_settings or settings.security
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
        "Content-Security-Policy": cfg.content_security_policy,
        "Cross-Origin-Opener-Policy": "same-origin",
        "X-DNS-Prefetch-Control": "off",
    }
    if cfg.hsts_enabled:
        headers["Strict-Transport-Security"] = f"max-age={cfg.hsts_max_age}; includeSubDomains"
    return headers
