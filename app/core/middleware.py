"""HTTP middleware for request correlation and response hardening.

``request_context_middleware``:
- Accepts an incoming X-Request-ID header or generates a UUID
- Stores request_id and client_ip in contextvars for log correlation
- Logs a ``security.suspicious_ip`` event for unusable client addresses
- Adds X-Request-ID and X-Request-Duration-ms to the response

``security_headers_middleware`` adds the hardening headers from
``app.core.security.build_security_headers`` to every response, including
error responses. Unexpected exceptions are rendered here as the generic 500
envelope while the request id is still bound.

Usage:
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_context_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.exception_handlers import general_exception_handler
from app.core.logging import clear_request_id, set_client_ip, set_request_id
from app.core.security import build_security_headers, validate_client_ip

logger = logging.getLogger(__name__)


async def request_context_middleware(request: Request, call_next) -> Response:
    """Attach a correlation id and client address to the request lifecycle."""

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)

    ip_check = validate_client_ip(request)
    set_client_ip(ip_check.ip)
    if ip_check.is_suspicious:
        logger.warning(
            "security.suspicious_ip",
            extra={
                "client_ip": ip_check.ip,
                "reason": ip_check.reason,
                "user_agent": request.headers.get("user-agent", "unknown"),
                "request_path": request.url.path,
                "severity": "medium",
            },
        )

    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()
        set_client_ip(None)

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        response = await general_exception_handler(request, exc)
    for name, value in build_security_headers().items():
        response.headers.setdefault(name, value)
    return response
