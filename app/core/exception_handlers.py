"""Global exception handlers producing the API error envelope.

Every failure leaves the service as::

    {"success": false, "error": {"code", "message", "request_id", "details"?}}

Mapping:
- ``AppError`` subclasses carry their own status (400, 401, 403, 404, 409)
- ``RequestValidationError`` becomes 400 ``validation_failed`` with a
  per-field list in ``details.fields``; rejected bodies on audited
  endpoints (register, login, user create/update) are also audited
- Starlette ``HTTPException`` (unknown route, 405, throttling) keeps its
  status and headers; 429 adds ``details.retry_after``
- Anything else becomes a generic 500 without internals
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError
from app.core.logging import get_request_id
from app.services.audit_service import ClientInfo, audit_logger

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limit_exceeded",
}

# Location prefixes FastAPI puts in front of the offending field name
_LOC_SOURCES = frozenset({"body", "query", "path", "header", "cookie"})


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    error = {
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        error["details"] = details
    return {"success": False, "error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error using the status code declared on its class.

    Args:
        request: Incoming request (used for log context only).
        exc: The raised ``AppError``.

    Returns:
        JSONResponse carrying the error envelope.
    """
    logger.warning(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "status_code": exc.status_code,
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, dict(exc.details) if exc.details else None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn FastAPI/Pydantic request validation failures into a 400 response."""
    fields = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part not in _LOC_SOURCES),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]

    logger.warning(
        "http.validation_failed",
        extra={
            "request_path": request.url.path,
            "request_method": request.method,
            "invalid_fields": [f["field"] for f in fields],
        },
    )

    route = request.scope.get("route")
    if route is not None:
        body = exc.body if isinstance(exc.body, dict) else {}
        email = body.get("email")
        await run_in_threadpool(
            audit_logger.log_validation_failure,
            route.name,
            actor=getattr(request.state, "principal", None),
            client=ClientInfo.from_request(request),
            fields=fields,
            user_email=email[:255] if isinstance(email, str) else None,
            resource_id=request.path_params.get("user_id"),
        )

    return JSONResponse(
        status_code=400,
        content=_error_body("validation_failed", "Validation failed", {"fields": fields}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 routes, 429 throttling) in the common envelope."""
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    details = None
    if exc.status_code == 429 and exc.headers and "Retry-After" in exc.headers:
        details = {"retry_after": int(exc.headers["Retry-After"])}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, str(exc.detail), details),
        headers=dict(exc.headers) if exc.headers else None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for unexpected errors.

    The exception type and message go to the log; the client only ever sees
    a generic message.
    """
    logger.error(
        "http.unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Install the handlers above on ``app``. Safe to call more than once."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
