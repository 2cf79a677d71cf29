"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import audit_router, auth_router, health_router, security_router, users_router
from app.core.config import APP_ENV, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_context_middleware, security_headers_middleware
from app.core.openapi import apply_openapi_customizations
from app.db.database import create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if settings.db.auto_create:
        create_tables()
    logger.info("app.startup", extra={"environment": APP_ENV})
    yield
    logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "Administrative backend for a CRM: user management with role-based "
            "access control, bearer-token sessions, per-IP rate limiting, "
            "security headers and an audit trail of every sensitive action."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware (last registered runs first)
    origins = settings.app.cors_origin_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", settings.log.request_id_header],
        )
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_context_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(users_router, prefix="/v1")
    app.include_router(auth_router, prefix="/v1")
    app.include_router(audit_router, prefix="/v1")
    app.include_router(security_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
