from __future__ import annotations

from app.api.routes.audit import router as audit_router
from app.api.routes.auth import router as auth_router
from app.api.routes.health import router as health_router
from app.api.routes.security import router as security_router
from app.api.routes.users import router as users_router

__all__ = ["audit_router", "auth_router", "health_router", "security_router", "users_router"]
