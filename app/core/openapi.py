"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- Bearer (JWT) security scheme with per-path overrides for public endpoints

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

# Endpoints reachable without a session token
PUBLIC_PATH_SUFFIXES = (
    "/health",
    "/health/ready",
    "/auth/login",
    "/auth/register",
    "/security/headers-check",
    "/security/rate-limit-status",
)


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for bearer auth (``Authorization``)
    - Marks all operations as requiring a token by default, then exempts
      public endpoints by setting ``security: []``
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        # Components / security scheme
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Session token returned by POST /v1/auth/login.",
            },
        )

        # Global security requirement (applies to all operations)
        schema.setdefault("security", [{"BearerAuth": []}])

        # Tags metadata
        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Users", "description": "Account management with role-based access control."},
            {"name": "Auth", "description": "Registration, login and the current session."},
            {"name": "Audit", "description": "Read access to the audit trail."},
            {"name": "Security", "description": "Security header and rate limit diagnostics."},
            {"name": "Health", "description": "Liveness and readiness checks."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            if path.endswith(PUBLIC_PATH_SUFFIXES):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
