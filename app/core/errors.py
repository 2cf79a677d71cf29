"""Application-level exception types.

This module defines domain errors used across services and routes, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    fields: list[dict[str, Any]]
    feedback: list[str]
    attempted_role: str
    resource_id: int
    retry_after: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when credentials are missing, invalid or expired."""

    status_code = 401


class PermissionAppError(AppError):
    """Raised when an authenticated principal lacks a permission."""

    status_code = 403


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""

    status_code = 404


class ConflictAppError(AppError):
    """Raised when a write would violate a uniqueness constraint."""

    status_code = 409
