"""Response envelopes shared by every JSON endpoint."""

from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Successful single-object response."""

    success: bool = Field(default=True)
    data: T | None = Field(default=None)
    message: str | None = Field(default=None)


class Pagination(BaseModel):
    page: int = Field(..., ge=1, description="Current page (1-based).")
    limit: int = Field(..., ge=1, description="Page size.")
    total: int = Field(..., ge=0, description="Total matching records.")
    pages: int = Field(..., ge=0, description="Total number of pages.")

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)


class PaginatedResponse(BaseModel, Generic[T]):
    """Successful list response with pagination metadata."""

    success: bool = Field(default=True)
    data: list[T] = Field(default_factory=list)
    pagination: Pagination
