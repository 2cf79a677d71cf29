"""Pydantic schemas for audit log entries."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    """An audit record about to be written."""

    action: str
    resource: str
    user_id: int | None = None
    user_email: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    success: bool = True
    error_message: str | None = None


class AuditLogRead(AuditEntry):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime


class AuditLogQuery(BaseModel):
    page: int = Field(1, ge=1, le=1000)
    limit: int = Field(50, ge=1, le=100)
    action: str | None = Field(None, max_length=64, pattern=r"^[A-Z_]+$")
    user_id: int | None = Field(None, ge=1)
    success: bool | None = None
