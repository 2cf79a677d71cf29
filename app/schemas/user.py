"""Pydantic schemas for user management requests and responses."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.utils.password_policy import PASSWORD_MAX_LENGTH, find_password_violations

RoleName = Literal["admin", "manager", "user"]
SortField = Literal["name", "email", "role", "department", "created_at", "updated_at", "is_active"]
SortOrder = Literal["asc", "desc"]

NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
DEPARTMENT_PATTERN = re.compile(r"^[a-zA-Z0-9\s&.-]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{7,20}$")
SEARCH_PATTERN = re.compile(r"^[a-zA-Z0-9\s@.-]+$")
_EMAIL_FORBIDDEN = set('<>"')


def validate_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Name must be between 2-50 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name contains invalid characters")
    return value


def validate_email(value: str) -> str:
    if len(value) > 255:
        raise ValueError("Email too long")
    if _EMAIL_FORBIDDEN & set(value):
        raise ValueError("Email contains invalid characters")
    return value.lower()


def validate_password(value: str) -> str:
    violations = find_password_violations(value)
    if violations:
        raise ValueError(violations[0])
    return value


def validate_phone(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone number format")
    return value


def validate_department(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) > 100:
        raise ValueError("Department name too long")
    if not DEPARTMENT_PATTERN.match(value):
        raise ValueError("Department contains invalid characters")
    return value


class UserCreate(BaseModel):
    """Payload for an administrator creating an account."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Full name, letters, spaces, apostrophes and hyphens.")
    email: EmailStr
    password: str = Field(..., max_length=PASSWORD_MAX_LENGTH)
    role: RoleName = "user"
    phone: str | None = None
    department: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return validate_name(value)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return validate_email(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return validate_password(value)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str | None) -> str | None:
        return validate_phone(value)

    @field_validator("department")
    @classmethod
    def check_department(cls, value: str | None) -> str | None:
        return validate_department(value)


class UserUpdate(BaseModel):
    """Partial update; only fields that are present are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    email: EmailStr | None = None
    role: RoleName | None = None
    phone: str | None = None
    department: str | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        return None if value is None else validate_name(value)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        return None if value is None else validate_email(value)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str | None) -> str | None:
        return validate_phone(value)

    @field_validator("department")
    @classmethod
    def check_department(cls, value: str | None) -> str | None:
        return validate_department(value)


class UserRead(BaseModel):
    """Serialized account. The password hash is never part of it."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    phone: str | None = None
    department: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserListQuery(BaseModel):
    """Query parameters accepted by the user listing."""

    page: int = Field(1, ge=1, le=1000)
    limit: int = Field(10, ge=1, le=100)
    search: str | None = Field(None, max_length=100)
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"

    @field_validator("search")
    @classmethod
    def check_search(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not SEARCH_PATTERN.match(value):
            raise ValueError("Search contains invalid characters")
        return value
