"""Pydantic schemas for registration, login and the current session."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.schemas.user import (
    UserRead,
    validate_department,
    validate_email,
    validate_name,
    validate_password,
    validate_phone,
)
from app.utils.password_policy import PASSWORD_MAX_LENGTH


class RegisterRequest(BaseModel):
    """Public sign-up. Self-registered accounts always get the ``user`` role."""

    model_config = ConfigDict(extra="forbid")

    name: str
    email: EmailStr
    password: str = Field(..., max_length=PASSWORD_MAX_LENGTH)
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


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return value.lower()


class RegisteredUser(BaseModel):
    id: int
    name: str
    email: str
    role: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds.")
    user: UserRead


class SessionInfo(BaseModel):
    id: int
    name: str
    email: str
    role: str
    permissions: list[str]
