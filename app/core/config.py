"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


DEFAULT_JWT_SECRET = "change-me-in-production-use-long-random-string"


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "CRM Admin API",
        description="Service name shown in the OpenAPI docs",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    cors_origins: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of origins allowed by CORS",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class AuthSettings(BaseSettings):
    """Session token and password hashing configuration."""

    jwt_secret: str = Field(
        DEFAULT_JWT_SECRET,
        description="HMAC secret used to sign session tokens",
    )
    jwt_algorithm: str = Field(
        "HS256",
        description="JWT signing algorithm",
    )
    token_expire_minutes: int = Field(
        30 * 24 * 60,
        description="Session token lifetime in minutes (default 30 days)",
        ge=1,
    )
    bcrypt_rounds: int = Field(
        12,
        description="bcrypt cost factor for password hashes",
        ge=4,
        le=31,
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )

    @field_validator("jwt_secret")
    @classmethod
    def check_jwt_secret(cls, value: str) -> str:
        if APP_ENV == "production" and value == DEFAULT_JWT_SECRET:
            raise ValueError(
                "AUTH_JWT_SECRET must be changed from the default value in production"
            )
        return value


class DatabaseSettings(BaseSettings):
    """Relational storage configuration."""

    url: str = Field(
        "sqlite:///./crm_admin.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        False,
        description="Log every SQL statement",
    )
    auto_create: bool = Field(
        True,
        description="Create missing tables on application startup",
    )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-tier limits for the in-memory rate limiter.

    Each tier is a fixed window of ``*_window_seconds`` holding ``*_points``
    attempts; exceeding it blocks the key for ``*_block_seconds``.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting on API routes",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    auth_points: int = Field(5, ge=1)
    auth_window_seconds: int = Field(900, ge=1)
    auth_block_seconds: int = Field(900, ge=0)

    login_points: int = Field(5, ge=1)
    login_window_seconds: int = Field(900, ge=1)
    login_block_seconds: int = Field(900, ge=0)

    api_points: int = Field(100, ge=1)
    api_window_seconds: int = Field(900, ge=1)
    api_block_seconds: int = Field(300, ge=0)

    sensitive_points: int = Field(10, ge=1)
    sensitive_window_seconds: int = Field(900, ge=1)
    sensitive_block_seconds: int = Field(900, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class SecuritySettings(BaseSettings):
    """Response hardening and request screening."""

    hsts_enabled: bool = Field(
        APP_ENV == "production",
        description="Send Strict-Transport-Security (enabled by default in production)",
    )
    hsts_max_age: int = Field(
        31536000,
        description="max-age for Strict-Transport-Security in seconds",
    )
    content_security_policy: str = Field(
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; font-src 'self'; connect-src 'self'; "
        "frame-ancestors 'none'; base-uri 'self'; form-action 'self'",
        description="Content-Security-Policy header value",
    )
    block_malicious_requests: bool = Field(
        True,
        description="Reject requests whose path or query matches known attack patterns",
    )

    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Header carrying the correlation id")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
