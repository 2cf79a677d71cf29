"""Logging utilities with JSON formatting, redaction, and request correlation.

This module centralizes logging configuration, including:
- Context-aware request_id and client_ip propagation via contextvars
- Credential redaction on log records (passwords, hashes, tokens)
- JSON formatter for machine-friendly logs
- Configurable stdout/file handlers with rotation support
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from app.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_client_ip_var: ContextVar[str | None] = ContextVar("client_ip", default=None)

REDACTED = "[REDACTED]"

# Structured field names whose values must never reach a log sink
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "password",
        "new_password",
        "password_hash",
        "token",
        "access_token",
        "authorization",
        "secret",
        "jwt_secret",
        "auth_jwt_secret",
        "cookie",
        "set-cookie",
        "x-api-key",
        "api_key",
    }
)

# Built-in LogRecord attributes; everything else on a record came from `extra`
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)


def set_request_id(request_id: str | None) -> None:
    """Store the current request id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Fetch the current request id from context."""

    return _request_id_var.get()


def clear_request_id() -> None:
    """Clear any stored request id from context."""

    _request_id_var.set(None)


def set_client_ip(client_ip: str | None) -> None:
    _client_ip_var.set(client_ip)


def get_client_ip() -> str | None:
    return _client_ip_var.get()


def redact(value: Any, sensitive_keys: Iterable[str] = SENSITIVE_KEYS_DEFAULT) -> Any:
    """Recursively replace values stored under sensitive keys.

    Args:
        value: Arbitrary value (mapping, sequence or scalar).
        sensitive_keys: Lower-case key names to redact.

    Returns:
        A copy of ``value`` with sensitive entries replaced by ``[REDACTED]``.
    """

    keys = sensitive_keys if isinstance(sensitive_keys, (set, frozenset)) else set(sensitive_keys)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in keys else redact(v, keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v, keys) for v in value)
    return value


def _record_extras(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key.startswith("_"):
            continue
        extras[key] = REDACTED if key.lower() in sensitive_keys else redact(value, sensitive_keys)
    return extras


class RequestContextFilter(logging.Filter):
    """Attach request_id and client_ip from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        if getattr(record, "client_ip", None) is None:
            client_ip = get_client_ip()
            if client_ip:
                record.client_ip = client_ip
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive fields on the record before any formatter sees it."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _record_extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Format LogRecord as a single JSON line."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(_record_extras(record, self.sensitive_keys))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/app.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Configure the root logger with JSON (or plain) output and redaction.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())

    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
    if not settings.db.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
