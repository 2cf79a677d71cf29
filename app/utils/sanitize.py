from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_ANGLE_BRACKETS = re.compile(r"[<>]")


def sanitize_string(value: str) -> str:
    """Clean a free-text field before it is stored.

    Drops control characters and angle brackets, collapses runs of
    whitespace into single spaces, and trims the result.

    Args:
        value: Raw user-provided text.

    Returns:
        str: Sanitized text (possibly empty).
    """
    value = _CONTROL_CHARS.sub("", value)
    value = _ANGLE_BRACKETS.sub("", value)
    value = re.sub(r"\s+", " ", value)
    return value.strip()


def sanitize_optional(value: str | None) -> str | None:
    """Like ``sanitize_string`` but maps missing or blank input to ``None``."""
    if value is None:
        return None
    return sanitize_string(value) or None
