"""Password rules shared by registration and user management.

Two stages:
- ``find_password_violations`` is the schema-level rule set (length, character
  classes, common patterns) applied while parsing request bodies.
- ``check_password_strength`` is the stricter policy applied before a password
  is stored; it returns human-readable feedback for every unmet criterion.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
STRONG_PASSWORD_MIN_LENGTH = 8

COMMON_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"123456"),
    re.compile(r"qwerty", re.IGNORECASE),
    re.compile(r"admin", re.IGNORECASE),
    re.compile(r"letmein", re.IGNORECASE),
    re.compile(r"welcome", re.IGNORECASE),
    re.compile(r"monkey", re.IGNORECASE),
)

_SPECIAL_CHARS = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class PasswordStrength:
    is_strong: bool
    score: int
    feedback: list[str] = field(default_factory=list)


def find_password_violations(password: str) -> list[str]:
    """Return the schema-level rules ``password`` breaks (empty when valid)."""
    violations: list[str] = []
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        violations.append(
            f"Password must be between {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters"
        )
    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"\d", password)
    ):
        violations.append(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    if any(pattern.search(password) for pattern in COMMON_PATTERNS):
        violations.append("Password contains common patterns")
    return violations


def check_password_strength(password: str) -> PasswordStrength:
    checks = (
        (len(password) >= STRONG_PASSWORD_MIN_LENGTH, f"Use at least {STRONG_PASSWORD_MIN_LENGTH} characters"),
        (re.search(r"[a-z]", password) is not None, "Add a lowercase letter"),
        (re.search(r"[A-Z]", password) is not None, "Add an uppercase letter"),
        (re.search(r"\d", password) is not None, "Add a number"),
        (_SPECIAL_CHARS.search(password) is not None, "Add a special character"),
    )
    feedback = [message for passed, message in checks if not passed]
    score = len(checks) - len(feedback)
    return PasswordStrength(is_strong=not feedback, score=score, feedback=feedback)
