"""Session authentication: password hashing, JWT session tokens, and the
FastAPI dependency that resolves the calling principal.

Tokens are HS256 JWTs with the user id in ``sub``. Every request re-loads the
account so a deactivated or deleted user loses access immediately, even with
an unexpired token.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

import bcrypt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.permissions import Principal
from app.db.database import get_db_session
from app.db.models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# bcrypt only looks at the first 72 bytes; truncate explicitly so long
# passphrases hash and verify consistently across bcrypt releases.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.auth.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.warning("auth.invalid_password_hash")
        return False


def create_access_token(user: User, expires_minutes: int | None = None) -> tuple[str, int]:
    """Issue a session token for ``user``.

    Returns:
        Tuple of (encoded token, lifetime in seconds).
    """
    minutes = expires_minutes or settings.auth.token_expire_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    token = jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)
    return token, minutes * 60


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a session token. Raises JWTError on failure."""
    return jwt.decode(token, settings.auth.jwt_secret, algorithms=[settings.auth.jwt_algorithm])


def get_current_principal(
    request: Request,
    session: Annotated[Session, Depends(get_db_session)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)] = None,
) -> Principal:
    """Resolve ``Authorization: Bearer <jwt>`` to an active account.

    The principal is also kept on ``request.state.principal`` so error
    handlers can attribute audit entries to the caller.

    Raises:
        AuthenticationAppError: 401 when the token is missing, invalid or
            expired, or the account no longer exists or is inactive.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationAppError(code="unauthorized", message="Unauthorized")

    try:
        payload = decode_token(credentials.credentials)
        user_id = int(payload.get("sub", ""))
    except (JWTError, ValueError) as exc:
        logger.info("auth.invalid_token", extra={"reason": type(exc).__name__})
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired token",
        ) from exc

    user = session.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("auth.inactive_or_missing_user", extra={"user_id": user_id})
        raise AuthenticationAppError(
            code="invalid_token",
            message="User not found or inactive",
        )

    principal = Principal(id=user.id, email=user.email, role=user.role, name=user.name)
    request.state.principal = principal
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
