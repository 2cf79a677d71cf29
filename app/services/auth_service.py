"""Registration and credential checks.

Failed logins never reveal whether the email exists: unknown accounts and bad
passwords produce the same "Invalid credentials" error. Only a correct
password on a deactivated account yields "Account is deactivated". The audit
trail keeps the real reason ("User not found" or "Invalid password").
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import create_access_token, hash_password, verify_password
from app.core.errors import AuthenticationAppError, ConflictAppError, ValidationAppError
from app.core.permissions import Role
from app.db.models import User
from app.schemas.auth import LoginRequest, RegisterRequest
from app.services.audit_service import RESOURCE_AUTH, AuditLogger, ClientInfo, audit_logger
from app.utils.password_policy import check_password_strength
from app.utils.sanitize import sanitize_optional, sanitize_string

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_DEACTIVATED = "Account is deactivated"
USER_NOT_FOUND = "User not found"
INVALID_PASSWORD = "Invalid password"


class AuthService:
    def __init__(self, session: Session, audit: AuditLogger = audit_logger) -> None:
        self._session = session
        self._audit = audit

    def register(self, payload: RegisterRequest, client: ClientInfo) -> User:
        """Create a self-service account with the ``user`` role.

        Raises:
            ValidationAppError: The password fails the strength policy.
            ConflictAppError: The email is already registered.
        """
        strength = check_password_strength(payload.password)
        if not strength.is_strong:
            self._audit.log_action(
                "REGISTRATION_WEAK_PASSWORD",
                actor=None,
                user_email=payload.email,
                client=client,
                resource=RESOURCE_AUTH,
                details={"feedback": strength.feedback},
                success=False,
                error_message="Password does not meet security requirements",
            )
            raise ValidationAppError(
                code="weak_password",
                message="Password does not meet security requirements",
                details={"feedback": strength.feedback},
            )

        existing = self._session.execute(select(User.id).where(User.email == payload.email)).first()
        if existing is not None:
            self._audit.log_action(
                "REGISTRATION_DUPLICATE_EMAIL",
                actor=None,
                user_email=payload.email,
                client=client,
                resource=RESOURCE_AUTH,
                success=False,
                error_message="User with this email already exists",
            )
            raise ConflictAppError(code="email_exists", message="User with this email already exists")

        user = User(
            name=sanitize_string(payload.name),
            email=payload.email,
            password_hash=hash_password(payload.password),
            role=Role.USER.value,
            phone=sanitize_optional(payload.phone),
            department=sanitize_optional(payload.department),
            is_active=True,
        )
        self._session.add(user)
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictAppError(
                code="email_exists", message="User with this email already exists"
            ) from exc

        logger.info("auth.registered", extra={"user_id": user.id})
        self._audit.log_action(
            "REGISTRATION_SUCCESS",
            actor=None,
            user_email=user.email,
            client=client,
            resource=RESOURCE_AUTH,
            resource_id=user.id,
        )
        return user

    def authenticate(self, payload: LoginRequest, client: ClientInfo) -> tuple[User, str, int]:
        """Check credentials and issue a session token.

        Returns:
            Tuple of (user, access token, token lifetime in seconds).

        Raises:
            AuthenticationAppError: Unknown email, wrong password, or a
                deactivated account.
        """
        user = self._session.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()

        if user is None:
            self._fail_login(payload.email, client, reason=USER_NOT_FOUND)
            raise AuthenticationAppError(code="invalid_credentials", message=INVALID_CREDENTIALS)

        if not verify_password(payload.password, user.password_hash):
            self._fail_login(payload.email, client, reason=INVALID_PASSWORD)
            raise AuthenticationAppError(code="invalid_credentials", message=INVALID_CREDENTIALS)

        if not user.is_active:
            self._fail_login(payload.email, client, reason=ACCOUNT_DEACTIVATED)
            raise AuthenticationAppError(code="account_deactivated", message=ACCOUNT_DEACTIVATED)

        user.last_login_at = datetime.now(timezone.utc)
        self._session.commit()

        token, expires_in = create_access_token(user)
        logger.info("auth.login_succeeded", extra={"user_id": user.id})
        self._audit.log_user_login(user_id=user.id, user_email=user.email, client=client)
        return user, token, expires_in

    def _fail_login(self, email: str, client: ClientInfo, *, reason: str) -> None:
        logger.warning("auth.login_failed", extra={"reason": reason, "client_ip": client.ip_address})
        self._audit.log_failed_login(email=email, client=client, reason=reason)
