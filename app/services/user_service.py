"""User management service.

Owns the CRUD rules for CRM accounts:
- Permission checks against the static RBAC table
- Uniqueness of (lower-cased) email addresses
- Sanitization of stored free-text fields
- An audit entry for every success, denial and failure

The service commits its own unit of work before recording success, so the
audit writer (which uses its own session) never contends with an open write
transaction on the request session.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import hash_password
from app.core.errors import ConflictAppError, NotFoundAppError, PermissionAppError, ValidationAppError
from app.core.permissions import (
    Principal,
    can_access_resource,
    can_access_user,
    can_assign_role,
    can_create_user,
    can_deactivate_user,
    can_delete_user,
    can_modify_user,
    can_update_user_role,
    get_accessible_fields,
)
from app.db.models import User
from app.schemas.user import UserCreate, UserListQuery, UserRead, UserUpdate
from app.services.audit_service import AuditLogger, ClientInfo, audit_logger
from app.utils.password_policy import check_password_strength
from app.utils.sanitize import sanitize_optional, sanitize_string

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "department": User.department,
    "created_at": User.created_at,
    "updated_at": User.updated_at,
    "is_active": User.is_active,
}


def filter_user_fields(user: User, viewer: Principal) -> dict[str, Any]:
    """Serialize ``user`` keeping only the fields ``viewer`` may see."""
    data = UserRead.model_validate(user).model_dump(mode="json")
    allowed = set(get_accessible_fields(viewer.role, is_owner=viewer.id == user.id))
    return {key: value for key, value in data.items() if key in allowed}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class UserService:
    """CRUD operations on accounts, executed on behalf of a principal.

    Args:
        session: Request-scoped SQLAlchemy session.
        audit: Audit writer (defaults to the process-wide logger).
    """

    def __init__(self, session: Session, audit: AuditLogger = audit_logger) -> None:
        self._session = session
        self._audit = audit

    def _email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        stmt = select(User.id).where(User.email == email)
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return self._session.execute(stmt).first() is not None

    def _deny(
        self,
        action: str,
        *,
        actor: Principal,
        client: ClientInfo,
        message: str,
        resource_id: int | None = None,
        code: str = "forbidden",
        details: dict[str, Any] | None = None,
    ) -> PermissionAppError:
        self._audit.log_action(
            action,
            actor=actor,
            client=client,
            resource_id=resource_id,
            details=details,
            success=False,
            error_message=message,
        )
        return PermissionAppError(code=code, message=message, details=details)

    def list_users(
        self,
        actor: Principal,
        query: UserListQuery,
        client: ClientInfo,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of users visible to ``actor`` and the total count."""
        if not can_access_resource(actor, "user", "read"):
            raise self._deny(
                "GET_USERS_UNAUTHORIZED",
                actor=actor,
                client=client,
                message="Insufficient permissions to view users",
            )

        stmt = select(User)
        if query.search:
            pattern = f"%{_escape_like(query.search.lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(User.name).like(pattern, escape="\\"),
                    func.lower(User.email).like(pattern, escape="\\"),
                    func.lower(User.department).like(pattern, escape="\\"),
                )
            )

        total = self._session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

        column = _SORT_COLUMNS[query.sort_by]
        ordering = column.asc() if query.sort_order == "asc" else column.desc()
        users = (
            self._session.execute(
                stmt.order_by(ordering, User.id.asc())
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            .scalars()
            .all()
        )

        self._audit.log_action(
            "GET_USERS",
            actor=actor,
            client=client,
            details={
                "page": query.page,
                "limit": query.limit,
                "search": query.search,
                "total": total,
            },
        )
        return [filter_user_fields(user, actor) for user in users], total

    def create_user(self, actor: Principal, payload: UserCreate, client: ClientInfo) -> User:
        if not can_create_user(actor):
            raise self._deny(
                "CREATE_USER_UNAUTHORIZED",
                actor=actor,
                client=client,
                message="Insufficient permissions to create users",
            )

        if not can_assign_role(actor.role, payload.role):
            raise self._deny(
                "CREATE_USER_ROLE_ERROR",
                actor=actor,
                client=client,
                message=f"Cannot create user with role: {payload.role}",
                code="role_not_assignable",
                details={"attempted_role": payload.role},
            )

        strength = check_password_strength(payload.password)
        if not strength.is_strong:
            raise ValidationAppError(
                code="weak_password",
                message="Password does not meet security requirements",
                details={"feedback": strength.feedback},
            )

        if self._email_taken(payload.email):
            self._audit.log_action(
                "CREATE_USER_DUPLICATE",
                actor=actor,
                client=client,
                details={"email": payload.email},
                success=False,
                error_message="User with this email already exists",
            )
            raise ConflictAppError(code="email_exists", message="User with this email already exists")

        user = User(
            name=sanitize_string(payload.name),
            email=payload.email,
            password_hash=hash_password(payload.password),
            role=payload.role,
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

        logger.info("users.created", extra={"user_id": user.id, "role": user.role, "actor_id": actor.id})
        self._audit.log_user_creation(actor=actor, target_id=user.id, target_email=user.email, client=client)
        return user

    def get_user(self, actor: Principal, user_id: int, client: ClientInfo) -> User:
        if not can_access_user(actor, user_id):
            raise self._deny(
                "GET_USER_UNAUTHORIZED",
                actor=actor,
                client=client,
                resource_id=user_id,
                message="Insufficient permissions to view this user",
            )

        user = self._session.get(User, user_id)
        if user is None:
            self._audit.log_action(
                "GET_USER_NOT_FOUND",
                actor=actor,
                client=client,
                resource_id=user_id,
                success=False,
                error_message="User not found",
            )
            raise NotFoundAppError(code="user_not_found", message="User not found", details={"resource_id": user_id})

        self._audit.log_action("GET_USER", actor=actor, client=client, resource_id=user_id)
        return user

    def update_user(self, actor: Principal, user_id: int, payload: UserUpdate, client: ClientInfo) -> User:
        """Apply the fields present in ``payload`` to the target account.

        Raises:
            PermissionAppError: Not allowed to modify the account, change its
                role, or change its active flag.
            NotFoundAppError: No such account.
            ConflictAppError: The new email belongs to another account.
        """
        if not can_modify_user(actor, user_id):
            raise self._deny(
                "UPDATE_USER_UNAUTHORIZED",
                actor=actor,
                client=client,
                resource_id=user_id,
                message="Insufficient permissions to update this user",
            )

        user = self._session.get(User, user_id)
        if user is None:
            self._audit.log_action(
                "UPDATE_USER_NOT_FOUND",
                actor=actor,
                client=client,
                resource_id=user_id,
                success=False,
                error_message="User not found",
            )
            raise NotFoundAppError(code="user_not_found", message="User not found", details={"resource_id": user_id})

        changes = payload.model_dump(exclude_unset=True)
        for key in ("name", "email", "role", "is_active"):
            if key in changes and changes[key] is None:
                del changes[key]

        if "role" in changes and changes["role"] != user.role:
            if not can_update_user_role(actor, user_id, changes["role"]):
                raise self._deny(
                    "UPDATE_USER_ROLE_ERROR",
                    actor=actor,
                    client=client,
                    resource_id=user_id,
                    message=f"Cannot assign role: {changes['role']}",
                    code="role_not_assignable",
                    details={"attempted_role": changes["role"]},
                )

        if "is_active" in changes and changes["is_active"] != user.is_active:
            if not can_deactivate_user(actor, user_id):
                raise self._deny(
                    "UPDATE_USER_UNAUTHORIZED",
                    actor=actor,
                    client=client,
                    resource_id=user_id,
                    message="Insufficient permissions to change account status",
                )

        if "email" in changes and changes["email"] != user.email:
            if self._email_taken(changes["email"], exclude_id=user_id):
                self._audit.log_action(
                    "UPDATE_USER_EMAIL_CONFLICT",
                    actor=actor,
                    client=client,
                    resource_id=user_id,
                    details={"email": changes["email"]},
                    success=False,
                    error_message="Email already in use",
                )
                raise ConflictAppError(code="email_exists", message="Email already in use")

        for key in ("name", "phone", "department"):
            if key in changes:
                changes[key] = sanitize_optional(changes[key])
        if "name" in changes and not changes["name"]:
            raise ValidationAppError(code="validation_failed", message="Name cannot be empty")

        original: dict[str, Any] = {}
        updated: dict[str, Any] = {}
        for key, value in changes.items():
            if getattr(user, key) != value:
                original[key] = getattr(user, key)
                updated[key] = value
                setattr(user, key, value)

        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictAppError(code="email_exists", message="Email already in use") from exc

        logger.info(
            "users.updated",
            extra={"user_id": user.id, "actor_id": actor.id, "changed_fields": sorted(updated)},
        )
        self._audit.log_user_update(
            actor=actor,
            target_id=user.id,
            target_email=user.email,
            original=original,
            updated=updated,
            client=client,
        )
        return user

    def delete_user(self, actor: Principal, user_id: int, client: ClientInfo) -> None:
        if not can_delete_user(actor, user_id):
            message = (
                "You cannot delete your own account"
                if actor.id == user_id
                else "Insufficient permissions to delete users"
            )
            raise self._deny(
                "DELETE_USER_UNAUTHORIZED",
                actor=actor,
                client=client,
                resource_id=user_id,
                message=message,
            )

        user = self._session.get(User, user_id)
        if user is None:
            self._audit.log_action(
                "DELETE_USER_NOT_FOUND",
                actor=actor,
                client=client,
                resource_id=user_id,
                success=False,
                error_message="User not found",
            )
            raise NotFoundAppError(code="user_not_found", message="User not found", details={"resource_id": user_id})

        email = user.email
        self._session.delete(user)
        self._session.commit()

        logger.info("users.deleted", extra={"user_id": user_id, "actor_id": actor.id})
        self._audit.log_user_deletion(actor=actor, target_id=user_id, target_email=email, client=client)
