"""Append-only audit trail for security-relevant actions.

Every entry is written in its own transaction, independent of the request's
session, so that denied or failed operations are still recorded when the
request itself is rolled back. Each write is also emitted as an ``audit.event``
structured log line. A storage failure is logged and never propagated: losing
an audit row must not turn a successful user operation into an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logging import redact
from app.core.permissions import Principal
from app.core.security import get_client_ip
from app.db.database import db_session
from app.db.models import AuditLog
from app.schemas.audit import AuditEntry, AuditLogQuery

logger = logging.getLogger(__name__)

RESOURCE_USER = "USER"
RESOURCE_AUTH = "AUTH"

SCHEMA_VALIDATION_FAILED = "Schema validation failed"

# Endpoint name -> (action, resource) recorded when its request body is rejected
VALIDATION_FAILURE_ACTIONS: dict[str, tuple[str, str]] = {
    "register": ("REGISTRATION_VALIDATION_ERROR", RESOURCE_AUTH),
    "login": ("LOGIN_FAILED", RESOURCE_AUTH),
    "create_user": ("CREATE_USER_VALIDATION_ERROR", RESOURCE_USER),
    "update_user": ("UPDATE_USER_VALIDATION_ERROR", RESOURCE_USER),
}


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str
    user_agent: str

    @classmethod
    def from_request(cls, request: Request) -> "ClientInfo":
        return cls(
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent", "unknown")[:512],
        )


class AuditLogger:
    """Writes and queries audit entries."""

    def log(self, entry: AuditEntry) -> None:
        details = redact(entry.details) if entry.details else None

        logger.info(
            "audit.event",
            extra={
                "action": entry.action,
                "resource": entry.resource,
                "resource_id": entry.resource_id,
                "actor_id": entry.user_id,
                "success": entry.success,
                "error_message": entry.error_message,
            },
        )

        try:
            with db_session() as session:
                session.add(
                    AuditLog(
                        user_id=entry.user_id,
                        user_email=entry.user_email,
                        action=entry.action,
                        resource=entry.resource,
                        resource_id=entry.resource_id,
                        details=details,
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                        success=entry.success,
                        error_message=entry.error_message,
                    )
                )
        except SQLAlchemyError:
            logger.exception("audit.write_failed", extra={"action": entry.action})

    def log_action(
        self,
        action: str,
        *,
        actor: Principal | None,
        client: ClientInfo,
        resource: str = RESOURCE_USER,
        resource_id: int | str | None = None,
        details: dict[str, Any] | None = None,
        success: bool = True,
        error_message: str | None = None,
        user_email: str | None = None,
    ) -> None:
        self.log(
            AuditEntry(
                action=action,
                resource=resource,
                user_id=actor.id if actor else None,
                user_email=actor.email if actor else user_email,
                resource_id=str(resource_id) if resource_id is not None else None,
                details=details,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                success=success,
                error_message=error_message,
            )
        )

    def log_user_login(self, *, user_id: int, user_email: str, client: ClientInfo) -> None:
        self.log_action(
            "LOGIN_SUCCESS",
            actor=Principal(id=user_id, email=user_email, role=""),
            client=client,
            resource=RESOURCE_AUTH,
            resource_id=user_id,
        )

    def log_failed_login(self, *, email: str, client: ClientInfo, reason: str) -> None:
        self.log_action(
            "LOGIN_FAILED",
            actor=None,
            user_email=email,
            client=client,
            resource=RESOURCE_AUTH,
            success=False,
            error_message=reason,
        )

    def log_user_creation(
        self, *, actor: Principal, target_id: int, target_email: str, client: ClientInfo
    ) -> None:
        self.log_action(
            "CREATE_USER",
            actor=actor,
            client=client,
            resource_id=target_id,
            details={"target_user_email": target_email},
        )

    def log_user_update(
        self,
        *,
        actor: Principal,
        target_id: int,
        target_email: str,
        original: dict[str, Any],
        updated: dict[str, Any],
        client: ClientInfo,
    ) -> None:
        self.log_action(
            "UPDATE_USER",
            actor=actor,
            client=client,
            resource_id=target_id,
            details={
                "target_user_email": target_email,
                "changes": {"original": original, "updated": updated},
            },
        )

    def log_user_deletion(
        self, *, actor: Principal, target_id: int, target_email: str, client: ClientInfo
    ) -> None:
        self.log_action(
            "DELETE_USER",
            actor=actor,
            client=client,
            resource_id=target_id,
            details={"target_user_email": target_email},
        )

    def log_validation_failure(
        self,
        endpoint: str,
        *,
        actor: Principal | None,
        client: ClientInfo,
        fields: list[dict[str, Any]],
        user_email: str | None = None,
        resource_id: int | str | None = None,
    ) -> bool:
        """Record a rejected request body for an audited endpoint.

        Returns False (and writes nothing) when ``endpoint`` is not audited.
        """
        mapping = VALIDATION_FAILURE_ACTIONS.get(endpoint)
        if mapping is None:
            return False

        action, resource = mapping
        self.log_action(
            action,
            actor=actor,
            user_email=user_email,
            client=client,
            resource=resource,
            resource_id=resource_id,
            details={"fields": fields},
            success=False,
            error_message=SCHEMA_VALIDATION_FAILED,
        )
        return True

    def list_entries(self, session: Session, query: AuditLogQuery) -> tuple[list[AuditLog], int]:
        """Return one page of entries (newest first) and the total match count."""
        stmt = select(AuditLog)
        if query.action:
            stmt = stmt.where(AuditLog.action == query.action)
        if query.user_id is not None:
            stmt = stmt.where(AuditLog.user_id == query.user_id)
        if query.success is not None:
            stmt = stmt.where(AuditLog.success.is_(query.success))

        total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = (
            session.execute(
                stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .offset((query.page - 1) * query.limit)
                .limit(query.limit)
            )
            .scalars()
            .all()
        )
        return list(rows), total


audit_logger = AuditLogger()
