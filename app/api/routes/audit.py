from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import CurrentPrincipal
from app.core.errors import PermissionAppError
from app.core.permissions import can_access_resource
from app.core.rate_limit import rate_limit
from app.core.security import block_malicious_requests
from app.db.database import get_db_session
from app.schemas.audit import AuditLogQuery, AuditLogRead
from app.schemas.common import PaginatedResponse, Pagination
from app.services.audit_service import audit_logger

router = APIRouter(
    tags=["Audit"],
    dependencies=[Depends(block_malicious_requests), Depends(rate_limit("api"))],
)


@router.get("/audit-logs", response_model=PaginatedResponse[AuditLogRead])
def list_audit_logs(
    principal: CurrentPrincipal,
    session: Annotated[Session, Depends(get_db_session)],
    query: Annotated[AuditLogQuery, Query()],
) -> PaginatedResponse[AuditLogRead]:
    """Browse the audit trail, newest entries first.

    Raises:
        PermissionAppError: 403 unless the caller may view audit logs.
    """
    if not can_access_resource(principal, "audit_logs", "read"):
        raise PermissionAppError(code="forbidden", message="Insufficient permissions to view audit logs")

    entries, total = audit_logger.list_entries(session, query)
    return PaginatedResponse(
        data=[AuditLogRead.model_validate(entry) for entry in entries],
        pagination=Pagination.build(page=query.page, limit=query.limit, total=total),
    )
