from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.database import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Used by load balancers and monitoring systems to determine whether the
    process is up. Does not touch the database.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(session: Annotated[Session, Depends(get_db_session)]):
    """Readiness check: verifies the database answers a trivial query."""
    try:
        session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database_unavailable")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "error"})
    return {"status": "ok", "database": "ok"}
