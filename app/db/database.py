"""SQLAlchemy engine, session factory and declarative base."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _build_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=settings.db.echo, future=True, connect_args=connect_args)


engine: Engine = _build_engine(settings.db.url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def configure_engine(url: str) -> Engine:
    """Point the session factory at a different database (tests, CLI)."""
    global engine

    engine.dispose()
    engine = _build_engine(url)
    SessionLocal.configure(bind=engine)
    logger.info("db.engine_configured", extra={"dialect": engine.dialect.name})
    return engine


def create_tables() -> None:
    # Import for side effect: registers the mapped classes on Base.metadata.
    from app.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    from app.db import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


@contextmanager
def db_session() -> Iterator[Session]:
    """Context-manager style session with automatic commit/rollback."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db_session() -> Iterator[Session]:
    """FastAPI dependency that yields a session and commits on exit."""
    with db_session() as session:
        yield session
