"""Populate the database with default development accounts.

Usage:
    python -m app.db.seed            # add missing default accounts
    python -m app.db.seed --reset    # delete every user first
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass

from sqlalchemy import delete, select

from app.core.auth import hash_password
from app.core.config import settings
from app.core.logging import configure_logging
from app.db.database import create_tables, db_session
from app.db.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedUser:
    name: str
    email: str
    password: str
    role: str
    department: str | None = None


DEFAULT_USERS: tuple[SeedUser, ...] = (
    SeedUser(name="Admin User", email="admin@gmail.com", password="Admin@123", role="admin", department="Administration"),
    SeedUser(name="Manager User", email="manager@gmail.com", password="Manager@123", role="manager", department="Sales"),
    SeedUser(name="Customer User", email="customer@gmail.com", password="Customer@123", role="user", department="Support"),
)


def seed_users(users: tuple[SeedUser, ...] = DEFAULT_USERS, *, reset: bool = False) -> list[str]:
    """Insert ``users`` whose emails are not present yet.

    Args:
        users: Accounts to create.
        reset: Delete all existing users first.

    Returns:
        Emails of the accounts actually created.
    """
    create_tables()
    created: list[str] = []

    with db_session() as session:
        if reset:
            removed = session.execute(delete(User)).rowcount
            logger.info("seed.reset", extra={"removed": removed})

        existing = set(session.execute(select(User.email)).scalars())
        for seed in users:
            email = seed.email.lower()
            if email in existing:
                logger.info("seed.skipped_existing", extra={"email": email})
                continue
            session.add(
                User(
                    name=seed.name,
                    email=email,
                    password_hash=hash_password(seed.password),
                    role=seed.role,
                    department=seed.department,
                    is_active=True,
                )
            )
            created.append(email)

    logger.info("seed.completed", extra={"created": len(created)})
    return created


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed default CRM accounts.")
    parser.add_argument("--reset", action="store_true", help="delete all users before seeding")
    args = parser.parse_args(argv)

    configure_logging(settings.log)
    created = seed_users(reset=args.reset)
    for email in created:
        print(f"created {email}")
    if not created:
        print("nothing to do, all default accounts exist")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
