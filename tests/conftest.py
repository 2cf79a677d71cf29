"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It points the application at a throwaway SQLite database and sets cheap
bcrypt rounds before anything imports the settings.
"""

import os
import tempfile
from pathlib import Path

# CRITICAL: Set this before any imports that might load settings
_TMP_DIR = Path(tempfile.mkdtemp(prefix="crm-admin-tests-"))

os.environ["APP_ENV"] = "testing"
os.environ["DB_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ.setdefault("DB_AUTO_CREATE", "true")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SECURITY_HSTS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "INFO")

from typing import Callable  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.auth import create_access_token, hash_password  # noqa: E402
from app.core.rate_limit import reset_rate_limiters  # noqa: E402
from app.db.database import create_tables, db_session, drop_tables  # noqa: E402
from app.db.models import User  # noqa: E402
from app.main import app  # noqa: E402

DEFAULT_PASSWORD = "Sup3r!Secret"
CLIENT_ADDRESS = ("127.0.0.1", 50000)


@pytest.fixture(autouse=True)
def fresh_state():
    """Empty database and untouched rate limit budgets for every test."""
    drop_tables()
    create_tables()
    reset_rate_limiters()
    yield
    reset_rate_limiters()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app, client=CLIENT_ADDRESS)


@pytest.fixture
def make_user() -> Callable[..., User]:
    """Factory inserting a user directly into the database."""

    def _make_user(
        *,
        name: str = "Test User",
        email: str = "user@example.com",
        password: str = DEFAULT_PASSWORD,
        role: str = "user",
        department: str | None = None,
        is_active: bool = True,
    ) -> User:
        with db_session() as session:
            user = User(
                name=name,
                email=email.lower(),
                password_hash=hash_password(password),
                role=role,
                department=department,
                is_active=is_active,
            )
            session.add(user)
            session.flush()
            session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(name="Alice Admin", email="alice@example.com", role="admin", department="Administration")


@pytest.fixture
def manager_user(make_user) -> User:
    return make_user(name="Mark Manager", email="mark@example.com", role="manager", department="Sales")


@pytest.fixture
def regular_user(make_user) -> User:
    return make_user(name="Uma User", email="uma@example.com", role="user", department="Support")


def auth_headers(user: User) -> dict[str, str]:
    token, _ = create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
def manager_headers(manager_user) -> dict[str, str]:
    return auth_headers(manager_user)


@pytest.fixture
def user_headers(regular_user) -> dict[str, str]:
    return auth_headers(regular_user)


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_headers
