"""Tests for the development seed command."""

from sqlalchemy import select

from app.core.auth import verify_password
from app.db.database import db_session
from app.db.models import User
from app.db.seed import DEFAULT_USERS, main, seed_users


def _users() -> dict[str, User]:
    with db_session() as session:
        return {u.email: u for u in session.execute(select(User)).scalars()}


def test_seed_creates_default_accounts():
    created = seed_users()

    assert sorted(created) == ["admin@gmail.com", "customer@gmail.com", "manager@gmail.com"]
    users = _users()
    assert users["admin@gmail.com"].role == "admin"
    assert users["manager@gmail.com"].role == "manager"
    assert users["customer@gmail.com"].role == "user"
    assert verify_password("Admin@123", users["admin@gmail.com"].password_hash)


def test_seed_skips_existing_emails(make_user):
    make_user(name="Existing Admin", email="admin@gmail.com", role="manager")

    created = seed_users()

    assert "admin@gmail.com" not in created
    assert _users()["admin@gmail.com"].name == "Existing Admin"


def test_reset_replaces_every_user(make_user):
    make_user(email="someone@example.com")

    created = seed_users(reset=True)

    assert len(created) == len(DEFAULT_USERS)
    assert "someone@example.com" not in _users()


def test_cli_is_idempotent(capsys, monkeypatch):
    monkeypatch.setattr("app.db.seed.configure_logging", lambda *_: None)

    assert main([]) == 0
    assert main([]) == 0

    out = capsys.readouterr().out
    assert "created admin@gmail.com" in out
    assert "nothing to do" in out
    assert len(_users()) == 3


def test_seeded_admin_can_log_in(client):
    seed_users()

    resp = client.post("/v1/auth/login", json={"email": "admin@gmail.com", "password": "Admin@123"})

    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"] == "admin"
