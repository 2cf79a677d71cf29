"""Tests for password hashing, session tokens and the auth endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlalchemy import select

from app.core.auth import create_access_token, decode_token, hash_password, verify_password
from app.core.config import settings
from app.db.database import db_session
from app.db.models import AuditLog, User

STRONG_PASSWORD = "Sup3r!Secret"


def _audit_actions() -> list[str]:
    with db_session() as session:
        return list(session.execute(select(AuditLog.action).order_by(AuditLog.id)).scalars())


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password(STRONG_PASSWORD)
        assert hashed != STRONG_PASSWORD
        assert verify_password(STRONG_PASSWORD, hashed) is True
        assert verify_password("Wrong!Pass1", hashed) is False

    def test_malformed_hash_does_not_verify(self):
        assert verify_password(STRONG_PASSWORD, "not-a-bcrypt-hash") is False

    def test_long_passwords_are_handled(self):
        long_password = "Ab1!" * 40
        assert verify_password(long_password, hash_password(long_password)) is True


class TestSessionTokens:
    def test_token_claims(self, regular_user):
        token, expires_in = create_access_token(regular_user)
        payload = decode_token(token)

        assert payload["sub"] == str(regular_user.id)
        assert payload["email"] == "uma@example.com"
        assert payload["role"] == "user"
        assert expires_in == settings.auth.token_expire_minutes * 60

    def test_default_lifetime_is_thirty_days(self):
        assert settings.auth.token_expire_minutes == 30 * 24 * 60

    def test_expired_token_rejected(self, client, regular_user):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": str(regular_user.id), "iat": now - timedelta(days=2), "exp": now - timedelta(days=1)},
            settings.auth.jwt_secret,
            algorithm="HS256",
        )

        resp = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_token_signed_with_other_secret_rejected(self, client, regular_user):
        token = jwt.encode({"sub": str(regular_user.id)}, "some-other-secret", algorithm="HS256")

        resp = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 401

    def test_missing_token_rejected(self, client):
        resp = client.get("/v1/auth/me")

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_deactivated_user_loses_access(self, client, regular_user, user_headers):
        with db_session() as session:
            session.get(User, regular_user.id).is_active = False

        resp = client.get("/v1/auth/me", headers=user_headers)

        assert resp.status_code == 401

    def test_deleted_user_loses_access(self, client, regular_user, user_headers):
        with db_session() as session:
            session.delete(session.get(User, regular_user.id))

        assert client.get("/v1/auth/me", headers=user_headers).status_code == 401


class TestRegister:
    def _register(self, client, **overrides):
        body = {"name": "Nina New", "email": "Nina@Example.com", "password": STRONG_PASSWORD}
        body.update(overrides)
        return client.post("/v1/auth/register", json=body)

    def test_register_creates_user_role_account(self, client):
        resp = self._register(client)

        assert resp.status_code == 201
        data = resp.json()
        assert data["success"] is True
        assert data["data"]["email"] == "nina@example.com"
        assert data["data"]["role"] == "user"
        assert "password" not in data["data"]
        assert "REGISTRATION_SUCCESS" in _audit_actions()

    def test_register_cannot_choose_role(self, client):
        resp = self._register(client, role="admin")

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    def test_weak_password_returns_feedback(self, client):
        # Passes the schema rules but has no special character.
        resp = self._register(client, password="Abcdefg1")

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "weak_password"
        assert error["details"]["feedback"] == ["Add a special character"]
        assert "REGISTRATION_WEAK_PASSWORD" in _audit_actions()

    def test_duplicate_email_conflicts(self, client, regular_user):
        resp = self._register(client, email="UMA@example.com")

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_exists"
        assert "REGISTRATION_DUPLICATE_EMAIL" in _audit_actions()

    def test_name_is_validated(self, client):
        resp = self._register(client, name="<script>")

        assert resp.status_code == 400
        fields = resp.json()["error"]["details"]["fields"]
        assert fields[0]["field"] == "name"

    def test_rejected_body_is_audited(self, client):
        resp = self._register(client, name="X", email="bad", password="weak")

        assert resp.status_code == 400
        with db_session() as session:
            entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == "REGISTRATION_VALIDATION_ERROR"
        assert entry.resource == "AUTH"
        assert entry.success is False
        assert entry.error_message == "Schema validation failed"
        assert entry.user_email == "bad"
        assert {"name", "email", "password"} <= {f["field"] for f in entry.details["fields"]}


class TestLogin:
    def test_login_returns_token_and_profile(self, client, regular_user):
        resp = client.post("/v1/auth/login", json={"email": "UMA@example.com", "password": STRONG_PASSWORD})

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == settings.auth.token_expire_minutes * 60
        assert data["user"]["email"] == "uma@example.com"
        assert "password_hash" not in data["user"]
        assert decode_token(data["access_token"])["sub"] == str(regular_user.id)

        with db_session() as session:
            assert session.get(User, regular_user.id).last_login_at is not None
        assert _audit_actions() == ["LOGIN_SUCCESS"]

    def test_token_from_login_works(self, client, regular_user):
        login = client.post("/v1/auth/login", json={"email": "uma@example.com", "password": STRONG_PASSWORD})
        token = login.json()["data"]["access_token"]

        resp = client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == regular_user.id

    def test_wrong_password(self, client, regular_user):
        resp = client.post("/v1/auth/login", json={"email": "uma@example.com", "password": "Wrong!Pass1"})

        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid credentials"

    def test_unknown_email_looks_like_wrong_password(self, client):
        resp = client.post("/v1/auth/login", json={"email": "ghost@example.com", "password": "Wrong!Pass1"})

        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Invalid credentials"

    def test_deactivated_account(self, client, make_user):
        make_user(email="idle@example.com", is_active=False)

        resp = client.post("/v1/auth/login", json={"email": "idle@example.com", "password": STRONG_PASSWORD})

        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Account is deactivated"

    def test_malformed_login_is_audited_as_failure(self, client):
        resp = client.post("/v1/auth/login", json={"email": "uma@example.com"})

        assert resp.status_code == 400
        with db_session() as session:
            entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == "LOGIN_FAILED"
        assert entry.error_message == "Schema validation failed"
        assert entry.user_email == "uma@example.com"
        assert entry.details["fields"][0]["field"] == "password"

    @pytest.mark.parametrize(
        "email, reason",
        [
            ("ghost@example.com", "User not found"),
            ("uma@example.com", "Invalid password"),
        ],
    )
    def test_failed_login_is_audited_with_reason(self, client, regular_user, email, reason):
        resp = client.post("/v1/auth/login", json={"email": email, "password": "Wrong!Pass1"})

        assert resp.json()["error"]["message"] == "Invalid credentials"
        with db_session() as session:
            entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == "LOGIN_FAILED"
        assert entry.success is False
        assert entry.error_message == reason
        assert entry.user_email == email
        assert entry.resource == "AUTH"


class TestMe:
    def test_me_lists_permissions(self, client, manager_user, manager_headers):
        resp = client.get("/v1/auth/me", headers=manager_headers)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["email"] == "mark@example.com"
        assert data["role"] == "manager"
        assert "create_user" in data["permissions"]
        assert "delete_user" not in data["permissions"]
