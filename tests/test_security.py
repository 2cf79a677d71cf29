"""Tests for security headers, client IP handling and request screening."""

from __future__ import annotations

import logging

import pytest
from starlette.requests import Request

from app.core.config import SecuritySettings
from app.core.security import (
    build_security_headers,
    detect_malicious_patterns,
    get_client_ip,
    validate_client_ip,
)


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("10.1.2.3", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestSecurityHeaders:
    def test_every_response_is_hardened(self, client):
        resp = client.get("/health")

        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-XSS-Protection"] == "1; mode=block"
        assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert resp.headers["Permissions-Policy"] == "camera=(), microphone=(), geolocation=()"
        assert resp.headers["Content-Security-Policy"].startswith("default-src 'self'")

    def test_error_responses_are_hardened_too(self, client):
        resp = client.get("/v1/users")

        assert resp.status_code == 401
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_hsts_only_when_enabled(self):
        assert "Strict-Transport-Security" not in build_security_headers(SecuritySettings(hsts_enabled=False))

        headers = build_security_headers(SecuritySettings(hsts_enabled=True, hsts_max_age=600))
        assert headers["Strict-Transport-Security"] == "max-age=600; includeSubDomains"

    def test_headers_check_endpoint(self, client):
        resp = client.get("/v1/security/headers-check")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert "timestamp" in body
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestClientIp:
    def test_forwarded_for_first_hop_wins(self):
        request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1", "X-Real-IP": "198.51.100.1"})
        assert get_client_ip(request) == "203.0.113.5"

    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"X-Real-IP": "198.51.100.1"}, "198.51.100.1"),
            ({"CF-Connecting-IP": "192.0.2.44"}, "192.0.2.44"),
            ({}, "10.1.2.3"),
        ],
    )
    def test_fallback_order(self, headers, expected):
        assert get_client_ip(_request(headers)) == expected

    def test_anonymous_when_nothing_known(self):
        assert get_client_ip(_request(client=None)) == "anonymous"

    def test_unparsable_ip_is_suspicious(self):
        check = validate_client_ip(_request({"X-Forwarded-For": "not-an-ip"}))
        assert check.is_suspicious is True

    def test_hostname_peer_is_suspicious(self):
        check = validate_client_ip(_request(client=("testclient", 50000)))
        assert check.is_suspicious is True
        assert check.reason == "unparsable client address"

    def test_missing_ip_is_suspicious(self):
        assert validate_client_ip(_request(client=None)).is_suspicious is True

    def test_valid_ip_is_fine(self):
        assert validate_client_ip(_request()).is_suspicious is False

    def test_suspicious_ip_is_logged(self, client, caplog):
        with caplog.at_level(logging.WARNING):
            client.get("/health", headers={"X-Forwarded-For": "definitely not an ip"})

        assert any(r.getMessage() == "security.suspicious_ip" for r in caplog.records)


class TestMaliciousPatterns:
    @pytest.mark.parametrize(
        "query, reason",
        [
            ("q=<script>alert(1)</script>", "script_tag"),
            ("next=javascript:alert(1)", "javascript_uri"),
            ("x=<img src=x onerror=alert(1)>", "event_handler"),
            ("filter[$ne]=1", "nosql_operator"),
            ("id=1 UNION SELECT password FROM users", "sql_injection"),
            ("q=1; DROP TABLE users", "sql_injection"),
            ("file=../../etc/passwd", "path_traversal"),
        ],
    )
    def test_detects(self, query, reason):
        check = detect_malicious_patterns("/v1/users", query)
        assert check.is_malicious is True
        assert check.reason == reason

    def test_url_encoded_payload_detected(self):
        assert detect_malicious_patterns("/v1/users", "q=%3Cscript%3E").is_malicious is True

    @pytest.mark.parametrize("query", ["", "page=2&limit=10", "search=jane@example.com", "sort_by=created_at"])
    def test_clean_requests_pass(self, query):
        assert detect_malicious_patterns("/v1/users", query).is_malicious is False

    def test_malicious_query_blocked_with_403(self, client, admin_headers, caplog):
        with caplog.at_level(logging.WARNING):
            resp = client.get("/v1/users?search=<script>alert(1)</script>", headers=admin_headers)

        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "request_blocked"
        assert any(r.getMessage() == "security.malicious_request" for r in caplog.records)

    def test_blocked_before_authentication(self, client):
        resp = client.get("/v1/users", params={"search": "x' OR '1'='1"})

        assert resp.status_code == 403


class TestRateLimitStatusEndpoint:
    def test_reports_every_tier_without_consuming(self, client):
        first = client.get("/v1/security/rate-limit-status").json()["data"]
        second = client.get("/v1/security/rate-limit-status").json()["data"]

        assert set(first["tiers"]) == {"auth", "login", "api", "sensitive"}
        assert first["tiers"]["auth"]["remaining"] == 5
        assert second["tiers"]["auth"]["remaining"] == 5
        assert first["client_ip"] == "127.0.0.1"

    def test_reflects_consumed_budget(self, client):
        client.post("/v1/auth/login", json={"email": "nobody@example.com", "password": "Wrong!Pass1"})

        data = client.get("/v1/security/rate-limit-status").json()["data"]

        assert data["tiers"]["login"]["remaining"] == 4
        assert data["tiers"]["auth"]["remaining"] == 5
        assert data["tiers"]["api"]["remaining"] == 100
