"""Tests for login, token refresh and logout."""
import pytest
from werkzeug.security import generate_password_hash

from app.pms import create_app
from app.pms.auth import reset_login_attempts
from app.pms.db import session_scope
from app.pms.models import AuditLog, Base, User
from app.pms.rbac import ensure_roles, ensure_superadmin


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SUPERADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("SUPERADMIN_PASSWORD", "root-pass-123")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        roles = ensure_roles(s)
        ensure_superadmin(s, email="root@example.com", password="root-pass-123", first_name="Super", last_name="Admin")
        for email, first, role in (("ravi@example.com", "Ravi", "admin"), ("asha@example.com", "Asha", "user")):
            u = User(email=email, password_hash=generate_password_hash("pass-1234"), first_name=first, last_name="Test")
            u.roles.append(roles[role])
            s.add(u)
        inactive = User(
            email="gone@example.com",
            password_hash=generate_password_hash("pass-1234"),
            first_name="Gone",
            last_name="Test",
            is_active=False,
        )
        inactive.roles.append(roles["user"])
        s.add(inactive)
    reset_login_attempts()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_user_login_returns_token_and_cookie(client):
    r = client.post("/api/auth/login", json={"email": "ASHA@example.com", "password": "pass-1234"})
    assert r.status_code == 200
    assert r.json["access_token"]
    assert r.json["user"]["email"] == "asha@example.com"
    assert r.json["user"]["role"] == "user"
    cookie = r.headers.get("Set-Cookie") or ""
    assert "refresh_token=" in cookie
    assert "HttpOnly" in cookie


def test_user_endpoint_rejects_admins(client):
    r = client.post("/api/auth/login", json={"email": "ravi@example.com", "password": "pass-1234"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"


def test_admin_endpoint_rejects_users(client):
    r = client.post("/api/auth/admin/login", json={"email": "asha@example.com", "password": "pass-1234"})
    assert r.status_code == 401

    r = client.post("/api/auth/admin/login", json={"email": "ravi@example.com", "password": "pass-1234"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "admin"


def test_inactive_user_cannot_login(client):
    r = client.post("/api/auth/login", json={"email": "gone@example.com", "password": "pass-1234"})
    assert r.status_code == 401


def test_login_validation(client):
    r = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
    assert r.status_code == 400
    assert r.json["error"] == "Validation failed"
    assert "email: must be a valid email address" in r.json["details"]
    assert "password: must be at least 6 characters" in r.json["details"]


def test_failed_and_successful_logins_are_audited(app, client):
    client.post("/api/auth/login", json={"email": "asha@example.com", "password": "wrong-pass"})
    client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pass-1234"})

    with session_scope(app) as s:
        actions = [a for (a,) in s.query(AuditLog.action).filter(AuditLog.entity == "User").order_by(AuditLog.id)]
    assert actions == ["LOGIN_FAILED", "LOGIN"]


def test_login_rate_limit(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "wrong-pass"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pass-1234"})
    assert r.status_code == 429


def test_me_requires_token(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json["error"] == "Access token required"

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid or expired token"


def test_refresh_issues_new_access_token(client):
    r = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pass-1234"})
    assert r.status_code == 200

    r = client.post("/api/auth/refresh")
    assert r.status_code == 200
    token = r.json["access_token"]

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "asha@example.com"


def test_refresh_without_cookie(app):
    r = app.test_client().post("/api/auth/refresh")
    assert r.status_code == 401
    assert r.json["error"] == "Refresh token required"


def test_logout_clears_refresh_cookie(client):
    r = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pass-1234"})
    token = r.json["access_token"]

    r = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json["message"] == "Logged out successfully"

    r = client.post("/api/auth/refresh")
    assert r.status_code == 401
