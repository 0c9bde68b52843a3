"""Tests for user administration (RBAC hierarchy)."""
import pytest
from werkzeug.security import generate_password_hash

from app.pms import create_app
from app.pms.auth import reset_login_attempts
from app.pms.db import session_scope
from app.pms.models import Base, User
from app.pms.rbac import ensure_roles, ensure_superadmin


@pytest.fixture()
def client(tmp_path, monkeypatch):
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
    reset_login_attempts()

    return app.test_client()


def _login(client, email, password="pass-1234", *, admin=False):
    path = "/api/auth/admin/login" if admin else "/api/auth/login"
    r = client.post(path, json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['access_token']}"}


def _superadmin(client):
    return _login(client, "root@example.com", "root-pass-123", admin=True)


def _user_id(client, headers, email):
    users = client.get("/api/users", headers=headers).json
    return next(u["id"] for u in users if u["email"] == email)


def _new_user(**overrides):
    payload = {"email": "meera@example.com", "password": "meera-pass-1", "first_name": "Meera", "last_name": "Iyer"}
    payload.update(overrides)
    return payload


def test_list_users_requires_admin(client):
    user = _login(client, "asha@example.com")
    assert client.get("/api/users", headers=user).status_code == 403

    admin = _login(client, "ravi@example.com", admin=True)
    r = client.get("/api/users", headers=admin)
    assert r.status_code == 200
    assert {u["email"] for u in r.json} == {"root@example.com", "ravi@example.com", "asha@example.com"}


def test_admin_creates_plain_users_only(client):
    admin = _login(client, "ravi@example.com", admin=True)
    r = client.post("/api/users", json=_new_user(role="admin"), headers=admin)
    assert r.status_code == 201
    assert r.json["role"] == "user"
    assert r.json["email"] == "meera@example.com"


def test_superadmin_can_create_admin(client):
    root = _superadmin(client)
    r = client.post("/api/users", json=_new_user(role="admin"), headers=root)
    assert r.status_code == 201
    assert r.json["role"] == "admin"

    _login(client, "meera@example.com", "meera-pass-1", admin=True)


def test_create_user_validation_and_duplicates(client):
    admin = _login(client, "ravi@example.com", admin=True)
    r = client.post("/api/users", json=_new_user(password="short", first_name=""), headers=admin)
    assert r.status_code == 400
    assert "password: must be at least 8 characters" in r.json["details"]
    assert "first_name: is required" in r.json["details"]

    r = client.post("/api/users", json=_new_user(email="ASHA@example.com"), headers=admin)
    assert r.status_code == 409
    assert r.json["error"] == "Email already exists"


def test_delete_rules(client):
    root = _superadmin(client)
    admin = _login(client, "ravi@example.com", admin=True)
    client.post("/api/users", json=_new_user(role="admin"), headers=root)

    meera = _user_id(client, root, "meera@example.com")
    ravi = _user_id(client, root, "ravi@example.com")
    root_id = _user_id(client, root, "root@example.com")
    asha = _user_id(client, root, "asha@example.com")

    r = client.delete(f"/api/users/{ravi}", headers=admin)
    assert r.status_code == 400
    assert r.json["error"] == "You cannot delete your own account"

    r = client.delete(f"/api/users/{root_id}", headers=admin)
    assert r.status_code == 400
    assert r.json["error"] == "Cannot delete superadmin"

    r = client.delete(f"/api/users/{meera}", headers=admin)
    assert r.status_code == 403

    assert client.delete(f"/api/users/{meera}", headers=root).status_code == 200
    assert client.delete(f"/api/users/{asha}", headers=admin).status_code == 200

    emails = {u["email"] for u in client.get("/api/users", headers=root).json}
    assert emails == {"root@example.com", "ravi@example.com"}

    r = client.delete("/api/users/9999", headers=root)
    assert r.status_code == 404
    assert r.json["error"] == "User not found"


def test_promote_and_demote(client):
    root = _superadmin(client)
    admin = _login(client, "ravi@example.com", admin=True)
    asha = _user_id(client, root, "asha@example.com")
    root_id = _user_id(client, root, "root@example.com")

    assert client.post(f"/api/users/{asha}/promote", headers=admin).status_code == 403

    r = client.post(f"/api/users/{asha}/promote", headers=root)
    assert r.status_code == 200
    assert r.json["role"] == "admin"

    r = client.post(f"/api/users/{asha}/promote", headers=root)
    assert r.status_code == 400

    r = client.post(f"/api/users/{asha}/demote", headers=root)
    assert r.status_code == 200
    assert r.json["role"] == "user"

    r = client.post(f"/api/users/{asha}/demote", headers=root)
    assert r.status_code == 404
    assert r.json["error"] == "Admin not found"

    assert client.post(f"/api/users/{root_id}/demote", headers=root).status_code == 400
    assert client.post("/api/users/9999/demote", headers=root).status_code == 404
