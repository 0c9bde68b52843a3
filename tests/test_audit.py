"""Tests for the audit trail."""
import pytest
from werkzeug.security import generate_password_hash

from app.pms import create_app
from app.pms.audit import create_diff
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
        u = User(email="asha@example.com", password_hash=generate_password_hash("pass-1234"), first_name="Asha", last_name="Test")
        u.roles.append(roles["user"])
        s.add(u)
    reset_login_attempts()

    return app.test_client()


def _login(client):
    r = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "pass-1234"})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['access_token']}"}, r.json["user"]["id"]


def test_create_diff_keeps_only_changes():
    old, new = create_diff(
        {"name": "A", "price": 1, "password": "x", "updated_at": "t1"},
        {"name": "A", "price": 2, "password": "y", "updated_at": "t2"},
    )
    assert old == {"price": 1}
    assert new == {"price": 2}


def test_create_diff_handles_added_and_removed_keys():
    old, new = create_diff({"a": 1}, {"b": 2})
    assert old == {"a": 1, "b": None}
    assert new == {"a": None, "b": 2}


def test_audit_records_create_and_update(client):
    h, user_id = _login(client)
    client_id = client.post(
        "/api/clients", json={"company_name": "Acme", "billing_address": "Mumbai"}, headers=h
    ).json["id"]
    client.put(f"/api/clients/{client_id}", json={"payment_terms": "Net 45"}, headers=h)
    # No-op update writes nothing.
    client.put(f"/api/clients/{client_id}", json={"payment_terms": "Net 45"}, headers=h)

    r = client.get("/api/audit?entity=Client", headers=h)
    assert r.status_code == 200
    assert r.json["total"] == 2
    latest, created = r.json["logs"]
    assert created["action"] == "CREATE"
    assert created["new_values"]["company_name"] == "Acme"
    assert latest["action"] == "UPDATE"
    assert latest["old_values"] == {"payment_terms": "Net 30"}
    assert latest["new_values"] == {"payment_terms": "Net 45"}
    assert latest["user"]["email"] == "asha@example.com"
    assert latest["user_id"] == user_id

    r = client.get(f"/api/audit/Client/{client_id}", headers=h)
    assert [log["action"] for log in r.json["logs"]] == ["UPDATE", "CREATE"]


def test_audit_filters_and_paging(client):
    h, user_id = _login(client)
    for name in ("One", "Two", "Three"):
        client.post("/api/clients", json={"company_name": name, "billing_address": "Delhi"}, headers=h)

    r = client.get("/api/audit?entity=Client&limit=1&offset=1", headers=h)
    assert r.json["total"] == 3
    assert len(r.json["logs"]) == 1
    assert r.json["logs"][0]["new_values"]["company_name"] == "Two"

    r = client.get(f"/api/audit?user_id={user_id}", headers=h)
    assert r.json["total"] >= 4  # LOGIN + three creates
    assert all(log["user_id"] == user_id for log in r.json["logs"])

    r = client.get("/api/audit?limit=abc", headers=h)
    assert r.status_code == 400
    assert r.json["error"] == "limit must be an integer"


def test_audit_requires_auth(client):
    assert client.get("/api/audit").status_code == 401
