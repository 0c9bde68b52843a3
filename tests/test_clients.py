"""Tests for client management."""
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


def _login(client, email, *, admin=False):
    path = "/api/auth/admin/login" if admin else "/api/auth/login"
    r = client.post(path, json={"email": email, "password": "pass-1234"})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['access_token']}"}


def _client_payload(**overrides):
    payload = {
        "company_name": "Acme Towers",
        "billing_address": "12 MG Road\nBengaluru",
        "contact_name": "Priya",
        "contact_email": "Priya@Acme.example",
    }
    payload.update(overrides)
    return payload


def test_create_client_defaults(client):
    h = _login(client, "asha@example.com")
    r = client.post("/api/clients", json=_client_payload(), headers=h)
    assert r.status_code == 201
    c = r.json
    assert c["company_name"] == "Acme Towers"
    assert c["default_currency"] == "INR"
    assert c["payment_terms"] == "Net 30"
    assert c["tax_exempt"] is False
    assert c["location"] == c["billing_address"]
    assert c["contact_email"] == "priya@acme.example"


def test_create_client_validation(client):
    h = _login(client, "asha@example.com")
    r = client.post("/api/clients", json={"contact_email": "nope", "tax_exempt": "yes"}, headers=h)
    assert r.status_code == 400
    details = r.json["details"]
    assert "company_name: is required" in details
    assert "billing_address: is required" in details
    assert "contact_email: must be a valid email address" in details
    assert "tax_exempt: must be true or false" in details


def test_body_must_be_object(client):
    h = _login(client, "asha@example.com")
    r = client.post("/api/clients", json=[1, 2], headers=h)
    assert r.status_code == 400
    assert r.json["error"] == "Request body must be a JSON object"


def test_update_client_merges_and_location_follows_billing(client):
    h = _login(client, "asha@example.com")
    client_id = client.post("/api/clients", json=_client_payload(), headers=h).json["id"]

    r = client.put(
        f"/api/clients/{client_id}",
        json={"billing_address": "1 Park Street, Kolkata", "default_currency": "usd"},
        headers=h,
    )
    assert r.status_code == 200
    assert r.json["company_name"] == "Acme Towers"
    assert r.json["contact_name"] == "Priya"
    assert r.json["billing_address"] == "1 Park Street, Kolkata"
    assert r.json["location"] == "1 Park Street, Kolkata"
    assert r.json["default_currency"] == "USD"


def test_delete_client_requires_admin_and_is_soft(client):
    user = _login(client, "asha@example.com")
    admin = _login(client, "ravi@example.com", admin=True)
    client_id = client.post("/api/clients", json=_client_payload(), headers=user).json["id"]

    assert client.delete(f"/api/clients/{client_id}", headers=user).status_code == 403

    r = client.delete(f"/api/clients/{client_id}", headers=admin)
    assert r.status_code == 200
    assert r.json["is_active"] is False

    r = client.get(f"/api/clients/{client_id}", headers=admin)
    assert r.status_code == 404
    assert r.json["error"] == "Client not found"
    assert client.get("/api/clients", headers=admin).json == []


def test_client_search(client):
    h = _login(client, "asha@example.com")
    client.post("/api/clients", json=_client_payload(), headers=h)
    client.post("/api/clients", json=_client_payload(company_name="Globex", contact_name="Hank"), headers=h)

    names = [c["company_name"] for c in client.get("/api/clients?q=hank", headers=h).json]
    assert names == ["Globex"]
    assert len(client.get("/api/clients", headers=h).json) == 2


def test_client_proposals_lists_only_that_client(client):
    h = _login(client, "asha@example.com")
    first = client.post("/api/clients", json=_client_payload(), headers=h).json["id"]
    second = client.post("/api/clients", json=_client_payload(company_name="Globex"), headers=h).json["id"]
    item = {"snapshot_name": "Site survey", "snapshot_price": 250, "quantity": 1}
    client.post("/api/proposals", json={"client_id": first, "items": [item]}, headers=h)
    client.post("/api/proposals", json={"client_id": second, "items": [item]}, headers=h)

    r = client.get(f"/api/clients/{first}/proposals", headers=h)
    assert r.status_code == 200
    assert [p["client_id"] for p in r.json] == [first]
    assert r.json[0]["client"]["company_name"] == "Acme Towers"
