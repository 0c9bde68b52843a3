"""Tests for the notification store, the socket hub and the notification API."""
import json
import threading
import time

import pytest
from simple_websocket import Client, ConnectionError
from werkzeug.security import generate_password_hash
from werkzeug.serving import make_server

from app.pms import create_app
from app.pms.auth import reset_login_attempts
from app.pms.db import session_scope
from app.pms.models import Base, User
from app.pms.modules.notifications.hub import SocketHub
from app.pms.modules.notifications.store import MAX_PER_USER, NotificationStore
from app.pms.rbac import ensure_roles, ensure_superadmin


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeSocket:
    def __init__(self, *, fail=False):
        self.connected = True
        self.fail = fail
        self.sent = []

    def send(self, data):
        if self.fail:
            raise ConnectionError("peer went away")
        self.sent.append(json.loads(data))


# ---------- Store ----------
def test_store_newest_first_and_ttl():
    clock = FakeClock()
    store = NotificationStore(60, clock=clock)
    store.add_for_users([1], title="a", message="first")
    clock.now += 10
    store.add_for_users([1], title="b", message="second")

    assert [n.message for n in store.for_user(1)] == ["second", "first"]

    clock.now += 55
    assert [n.message for n in store.for_user(1)] == ["second"]
    clock.now += 10
    assert store.for_user(1) == []


def test_store_caps_per_user():
    store = NotificationStore(3600, clock=FakeClock())
    for i in range(MAX_PER_USER + 5):
        store.add_for_users([7], title="t", message=str(i))
    items = store.for_user(7)
    assert len(items) == MAX_PER_USER
    assert items[0].message == str(MAX_PER_USER + 4)


def test_store_read_and_clear():
    store = NotificationStore(3600, clock=FakeClock())
    store.add_for_users([1, 2, 1], title="t", message="m", type="ACTION")
    assert store.unread_count(1) == 1
    assert store.unread_count(2) == 1

    assert store.mark_all_read(1) == 1
    assert store.unread_count(1) == 0
    assert store.for_user(1)[0].read is True
    assert store.unread_count(2) == 1

    store.clear(2)
    assert store.for_user(2) == []


def test_store_rejects_unknown_type():
    store = NotificationStore(3600)
    with pytest.raises(ValueError):
        store.add_for_users([1], title="t", message="m", type="SPAM")


def test_store_publishes_each_notification():
    published = []
    store = NotificationStore(3600, publish=lambda uid, n: published.append((uid, n.title)))
    store.add_for_users([1, 2], title="hello", message="m")
    assert published == [(1, "hello"), (2, "hello")]


# ---------- Hub ----------
def test_hub_delivers_to_all_user_sockets():
    hub = SocketHub()
    a, b, other = FakeSocket(), FakeSocket(), FakeSocket()
    hub.attach(1, a)
    hub.attach(1, b)
    hub.attach(2, other)

    assert hub.send_to_user(1, {"type": "ping"}) == 2
    assert a.sent == [{"type": "ping"}]
    assert b.sent == [{"type": "ping"}]
    assert other.sent == []
    assert hub.count() == 3


def test_hub_drops_dead_sockets():
    hub = SocketHub()
    broken, closed, ok = FakeSocket(fail=True), FakeSocket(), FakeSocket()
    closed.connected = False
    for sock in (broken, closed, ok):
        hub.attach(5, sock)

    assert hub.send_to_user(5, {"type": "ping"}) == 1
    assert hub.count(5) == 1

    hub.detach(ok)
    assert hub.count(5) == 0
    assert hub.send_to_user(5, {"type": "ping"}) == 0


class SlowSocket(FakeSocket):
    def __init__(self):
        super().__init__()
        self.active = 0
        self.overlapped = False

    def send(self, data):
        self.active += 1
        if self.active > 1:
            self.overlapped = True
        time.sleep(0.01)
        super().send(data)
        self.active -= 1


def test_hub_serialises_sends_per_socket():
    hub = SocketHub()
    sock = SlowSocket()
    hub.attach(1, sock)

    threads = [threading.Thread(target=hub.send_to_user, args=(1, {"n": i})) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sock.overlapped is False
    assert sorted(frame["n"] for frame in sock.sent) == list(range(8))


def test_store_pushes_through_hub():
    hub = SocketHub()
    sock = FakeSocket()
    hub.attach(3, sock)
    store = NotificationStore(3600, publish=hub.push_notification)
    store.add_for_users([3], title="Client added", message="Ravi added client Acme", type="ACTION")

    assert len(sock.sent) == 1
    frame = sock.sent[0]
    assert frame["type"] == "notification"
    assert frame["data"]["title"] == "Client added"
    assert frame["data"]["user_id"] == 3


# ---------- API ----------
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
        for email, first, role, active in (
            ("ravi@example.com", "Ravi", "admin", True),
            ("asha@example.com", "Asha", "user", True),
            ("gone@example.com", "Gone", "user", False),
        ):
            u = User(
                email=email,
                password_hash=generate_password_hash("pass-1234"),
                first_name=first,
                last_name="Test",
                is_active=active,
            )
            u.roles.append(roles[role])
            s.add(u)
    reset_login_attempts()

    return app.test_client()


def _login(client, email, *, admin=False):
    path = "/api/auth/admin/login" if admin else "/api/auth/login"
    r = client.post(path, json={"email": email, "password": "pass-1234"})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['access_token']}"}


def test_notifications_require_auth(client):
    assert client.get("/api/notifications").status_code == 401


def test_action_broadcast_read_and_clear(client):
    admin = _login(client, "ravi@example.com", admin=True)
    user = _login(client, "asha@example.com")
    client.post("/api/clients", json={"company_name": "Acme", "billing_address": "Mumbai"}, headers=admin)

    body = client.get("/api/notifications", headers=user).json
    assert body["unread"] == 1
    data = body["data"]
    assert len(data) == 1
    assert data[0]["type"] == "ACTION"
    assert data[0]["message"] == "Ravi added client Acme"
    assert data[0]["entity"] == "Client"
    assert data[0]["read"] is False

    store = client.application.extensions["notification_store"]
    with session_scope(client.application) as s:
        gone_id = s.query(User.id).filter(User.email == "gone@example.com").scalar()
    assert store.for_user(gone_id) == []

    r = client.post("/api/notifications/read", headers=user)
    assert r.json == {"success": True}
    assert client.get("/api/notifications", headers=user).json["data"][0]["read"] is True
    assert client.get("/api/notifications", headers=user).json["unread"] == 0

    client.post("/api/notifications/clear", headers=user)
    assert client.get("/api/notifications", headers=user).json["data"] == []
    # The admin's copy is untouched.
    assert len(client.get("/api/notifications", headers=admin).json["data"]) == 1


UPGRADE = {"Upgrade": "websocket", "Connection": "Upgrade"}


def test_websocket_requires_token(client):
    r = client.get("/ws", headers=UPGRADE)
    assert r.status_code == 401
    assert r.json["error"] == "Access token required"

    r = client.get("/ws?token=garbage", headers=UPGRADE)
    assert r.status_code == 401
    assert r.json["error"] == "Invalid or expired token"

    r = client.get("/ws", headers={**UPGRADE, "Sec-WebSocket-Protocol": "garbage"})
    assert r.status_code == 401


def test_websocket_rejects_plain_http(client):
    assert client.get("/ws").status_code == 400


# ---------- Live socket ----------
@pytest.fixture()
def live_url(client):
    server = make_server("127.0.0.1", 0, client.application, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"ws://127.0.0.1:{server.server_port}"
    server.shutdown()
    thread.join(timeout=5)


def _wait_for(check, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if check():
            return True
        time.sleep(0.02)
    return check()


def _token(headers):
    return headers["Authorization"].split(" ", 1)[1]


def test_socket_receives_notifications(client, live_url):
    admin = _login(client, "ravi@example.com", admin=True)
    token = _token(_login(client, "asha@example.com"))
    hub = client.application.extensions["socket_hub"]

    ws = Client.connect(f"{live_url}/ws", subprotocols=[token])
    try:
        assert ws.subprotocol == token
        assert _wait_for(lambda: hub.count() == 1)

        client.post("/api/clients", json={"company_name": "Acme", "billing_address": "Mumbai"}, headers=admin)
        frame = json.loads(ws.receive(timeout=5))
        assert frame["type"] == "notification"
        assert frame["data"]["title"] == "Client added"
        assert frame["data"]["message"] == "Ravi added client Acme"
    finally:
        ws.close()
    assert _wait_for(lambda: hub.count() == 0)


def test_socket_accepts_query_token(client, live_url):
    token = _token(_login(client, "asha@example.com"))
    hub = client.application.extensions["socket_hub"]

    ws = Client.connect(f"{live_url}/ws?token={token}")
    try:
        assert ws.subprotocol is None
        assert _wait_for(lambda: hub.count() == 1)
    finally:
        ws.close()
    assert _wait_for(lambda: hub.count() == 0)


def test_socket_handshake_refused_without_valid_token(client, live_url):
    with pytest.raises(ConnectionError):
        Client.connect(f"{live_url}/ws", subprotocols=["garbage"])
    assert client.application.extensions["socket_hub"].count() == 0
