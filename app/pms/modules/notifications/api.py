from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from flask_sock import Sock

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.notifications.service import get_hub, get_store
from app.pms.rbac import require_auth
from app.pms.security import TokenError, verify_access_token

bp = Blueprint("notifications", __name__)
ws_bp = Blueprint("notifications_ws", __name__)
sock = Sock()


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_auth
def list_mine():
    store = get_store()
    user_id = _current_user().id
    items = store.for_user(user_id)
    return jsonify({"data": [n.to_dict() for n in items], "unread": store.unread_count(user_id)})


@bp.post("/read")
@require_auth
def mark_read():
    get_store().mark_all_read(_current_user().id)
    return jsonify({"success": True})


@bp.post("/clear")
@require_auth
def clear():
    get_store().clear(_current_user().id)
    return jsonify({"success": True})


def _socket_token() -> tuple[str | None, str | None]:
    """(token, subprotocol). The subprotocol header is preferred so the token stays out of URLs."""
    header = request.headers.get("Sec-WebSocket-Protocol") or ""
    protocol = header.split(",")[0].strip()
    if protocol:
        return protocol, protocol
    return (request.args.get("token") or "").strip() or None, None


class _TokenSubprotocol:
    """Accepts only the subprotocol that carried this request's token."""

    def __contains__(self, protocol: object) -> bool:
        return protocol is not None and protocol == g.get("ws_subprotocol")


@ws_bp.record_once
def _configure_socket_server(state) -> None:
    state.app.config.setdefault("SOCK_SERVER_OPTIONS", {"subprotocols": _TokenSubprotocol()})


@ws_bp.before_request
def _authenticate_socket():
    # Runs before the upgrade, so a bad token still gets a plain 401.
    token, subprotocol = _socket_token()
    if not token:
        return jsonify({"error": "Access token required"}), 401
    try:
        payload = verify_access_token(token)
    except TokenError:
        return jsonify({"error": "Invalid or expired token"}), 401

    s = db_session()
    user = s.get(User, int(payload["user_id"]))
    if not user or not user.is_active:
        return jsonify({"error": "Invalid or expired token"}), 401
    g.ws_user_id = user.id
    g.ws_subprotocol = subprotocol
    # The socket can stay open for hours; don't pin a pooled connection to it.
    s.close()
    return None


@sock.route("/ws", bp=ws_bp)
def socket(ws):
    user_id = g.ws_user_id
    hub = get_hub()
    hub.attach(user_id, ws)
    current_app.logger.info("ws connected user_id=%s", user_id)
    try:
        while True:
            # Client messages are ignored; receive() only tells us when the peer goes away.
            ws.receive()
    finally:
        hub.detach(ws)
        current_app.logger.info("ws disconnected user_id=%s", user_id)
