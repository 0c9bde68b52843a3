from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.pms.db import db_session
from app.pms.models import User
from app.pms.modules.devices.service import (
    create_device,
    delete_device,
    get_active_device,
    list_devices,
    update_device,
)
from app.pms.modules.notifications.service import broadcast_action
from app.pms.rbac import require_permission
from app.pms.utils import clean_str, json_body

bp = Blueprint("devices", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- List ----------
@bp.get("")
@require_permission("devices.view")
def devices_list():
    s = db_session()
    devices = list_devices(
        s,
        search=clean_str(request.args.get("q")),
        category=clean_str(request.args.get("category")),
    )
    return jsonify([d.to_dict() for d in devices])


# ---------- Detail ----------
@bp.get("/<int:device_id>")
@require_permission("devices.view")
def device_detail(device_id: int):
    s = db_session()
    return jsonify(get_active_device(s, device_id).to_dict())


# ---------- Create ----------
@bp.post("")
@require_permission("devices.create")
def device_create():
    s = db_session()
    u = _current_user()
    device = create_device(s, json_body(), u)
    s.commit()

    broadcast_action(s, u, title="Item added", verb="added item", subject=device.name, entity="Device", record_id=device.id)
    return jsonify(device.to_dict()), 201


# ---------- Update ----------
@bp.put("/<int:device_id>")
@require_permission("devices.edit")
def device_update(device_id: int):
    s = db_session()
    u = _current_user()
    device = update_device(s, get_active_device(s, device_id), json_body(), u)
    s.commit()

    broadcast_action(s, u, title="Item updated", verb="updated item", subject=device.name, entity="Device", record_id=device.id)
    return jsonify(device.to_dict())


# ---------- Delete ----------
@bp.delete("/<int:device_id>")
@require_permission("devices.delete")
def device_delete(device_id: int):
    s = db_session()
    u = _current_user()
    device = delete_device(s, get_active_device(s, device_id), u)
    s.commit()

    broadcast_action(s, u, title="Item deleted", verb="deleted item", subject=device.name, entity="Device", record_id=device.id)
    return jsonify({"message": "Item deleted successfully"})
