from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.pms.db import db_session
from app.pms.errors import NotFound
from app.pms.models import User
from app.pms.modules.users.service import (
    create_user,
    delete_user,
    demote_to_user,
    get_user,
    list_users,
    promote_to_admin,
)
from app.pms.rbac import require_permission
from app.pms.utils import json_body

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("users.view")
def users_list():
    s = db_session()
    return jsonify([u.to_dict() for u in list_users(s)])


@bp.post("")
@require_permission("users.create")
def user_create():
    s = db_session()
    user = create_user(s, json_body(), _current_user())
    s.commit()
    return jsonify(user.to_dict()), 201


@bp.delete("/<int:user_id>")
@require_permission("users.delete")
def user_delete(user_id: int):
    s = db_session()
    delete_user(s, get_user(s, user_id), _current_user())
    s.commit()
    return jsonify({"message": "User deleted successfully"})


@bp.post("/<int:user_id>/promote")
@require_permission("users.promote")
def user_promote(user_id: int):
    s = db_session()
    user = promote_to_admin(s, get_user(s, user_id), _current_user())
    s.commit()
    return jsonify(user.to_dict())


@bp.post("/<int:user_id>/demote")
@require_permission("users.promote")
def user_demote(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        raise NotFound("Admin not found")
    user = demote_to_user(s, user, _current_user())
    s.commit()
    return jsonify(user.to_dict())
