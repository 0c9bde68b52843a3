from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.pms.db import db_session
from app.pms.errors import BadRequest, Forbidden, NotFound
from app.pms.models import User
from app.pms.modules.notifications.service import notify_users
from app.pms.modules.profile_requests.service import (
    apply_profile_update,
    can_review,
    clean_fields,
    get_store,
    reviewer_ids,
)
from app.pms.rbac import require_auth, require_permission
from app.pms.utils import clean_str, json_body

bp = Blueprint("profile", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.post("/request-change")
@require_auth
def request_change():
    s = db_session()
    u = _current_user()
    if u.is_superadmin:
        raise BadRequest("Superadmins can edit directly")

    data = json_body()
    fields = clean_fields(data.get("fields"))
    if not fields:
        raise BadRequest("No valid fields requested")

    req = get_store().create(u.id, u.role, fields, clean_str(data.get("reason")))
    notify_users(
        reviewer_ids(s, u.role),
        title="Profile change request",
        message=f"{u.email} requested changes: {', '.join(fields)}",
        type="REQUEST",
        entity="ProfileRequest",
        record_id=req.id,
        meta={"fields": fields, "requester_id": u.id},
    )
    return jsonify(req.to_dict()), 201


@bp.get("/requests")
@require_permission("profile_requests.review")
def list_requests():
    u = _current_user()
    pending = get_store().list_pending(include_admin_requests=u.is_superadmin)
    return jsonify([r.to_dict() for r in pending])


@bp.get("/approval")
@require_auth
def my_approval():
    approved = get_store().approved_for(_current_user().id)
    if approved is None:
        return jsonify({"approval": None})
    return jsonify(
        {
            "approval": {
                "id": approved.id,
                "fields": list(approved.fields),
                "reason": approved.reason,
                "created_at": approved.created_at,
            }
        }
    )


@bp.post("/requests/<request_id>/decision")
@require_permission("profile_requests.review")
def decide(request_id: str):
    u = _current_user()
    store = get_store()
    req = store.get(request_id)
    if req is None:
        raise NotFound("Request not found")
    if not can_review(u, req):
        raise Forbidden("Only superadmins can approve admin requests")

    action = str(json_body().get("action") or "").upper()
    if action not in ("APPROVE", "DENY"):
        raise BadRequest("Invalid action")

    updated = store.decide(request_id, approve=action == "APPROVE", approver_id=u.id)
    if updated is None:
        raise NotFound("Request not found")

    notify_users(
        [updated.requester_id],
        title="Profile request update",
        message=(
            "Your profile change request was approved."
            if updated.status == "APPROVED"
            else "Your profile change request was denied."
        ),
        type="REQUEST",
        entity="ProfileRequest",
        record_id=updated.id,
        meta={"status": updated.status},
    )
    return jsonify(updated.to_dict())


@bp.post("/update")
@require_auth
def update_self():
    s = db_session()
    u = _current_user()
    approval = apply_profile_update(s, u, json_body())
    s.commit()
    if approval is not None:
        get_store().mark_used(approval.id)

    notify_users(
        [u.id],
        title="Profile updated",
        message="Your profile changes were saved.",
        type="INFO",
        entity="Profile",
        record_id=u.id,
    )
    return jsonify({"user": u.to_dict()})
