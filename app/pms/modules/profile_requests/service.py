from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import Flask, current_app
from werkzeug.security import generate_password_hash

from app.pms.audit import record_update
from app.pms.constants import PROFILE_FIELDS
from app.pms.errors import BadRequest, Conflict, Forbidden, ValidationError
from app.pms.models import User
from app.pms.modules.notifications.service import active_user_ids
from app.pms.modules.profile_requests.store import ProfileChangeRequest, ProfileRequestStore
from app.pms.modules.users.service import email_taken
from app.pms.utils import clean_str, is_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def init_profile_requests(app: Flask) -> None:
    app.extensions["profile_request_store"] = ProfileRequestStore(app.config["PROFILE_REQUEST_TTL"])


def get_store() -> ProfileRequestStore:
    return current_app.extensions["profile_request_store"]


def clean_fields(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [f for f in dict.fromkeys(raw) if isinstance(f, str) and f in PROFILE_FIELDS]


def reviewer_ids(s: "Session", requester_role: str) -> list[int]:
    """A user's request goes to admins and superadmins; an admin's request only to superadmins."""
    if requester_role == "user":
        return active_user_ids(s, role_keys=("admin", "superadmin"))
    if requester_role == "admin":
        return active_user_ids(s, role_keys=("superadmin",))
    return []


def can_review(reviewer: User, req: ProfileChangeRequest) -> bool:
    if req.requester_role == "admin":
        return reviewer.is_superadmin
    return reviewer.is_admin


def _validate_update(payload: dict) -> tuple[dict[str, Any], list[str]]:
    changes: dict[str, Any] = {}
    errors: list[str] = []
    for field in ("first_name", "last_name"):
        if field in payload:
            value = clean_str(payload.get(field))
            if not value:
                errors.append(f"{field}: must not be empty")
            else:
                changes[field] = value
    if "email" in payload:
        email = str(payload.get("email") or "").strip().lower()
        if not is_email(email):
            errors.append("email: must be a valid email address")
        else:
            changes["email"] = email
    if "password" in payload:
        password = payload.get("password")
        if not isinstance(password, str) or len(password) < 8:
            errors.append("password: must be at least 8 characters")
        else:
            changes["password"] = password
    return changes, errors


def apply_profile_update(s: "Session", user: User, payload: dict) -> ProfileChangeRequest | None:
    """
    Apply a self-service profile edit.

    Superadmins edit directly. Everyone else needs an APPROVED request that
    covers every submitted field. The approval is returned so the caller can
    mark it used once the change is committed.
    """
    requested = [f for f in PROFILE_FIELDS if f in payload]
    if not requested:
        raise BadRequest("No fields provided")

    approval = None
    if not user.is_superadmin:
        approval = get_store().approved_for(user.id)
        if approval is None:
            raise Forbidden("Request approval required")
        if not set(requested) <= set(approval.fields):
            raise Forbidden("Requested fields not approved")

    changes, errors = _validate_update(payload)
    if errors:
        raise ValidationError(errors)
    if "email" in changes and email_taken(s, changes["email"], exclude_id=user.id):
        raise Conflict("Email already exists")

    before = {"email": user.email, "first_name": user.first_name, "last_name": user.last_name}
    for field in ("first_name", "last_name", "email"):
        if field in changes:
            setattr(user, field, changes[field])
    if "password" in changes:
        user.password_hash = generate_password_hash(changes["password"])
    user.updated_at = datetime.utcnow()

    after = {"email": user.email, "first_name": user.first_name, "last_name": user.last_name}
    if "password" in changes:
        # Only the fact that it changed is recorded.
        before["password_changed"] = False
        after["password_changed"] = True
    record_update(s, actor=user, entity="User", record_id=user.id, before=before, after=after)
    logger.info("profile updated user_id=%s fields=%s", user.id, ",".join(requested))
    return approval
