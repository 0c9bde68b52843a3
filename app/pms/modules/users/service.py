from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.pms.audit import record_change, record_update
from app.pms.errors import BadRequest, Conflict, Forbidden, NotFound, ValidationError
from app.pms.models import User
from app.pms.rbac import get_role
from app.pms.utils import clean_str, is_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _audit_values(user: User) -> dict:
    return {
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "is_active": user.is_active,
    }


def validate_user_payload(payload: dict) -> list[str]:
    errors = []
    email = str(payload.get("email") or "").strip().lower()
    if not is_email(email):
        errors.append("email: must be a valid email address")
    password = payload.get("password")
    if not isinstance(password, str) or len(password) < 8:
        errors.append("password: must be at least 8 characters")
    for field in ("first_name", "last_name"):
        if not clean_str(payload.get(field)):
            errors.append(f"{field}: is required")
    role = payload.get("role")
    if role is not None and str(role).lower() not in ("user", "admin"):
        errors.append("role: must be one of user, admin")
    return errors


def email_taken(s: "Session", email: str, *, exclude_id: int | None = None) -> bool:
    q = s.query(User.id).filter(User.email == email.strip().lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def list_users(s: "Session") -> list[User]:
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def get_user(s: "Session", user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def create_user(s: "Session", payload: dict, actor: User) -> User:
    """
    Create an account. An admin role is only granted when a superadmin asks for it;
    everyone else creates plain users.
    """
    errors = validate_user_payload(payload)
    if errors:
        raise ValidationError(errors)

    email = str(payload["email"]).strip().lower()
    if email_taken(s, email):
        raise Conflict("Email already exists")

    requested = str(payload.get("role") or "user").lower()
    role_key = "admin" if requested == "admin" and actor.is_superadmin else "user"

    now = datetime.utcnow()
    user = User(
        email=email,
        password_hash=generate_password_hash(payload["password"]),
        first_name=clean_str(payload.get("first_name")),
        last_name=clean_str(payload.get("last_name")),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    user.roles.append(get_role(s, role_key))
    s.add(user)
    s.flush()

    record_change(s, actor=actor, entity="User", record_id=user.id, action="CREATE", new_values=_audit_values(user))
    return user


def delete_user(s: "Session", user: User, actor: User) -> None:
    if user.id == actor.id:
        raise BadRequest("You cannot delete your own account")
    if user.is_superadmin:
        raise BadRequest("Cannot delete superadmin")
    if user.is_admin and not actor.is_superadmin:
        raise Forbidden("Only superadmin can delete admin accounts")

    snapshot = _audit_values(user)
    user_id = user.id
    s.delete(user)
    record_change(s, actor=actor, entity="User", record_id=user_id, action="DELETE", old_values=snapshot)


def promote_to_admin(s: "Session", user: User, actor: User) -> User:
    if user.is_admin:
        raise BadRequest("User is already an admin")
    before = _audit_values(user)
    user.roles = [get_role(s, "admin")]
    user.updated_at = datetime.utcnow()
    record_update(s, actor=actor, entity="User", record_id=user.id, before=before, after=_audit_values(user))
    return user


def demote_to_user(s: "Session", user: User, actor: User) -> User:
    if user.is_superadmin:
        raise BadRequest("Cannot demote superadmin")
    if not user.is_admin:
        raise NotFound("Admin not found")
    before = _audit_values(user)
    user.roles = [get_role(s, "user")]
    user.updated_at = datetime.utcnow()
    record_update(s, actor=actor, entity="User", record_id=user.id, before=before, after=_audit_values(user))
    return user
