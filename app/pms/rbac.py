from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.pms.models import Permission, Role, User

PERMISSIONS: dict[str, str] = {
    "dashboard.view": "Dashboard: view",
    "devices.view": "Devices: view",
    "devices.create": "Devices: create",
    "devices.edit": "Devices: edit",
    "devices.delete": "Devices: delete",
    "clients.view": "Clients: view",
    "clients.create": "Clients: create",
    "clients.edit": "Clients: edit",
    "clients.delete": "Clients: delete",
    "proposals.view": "Proposals: view",
    "proposals.create": "Proposals: create",
    "proposals.edit": "Proposals: edit",
    "proposals.delete": "Proposals: delete",
    "audit.view": "Audit log: view",
    "users.view": "Users: view",
    "users.create": "Users: create",
    "users.delete": "Users: delete",
    "users.promote": "Users: promote/demote",
    "users.manage_admins": "Users: manage admin accounts",
    "profile_requests.review": "Profile requests: review",
    "profile_requests.review_admins": "Profile requests: review admin requests",
}

_USER_PERMS = (
    "dashboard.view",
    "devices.view",
    "clients.view",
    "clients.create",
    "clients.edit",
    "proposals.view",
    "proposals.create",
    "proposals.edit",
    "proposals.delete",
    "audit.view",
)

_ADMIN_PERMS = _USER_PERMS + (
    "devices.create",
    "devices.edit",
    "devices.delete",
    "clients.delete",
    "users.view",
    "users.create",
    "users.delete",
    "profile_requests.review",
)

ROLES: dict[str, tuple[str, tuple[str, ...]]] = {
    "user": ("User", _USER_PERMS),
    "admin": ("Administrator", _ADMIN_PERMS),
    "superadmin": ("Super Administrator", tuple(PERMISSIONS)),
}


def ensure_roles(s: Session) -> dict[str, Role]:
    """
    Create permissions/roles in an idempotent way and return roles by key.
    """
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for key, (name, perm_keys) in ROLES.items():
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=name)
            s.add(role)
            roles[key] = role
        for pk in perm_keys:
            if perms[pk] not in role.permissions:
                role.permissions.append(perms[pk])
    s.flush()
    return roles


def get_role(s: Session, key: str) -> Role:
    role = s.query(Role).filter(Role.key == key).one_or_none()
    if role is None:
        role = ensure_roles(s)[key]
    return role


def ensure_superadmin(
    s: Session,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
) -> User:
    """
    Create the configured superadmin, or heal it if it drifted
    (deactivated, lost its role, renamed, or its password no longer matches).
    """
    email = (email or "").strip().lower()
    roles = ensure_roles(s)
    superadmin_role = roles["superadmin"]

    user = s.query(User).filter(User.email == email).one_or_none()
    now = datetime.utcnow()
    if user is None:
        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        user.roles.append(superadmin_role)
        s.add(user)
        s.flush()
        return user

    changed = False
    if user.roles != [superadmin_role]:
        user.roles = [superadmin_role]
        changed = True
    if not user.is_active:
        user.is_active = True
        changed = True
    if not check_password_hash(user.password_hash, password):
        user.password_hash = generate_password_hash(password)
        changed = True
    if user.first_name != first_name:
        user.first_name = first_name
        changed = True
    if user.last_name != last_name:
        user.last_name = last_name
        changed = True
    if changed:
        user.updated_at = now
    s.flush()
    return user


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    if user.is_superadmin:
        return True
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def _unauthenticated():
    return jsonify({"error": "Access token required"}), 401


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            if getattr(g, "token_error", None):
                return jsonify({"error": "Invalid or expired token"}), 401
            return _unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → 401 so the client can refresh its token.
            if not user or not user.is_active:
                if getattr(g, "token_error", None):
                    return jsonify({"error": "Invalid or expired token"}), 401
                return _unauthenticated()
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                current_app.logger.warning(
                    "Forbidden: missing_permission=%s user_id=%s path=%s request_id=%s",
                    permission_key,
                    user.id,
                    request.path,
                    getattr(g, "request_id", None),
                )
                return jsonify({"error": "Insufficient permissions"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
