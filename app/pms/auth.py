from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.security import check_password_hash

from app.pms.audit import record_change
from app.pms.db import db_session
from app.pms.models import User
from app.pms.rbac import require_auth
from app.pms.security import (
    REFRESH_COOKIE,
    TokenError,
    bearer_token,
    issue_access_token,
    issue_refresh_token,
    verify_access_token,
    verify_refresh_token,
)
from app.pms.utils import is_email, json_body

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

USER_ROLES = ("user",)
ADMIN_ROLES = ("admin", "superadmin")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def reset_login_attempts() -> None:
    _login_attempts.clear()


def load_current_user() -> None:
    """
    Loads g.current_user from the bearer access token.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.token_error = None

    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return
    try:
        payload = verify_access_token(token)
    except TokenError as e:
        g.token_error = str(e)
        return

    try:
        s = db_session()
        user = s.get(User, int(payload["user_id"]))
    except Exception as e:
        current_app.logger.error("load_current_user DB error: %s", e)
        g.token_error = "User lookup failed"
        return
    if not user or not user.is_active:
        g.token_error = "Inactive or unknown user"
        return
    g.current_user = user


def user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def _set_refresh_cookie(resp, token: str) -> None:
    resp.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=current_app.config["REFRESH_TOKEN_TTL"],
        httponly=True,
        secure=bool(current_app.config.get("REFRESH_COOKIE_SECURE")),
        samesite="Strict",
        path="/",
    )


def _login(allowed_roles: tuple[str, ...]):
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    ip = request.remote_addr or "unknown"

    details = []
    if not is_email(email):
        details.append("email: must be a valid email address")
    if len(password) < 6:
        details.append("password: must be at least 6 characters")
    if details:
        return jsonify({"error": "Validation failed", "details": details}), 400

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if (
            not user
            or not user.is_active
            or user.role not in allowed_roles
            or not check_password_hash(user.password_hash, password)
        ):
            record_change(
                s,
                actor=None,
                entity="User",
                record_id=email,
                action="LOGIN_FAILED",
                new_values={"email": email},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials"}), 401

        _login_attempts[ip].clear()
        record_change(s, actor=user, entity="User", record_id=user.id, action="LOGIN")
        s.commit()

        resp = jsonify({"access_token": issue_access_token(user), "user": user_summary(user)})
        _set_refresh_cookie(resp, issue_refresh_token(user))
        return resp
    except Exception:
        current_app.logger.exception("Login crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/login")
def login():
    return _login(USER_ROLES)


@bp.post("/admin/login")
def admin_login():
    return _login(ADMIN_ROLES)


@bp.post("/refresh")
def refresh():
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        return jsonify({"error": "Refresh token required"}), 401
    try:
        payload = verify_refresh_token(token)
    except TokenError:
        return jsonify({"error": "Invalid refresh token"}), 401

    s = db_session()
    user = s.get(User, int(payload["user_id"]))
    if not user or not user.is_active:
        return jsonify({"error": "Invalid refresh token"}), 401
    return jsonify({"access_token": issue_access_token(user)})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_change(s, actor=user, entity="User", record_id=user.id, action="LOGOUT")
        s.commit()
    resp = jsonify({"message": "Logged out successfully"})
    resp.delete_cookie(REFRESH_COOKIE, path="/")
    return resp


@bp.get("/me")
@require_auth
def me():
    user: User = g.current_user
    return jsonify({"user": {**user_summary(user), "is_active": user.is_active}})
