from __future__ import annotations

from typing import Any

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.pms.models import User

ACCESS_SALT = "pms.access"
REFRESH_SALT = "pms.refresh"
REFRESH_COOKIE = "refresh_token"


class TokenError(Exception):
    pass


def _serializer(kind: str) -> URLSafeTimedSerializer:
    if kind == "refresh":
        return URLSafeTimedSerializer(current_app.config["JWT_REFRESH_SECRET"], salt=REFRESH_SALT)
    return URLSafeTimedSerializer(current_app.config["JWT_SECRET"], salt=ACCESS_SALT)


def token_payload(user: User) -> dict[str, Any]:
    return {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def issue_access_token(user: User) -> str:
    return _serializer("access").dumps(token_payload(user))


def issue_refresh_token(user: User) -> str:
    return _serializer("refresh").dumps(token_payload(user))


def _verify(kind: str, token: str, max_age: int) -> dict[str, Any]:
    if not token:
        raise TokenError("Token required")
    try:
        payload = _serializer(kind).loads(token, max_age=max_age)
    except SignatureExpired as e:
        raise TokenError("Token expired") from e
    except BadSignature as e:
        raise TokenError("Invalid token") from e
    if not isinstance(payload, dict) or not payload.get("user_id"):
        raise TokenError("Invalid token")
    return payload


def verify_access_token(token: str) -> dict[str, Any]:
    return _verify("access", token, current_app.config["ACCESS_TOKEN_TTL"])


def verify_refresh_token(token: str) -> dict[str, Any]:
    return _verify("refresh", token, current_app.config["REFRESH_TOKEN_TTL"])


def bearer_token(auth_header: str | None) -> str | None:
    """Extract TOKEN from an ``Authorization: Bearer TOKEN`` header."""
    parts = (auth_header or "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None
