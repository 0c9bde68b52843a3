from __future__ import annotations

import json
import logging
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.pms.models import AuditLog, User

logger = logging.getLogger(__name__)

# Sensitive or noisy fields never written to the audit trail.
EXCLUDED_FIELDS = frozenset({"password", "password_hash", "created_at", "updated_at"})


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _scrub(values: dict[str, Any] | None) -> dict[str, Any] | None:
    if not values:
        return None
    return {k: v for k, v in values.items() if k not in EXCLUDED_FIELDS}


def create_diff(old: dict[str, Any] | None, new: dict[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Return (old, new) restricted to the keys whose value actually changed.
    Values are compared by their JSON rendering so dates and nested dicts compare sanely.
    """
    old = old or {}
    new = new or {}
    diff_old: dict[str, Any] = {}
    diff_new: dict[str, Any] = {}
    for key in sorted(set(old) | set(new)):
        if key in EXCLUDED_FIELDS:
            continue
        if _dumps(old.get(key)) != _dumps(new.get(key)):
            diff_old[key] = old.get(key)
            diff_new[key] = new.get(key)
    return diff_old, diff_new


def client_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or request.remote_addr or "unknown"


def record_change(
    s: Session,
    *,
    actor: User | None,
    entity: str,
    record_id: Any,
    action: str,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit helper. Added to the caller's session so it commits
    (or rolls back) together with the change it describes.
    """
    old_values = _scrub(old_values)
    new_values = _scrub(new_values)
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    user_agent = (request.headers.get("User-Agent") or "")[:512] if in_request else ""
    entry = AuditLog(
        request_id=rid,
        entity=entity,
        record_id=str(record_id),
        action=action,
        old_values=_dumps(old_values) if old_values else None,
        new_values=_dumps(new_values) if new_values else None,
        user_id=actor.id if actor else None,
        ip_address=client_ip(),
        user_agent=user_agent or None,
    )
    s.add(entry)
    logger.info("audit %s %s:%s by user_id=%s request_id=%s", action, entity, entry.record_id, entry.user_id, rid)
    return entry


def record_update(
    s: Session,
    *,
    actor: User | None,
    entity: str,
    record_id: Any,
    before: dict[str, Any],
    after: dict[str, Any],
) -> AuditLog | None:
    """Audit an UPDATE with only the changed fields. Nothing is written when nothing changed."""
    old, new = create_diff(before, after)
    if not old and not new:
        return None
    return record_change(s, actor=actor, entity=entity, record_id=record_id, action="UPDATE", old_values=old, new_values=new)


def _loads(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def serialize_log(entry: AuditLog, user: dict | None = None) -> dict:
    return {
        "id": entry.id,
        "entity": entry.entity,
        "record_id": entry.record_id,
        "action": entry.action,
        "old_values": _loads(entry.old_values),
        "new_values": _loads(entry.new_values),
        "user_id": entry.user_id,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "request_id": entry.request_id,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "user": user,
    }


def hydrate_users(s: Session, user_ids: set[int]) -> dict[int, dict]:
    if not user_ids:
        return {}
    rows = s.query(User).filter(User.id.in_(user_ids)).all()
    return {
        u.id: {
            "id": u.id,
            "email": u.email,
            "first_name": u.first_name,
            "last_name": u.last_name,
            "role": u.role,
            "is_active": u.is_active,
        }
        for u in rows
    }


def list_logs(
    s: Session,
    *,
    entity: str | None = None,
    record_id: str | None = None,
    user_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    q = s.query(AuditLog)
    if entity:
        q = q.filter(AuditLog.entity == entity)
    if record_id:
        q = q.filter(AuditLog.record_id == str(record_id))
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    total = q.count()
    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).offset(offset).all()
    users = hydrate_users(s, {r.user_id for r in rows if r.user_id})
    return [serialize_log(r, users.get(r.user_id)) for r in rows], total


def logs_for_record(s: Session, entity: str, record_id: str) -> list[dict]:
    logs, _total = list_logs(s, entity=entity, record_id=record_id, limit=10_000)
    return logs
