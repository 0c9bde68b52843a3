from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import Flask, current_app

from app.pms.models import Role, User
from app.pms.modules.notifications.hub import SocketHub
from app.pms.modules.notifications.store import NotificationStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def init_notifications(app: Flask) -> None:
    hub = SocketHub()
    app.extensions["socket_hub"] = hub
    app.extensions["notification_store"] = NotificationStore(
        app.config["NOTIFICATION_TTL"],
        publish=hub.push_notification,
    )


def get_store() -> NotificationStore:
    return current_app.extensions["notification_store"]


def get_hub() -> SocketHub:
    return current_app.extensions["socket_hub"]


def active_user_ids(s: "Session", *, role_keys: tuple[str, ...] | None = None) -> list[int]:
    q = s.query(User.id).filter(User.is_active.is_(True))
    if role_keys:
        q = q.filter(User.roles.any(Role.key.in_(role_keys)))
    return [row[0] for row in q.order_by(User.id).all()]


def notify_users(user_ids: list[int], *, title: str, message: str, type: str = "INFO", **extra: Any) -> None:
    if user_ids:
        get_store().add_for_users(user_ids, title=title, message=message, type=type, **extra)


def broadcast_action(
    s: "Session",
    actor: User,
    *,
    title: str,
    verb: str,
    subject: str,
    entity: str,
    record_id: Any,
) -> None:
    """Fan an ACTION notification out to every active account, e.g. "Asha added client Acme"."""
    message = f"{actor.first_name or 'User'} {verb} {subject}"
    notify_users(
        active_user_ids(s),
        title=title,
        message=message,
        type="ACTION",
        entity=entity,
        record_id=record_id,
    )
