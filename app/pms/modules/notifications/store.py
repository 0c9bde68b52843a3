"""
In-process notification store.

Notifications are kept per user, newest first, capped at ``MAX_PER_USER`` and
dropped once they outlive their TTL. Nothing survives a restart and nothing is
shared between worker processes.
"""
from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

NOTIFICATION_TYPES = ("INFO", "REQUEST", "ACTION")
MAX_PER_USER = 100


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: int
    title: str
    message: str
    type: str
    created_at: str
    expires_at: float
    read: bool = False
    entity: str | None = None
    record_id: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class NotificationStore:
    def __init__(
        self,
        ttl_seconds: int,
        *,
        publish: Callable[[int, Notification], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._publish = publish
        self._clock = clock
        self._lock = threading.Lock()
        self._by_user: dict[int, list[Notification]] = {}

    def _prune(self, user_id: int) -> list[Notification]:
        now = self._clock()
        live = [n for n in self._by_user.get(user_id, []) if n.expires_at > now]
        if live:
            self._by_user[user_id] = live
        else:
            self._by_user.pop(user_id, None)
        return live

    def add_for_users(
        self,
        user_ids: Iterable[int],
        *,
        title: str,
        message: str,
        type: str = "INFO",
        entity: str | None = None,
        record_id: Any = None,
        meta: dict[str, Any] | None = None,
    ) -> list[Notification]:
        if type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type!r}")
        now = self._clock()
        created_at = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
        created: list[Notification] = []
        with self._lock:
            for user_id in dict.fromkeys(user_ids):
                n = Notification(
                    id=uuid.uuid4().hex,
                    user_id=user_id,
                    title=title,
                    message=message,
                    type=type,
                    created_at=created_at,
                    expires_at=now + self.ttl_seconds,
                    entity=entity,
                    record_id=str(record_id) if record_id is not None else None,
                    meta=dict(meta or {}),
                )
                items = self._prune(user_id)
                items.insert(0, n)
                self._by_user[user_id] = items[:MAX_PER_USER]
                created.append(n)
        # Publish outside the lock; a slow socket must not block other writers.
        if self._publish is not None:
            for n in created:
                self._publish(n.user_id, n)
        return created

    def for_user(self, user_id: int) -> list[Notification]:
        with self._lock:
            items = self._prune(user_id)
            return sorted(items, key=lambda n: n.created_at, reverse=True)

    def mark_all_read(self, user_id: int) -> int:
        with self._lock:
            items = self._prune(user_id)
            if items:
                self._by_user[user_id] = [replace(n, read=True) for n in items]
            return len(items)

    def clear(self, user_id: int) -> None:
        with self._lock:
            self._by_user.pop(user_id, None)

    def unread_count(self, user_id: int) -> int:
        return sum(1 for n in self.for_user(user_id) if not n.read)
