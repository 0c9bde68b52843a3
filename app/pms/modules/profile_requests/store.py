"""
In-process store for profile change requests.

PENDING -> APPROVED | DENIED, APPROVED -> USED. Expired and USED requests are
swept on every access. Nothing is persisted.
"""
from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any

from app.pms.errors import Conflict

PENDING = "PENDING"
APPROVED = "APPROVED"
DENIED = "DENIED"
USED = "USED"


@dataclass(frozen=True)
class ProfileChangeRequest:
    id: str
    requester_id: int
    requester_role: str
    fields: tuple[str, ...]
    reason: str | None
    status: str
    created_at: str
    expires_at: float
    approver_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["fields"] = list(self.fields)
        return data


class ProfileRequestStore:
    def __init__(self, ttl_seconds: int, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, ProfileChangeRequest] = {}

    def _sweep(self) -> None:
        now = self._clock()
        for rid, req in list(self._requests.items()):
            if req.expires_at <= now or req.status == USED:
                del self._requests[rid]

    def create(self, requester_id: int, requester_role: str, fields: list[str], reason: str | None = None) -> ProfileChangeRequest:
        now = self._clock()
        req = ProfileChangeRequest(
            id=uuid.uuid4().hex,
            requester_id=requester_id,
            requester_role=requester_role,
            fields=tuple(fields),
            reason=reason,
            status=PENDING,
            created_at=datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            expires_at=now + self.ttl_seconds,
        )
        with self._lock:
            self._sweep()
            self._requests[req.id] = req
        return req

    def get(self, request_id: str) -> ProfileChangeRequest | None:
        with self._lock:
            self._sweep()
            return self._requests.get(request_id)

    def list_pending(self, *, include_admin_requests: bool) -> list[ProfileChangeRequest]:
        with self._lock:
            self._sweep()
            pending = [
                r
                for r in self._requests.values()
                if r.status == PENDING and (include_admin_requests or r.requester_role != "admin")
            ]
        return sorted(pending, key=lambda r: r.created_at, reverse=True)

    def approved_for(self, user_id: int) -> ProfileChangeRequest | None:
        with self._lock:
            self._sweep()
            for req in self._requests.values():
                if req.requester_id == user_id and req.status == APPROVED:
                    return req
        return None

    def decide(self, request_id: str, *, approve: bool, approver_id: int) -> ProfileChangeRequest | None:
        """Approve or deny a PENDING request. Returns None when the id is unknown or expired."""
        with self._lock:
            self._sweep()
            req = self._requests.get(request_id)
            if req is None:
                return None
            if req.status != PENDING:
                raise Conflict(f"Request already {req.status.lower()}")
            updated = replace(req, status=APPROVED if approve else DENIED, approver_id=approver_id)
            self._requests[request_id] = updated
            return updated

    def mark_used(self, request_id: str) -> None:
        with self._lock:
            req = self._requests.get(request_id)
            if req is not None and req.status == APPROVED:
                self._requests[request_id] = replace(req, status=USED)
            self._sweep()
