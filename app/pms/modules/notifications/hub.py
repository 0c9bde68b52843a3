from __future__ import annotations

import json
import logging
import threading
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Socket(Protocol):
    connected: bool

    def send(self, data: str) -> None: ...


class SocketHub:
    """Open WebSocket connections grouped by user id.

    Every socket has its own send lock: request threads broadcast concurrently
    and a frame must be written whole before the next one starts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[int, dict[Socket, threading.Lock]] = {}

    def attach(self, user_id: int, sock: Socket) -> None:
        with self._lock:
            self._clients.setdefault(user_id, {})[sock] = threading.Lock()
        logger.debug("ws attached user_id=%s sockets=%s", user_id, self.count(user_id))

    def detach(self, sock: Socket) -> None:
        with self._lock:
            for user_id, socks in list(self._clients.items()):
                if sock in socks:
                    del socks[sock]
                    if not socks:
                        del self._clients[user_id]
                    break

    def count(self, user_id: int | None = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._clients.get(user_id, ()))
            return sum(len(s) for s in self._clients.values())

    def send_to_user(self, user_id: int, payload: Any) -> int:
        """Send a JSON payload to every open socket of the user; returns how many got it."""
        with self._lock:
            targets = list(self._clients.get(user_id, {}).items())
        if not targets:
            return 0
        data = json.dumps(payload, default=str)
        delivered = 0
        for sock, send_lock in targets:
            if not getattr(sock, "connected", True):
                self.detach(sock)
                continue
            try:
                with send_lock:
                    sock.send(data)
                delivered += 1
            except Exception as e:
                logger.info("ws send failed user_id=%s (%s); dropping socket", user_id, e)
                self.detach(sock)
        return delivered

    def push_notification(self, user_id: int, notification) -> None:
        self.send_to_user(user_id, {"type": "notification", "data": notification.to_dict()})
