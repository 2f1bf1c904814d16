"""Short-lived cache of request results keyed by client request ids."""

from __future__ import annotations

import time
from threading import Lock
from typing import Any

from parley.core.settings import settings


class RequestReplayCache:
    """Remember the outcome of a request id so a retry is answered, not re-applied."""

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.reaction_request_ttl_seconds
        self._entries: dict[tuple[int, str], tuple[float, Any]] = {}
        self._lock = Lock()

    def get(self, user_id: int, request_id: str) -> Any | None:
        """Return the cached result, or None if unknown or expired."""
        now = time.monotonic()
        with self._lock:
            self._purge(now)
            entry = self._entries.get((user_id, request_id))
            return entry[1] if entry else None

    def put(self, user_id: int, request_id: str, result: Any) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[(user_id, request_id)] = (time.monotonic() + self._ttl, result)

    def discard(self, user_id: int, request_id: str) -> None:
        with self._lock:
            self._entries.pop((user_id, request_id), None)

    def _purge(self, now: float) -> None:
        expired = [key for key, (expiry, _) in self._entries.items() if expiry < now]
        for key in expired:
            self._entries.pop(key, None)
