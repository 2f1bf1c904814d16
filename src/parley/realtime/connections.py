"""Registry of the single live realtime connection per user."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Disconnect = Callable[[str], Awaitable[None]]


class ConnectionRegistry:
    """Map user ids to connection handles, at most one handle per user.

    ``disconnect`` is the transport's way of closing a handle; it is used
    to evict the previous connection when a user logs in again.
    """

    def __init__(self, disconnect: Disconnect) -> None:
        self._disconnect = disconnect
        self._by_user: dict[int, str] = {}
        self._by_sid: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id: int, sid: str) -> str | None:
        """Bind ``sid`` to the user and return the evicted handle, if any."""
        async with self._lock:
            previous = self._by_user.get(user_id)
            if previous == sid:
                return None
            stale_user = self._by_sid.pop(sid, None)
            if stale_user is not None and stale_user != user_id:
                self._by_user.pop(stale_user, None)
            self._by_user[user_id] = sid
            self._by_sid[sid] = user_id
            if previous is not None:
                self._by_sid.pop(previous, None)

        if previous is not None:
            logger.info("evicting stale connection %s of user %s", previous, user_id)
            try:
                await self._disconnect(previous)
            except Exception:
                logger.warning("stale connection %s was already gone", previous, exc_info=True)
        return previous

    async def unregister(self, sid: str) -> int | None:
        """Forget ``sid``; unknown handles are ignored."""
        async with self._lock:
            user_id = self._by_sid.pop(sid, None)
            if user_id is not None and self._by_user.get(user_id) == sid:
                del self._by_user[user_id]
            return user_id

    def lookup(self, user_id: int) -> str | None:
        return self._by_user.get(user_id)

    def user_for(self, sid: str) -> int | None:
        return self._by_sid.get(sid)

    def __len__(self) -> int:
        return len(self._by_user)
