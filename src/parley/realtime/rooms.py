"""Room subscriptions and best-effort fan-out over the socket server."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def chat_room(chat_id: int) -> str:
    return f"chat:{chat_id}"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


class RoomManager:
    """Subscribe handles to chat rooms and deliver events without raising.

    A failed delivery is logged and dropped; it never aborts the caller or
    delivery to other handles.
    """

    def __init__(self, server: Any) -> None:
        self._server = server

    async def join(self, sid: str, chat_id: int) -> None:
        await self._server.enter_room(sid, chat_room(chat_id))

    async def leave(self, sid: str, chat_id: int) -> None:
        await self._server.leave_room(sid, chat_room(chat_id))

    async def join_user_room(self, sid: str, user_id: int) -> None:
        await self._server.enter_room(sid, user_room(user_id))

    async def broadcast(
        self,
        chat_id: int,
        event: str,
        payload: Any,
        skip_sid: str | None = None,
    ) -> None:
        await self._deliver(event, payload, room=chat_room(chat_id), skip_sid=skip_sid)

    async def notify_user(self, user_id: int, event: str, payload: Any) -> None:
        await self._deliver(event, payload, room=user_room(user_id))

    async def broadcast_all(self, event: str, payload: Any, skip_sid: str | None = None) -> None:
        await self._deliver(event, payload, skip_sid=skip_sid)

    async def send_to(self, sid: str, event: str, payload: Any) -> None:
        await self._deliver(event, payload, to=sid)

    async def _deliver(self, event: str, payload: Any, **target: Any) -> None:
        try:
            await self._server.emit(event, payload, **target)
        except Exception:
            logger.exception("failed to deliver %s to %s", event, target)
