"""Online/offline tracking backed by the users table."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from parley.db.session import atomic
from parley.db.time import utcnow
from parley.models import User
from parley.realtime.connections import ConnectionRegistry
from parley.realtime.rooms import RoomManager
from parley.services.access import get_user

logger = logging.getLogger(__name__)

STATUS_EVENT = "user:status"


def mark_online(db: Session, user_id: int, sid: str) -> None:
    with atomic(db):
        user = get_user(db, user_id)
        user.is_online = True
        user.socket_id = sid
        user.last_seen = utcnow()


def mark_offline(db: Session, sid: str) -> int | None:
    """Flip the user holding ``sid`` offline; a replaced or unknown handle matches nobody."""
    with atomic(db):
        user = db.scalars(select(User).where(User.socket_id == sid)).first()
        if user is None:
            return None
        user.is_online = False
        user.socket_id = None
        user.last_seen = utcnow()
        return user.id


class PresenceTracker:
    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomManager,
        session_factory: sessionmaker,
    ) -> None:
        self._registry = registry
        self._rooms = rooms
        self._session_factory = session_factory

    async def login(self, sid: str, user_id: int) -> None:
        """Persist the new handle, evict the old one and announce the user online."""
        await asyncio.to_thread(self._run_online, user_id, sid)
        await self._registry.register(user_id, sid)
        await self._rooms.join_user_room(sid, user_id)
        logger.info("user %s online on %s", user_id, sid)
        await self._rooms.broadcast_all(
            STATUS_EVENT, {"userId": user_id, "isOnline": True}, skip_sid=sid
        )

    async def disconnect(self, sid: str) -> int | None:
        """Mark the handle's user offline; returns the user id or None for a no-op."""
        await self._registry.unregister(sid)
        user_id = await asyncio.to_thread(self._run_offline, sid)
        if user_id is None:
            return None
        logger.info("user %s offline", user_id)
        await self._rooms.broadcast_all(
            STATUS_EVENT, {"userId": user_id, "isOnline": False}, skip_sid=sid
        )
        return user_id

    def _run_online(self, user_id: int, sid: str) -> None:
        with self._session_factory() as db:
            mark_online(db, user_id, sid)

    def _run_offline(self, sid: str) -> int | None:
        with self._session_factory() as db:
            return mark_offline(db, sid)
