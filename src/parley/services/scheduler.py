"""Scheduled message dispatcher.

Timers live in process memory only. The ``is_sent`` flag is flipped in the
same transaction that inserts the message, so re-arming rows after a
restart never delivers one twice.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from parley.db.session import atomic
from parley.db.time import as_utc, isoformat, utcnow
from parley.models import Message, ScheduledMessage
from parley.services.access import (
    claim_sqlite_write_lock,
    get_chat,
    get_participant,
    require_participant,
)
from parley.services.errors import InvalidRequest
from parley.services.hydration import hydrate_message
from parley.services.messages import insert_message

logger = logging.getLogger(__name__)

Publisher = Callable[[int, dict[str, Any]], Awaitable[None]]


def create_scheduled(
    db: Session,
    chat_id: int,
    sender_id: int,
    content: str,
    fire_at: datetime,
) -> dict[str, Any]:
    """Persist a pending send request."""
    if not content or not content.strip():
        raise InvalidRequest("Scheduled messages need content")
    with atomic(db):
        get_chat(db, chat_id)
        require_participant(db, chat_id, sender_id)
        row = ScheduledMessage(
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            scheduled_for=as_utc(fire_at),
            is_sent=False,
        )
        db.add(row)
        db.flush()
        scheduled_id = row.id
    return {"id": scheduled_id, "chatId": chat_id, "scheduledFor": isoformat(fire_at)}


def deliver_scheduled(db: Session, scheduled_id: int) -> dict[str, Any] | None:
    """Insert the message for a pending row and mark it sent.

    Returns the hydrated message, or None when the row is gone or was
    already delivered.
    """
    with atomic(db):
        claim_sqlite_write_lock(
            db,
            update(ScheduledMessage)
            .where(ScheduledMessage.id == scheduled_id)
            .values(is_sent=ScheduledMessage.is_sent),
        )
        row = db.scalars(
            select(ScheduledMessage)
            .where(ScheduledMessage.id == scheduled_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if row is None or row.is_sent:
            return None
        row.is_sent = True
        if get_participant(db, row.chat_id, row.sender_id) is None:
            logger.warning(
                "dropping scheduled message %s: user %s left chat %s",
                scheduled_id,
                row.sender_id,
                row.chat_id,
            )
            return None
        message_id = insert_message(db, row.chat_id, row.sender_id, row.content).id

    return hydrate_message(db, db.get(Message, message_id))


def pending_schedule(db: Session) -> list[tuple[int, datetime]]:
    rows = db.execute(
        select(ScheduledMessage.id, ScheduledMessage.scheduled_for)
        .where(ScheduledMessage.is_sent.is_(False))
        .order_by(ScheduledMessage.scheduled_for)
    ).all()
    return [(row_id, as_utc(fire_at)) for row_id, fire_at in rows]


class ScheduledMessageDispatcher:
    """Arms one-shot timers and publishes the resulting messages."""

    def __init__(self, session_factory: sessionmaker, publish: Publisher) -> None:
        self._session_factory = session_factory
        self._publish = publish
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def armed(self) -> list[int]:
        return sorted(self._timers)

    async def schedule(
        self,
        chat_id: int,
        sender_id: int,
        content: str,
        fire_at: datetime,
    ) -> dict[str, Any]:
        """Persist the request and arm its timer."""
        scheduled = await asyncio.to_thread(
            self._run, create_scheduled, chat_id, sender_id, content, fire_at
        )
        self._arm(scheduled["id"], fire_at)
        logger.info("scheduled message %s for %s", scheduled["id"], scheduled["scheduledFor"])
        return scheduled

    async def fire(self, scheduled_id: int) -> dict[str, Any] | None:
        """Deliver a scheduled row now; a row already sent is left alone."""
        self._timers.pop(scheduled_id, None)
        try:
            message = await asyncio.to_thread(self._run, deliver_scheduled, scheduled_id)
        except Exception:
            logger.exception("failed to deliver scheduled message %s", scheduled_id)
            return None
        if message is None:
            return None
        logger.info("delivered scheduled message %s as message %s", scheduled_id, message["id"])
        await self._publish(message["chatId"], message)
        return message

    async def rearm_pending(self) -> int:
        """Arm every unsent row; overdue rows fire immediately."""
        pending = await asyncio.to_thread(self._run, pending_schedule)
        for scheduled_id, fire_at in pending:
            self._arm(scheduled_id, fire_at)
        if pending:
            logger.info("re-armed %d scheduled messages", len(pending))
        return len(pending)

    def stop(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    def _arm(self, scheduled_id: int, fire_at: datetime) -> None:
        if scheduled_id in self._timers:
            return
        loop = asyncio.get_running_loop()
        delay = max(0.0, (as_utc(fire_at) - utcnow()).total_seconds())
        self._timers[scheduled_id] = loop.call_later(delay, self._spawn, scheduled_id)

    def _spawn(self, scheduled_id: int) -> None:
        task = asyncio.ensure_future(self.fire(scheduled_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        with self._session_factory() as db:
            return func(db, *args)
