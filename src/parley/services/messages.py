"""Message store and history service."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from parley.core.settings import settings
from parley.db.session import atomic
from parley.db.time import as_utc, utcnow
from parley.models import Message, PinnedMessage, Poll
from parley.models.action_log import ACTION_DELETE_MESSAGE, ACTION_PIN_MESSAGE
from parley.schemas.message import MessageDraft, PollDraft
from parley.services import action_log
from parley.services.access import (
    chat_settings,
    get_chat,
    get_participant,
    get_user,
    require_admin,
    require_participant,
)
from parley.services.errors import Forbidden, NotFound, Unauthorized
from parley.services.hydration import hydrate_message, hydrate_messages

logger = logging.getLogger(__name__)


def get_history(
    db: Session,
    chat_id: int,
    requester_id: int | None = None,
    limit: int | None = None,
    before: int | None = None,
) -> list[dict[str, Any]]:
    """Return a page of a chat's messages in ascending creation order.

    Without ``before`` the page is the most recent one. With it, the page ends
    just ahead of that message, so clients walk back by passing the oldest id
    they hold. ``limit`` is clamped to ``HISTORY_LIMIT``.
    """
    get_chat(db, chat_id)
    if requester_id is not None:
        require_participant(db, chat_id, requester_id)
    limit = min(limit or settings.history_limit, settings.history_limit)
    stmt = select(Message).where(Message.chat_id == chat_id)
    if before is not None:
        anchor = db.get(Message, before)
        if anchor is None or anchor.chat_id != chat_id:
            raise NotFound("Message not found")
        stmt = stmt.where(
            or_(
                Message.created_at < anchor.created_at,
                and_(Message.created_at == anchor.created_at, Message.id < anchor.id),
            )
        )
    recent = db.scalars(
        stmt.order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    ).unique().all()
    return hydrate_messages(db, list(reversed(recent)))


def insert_message(
    db: Session,
    chat_id: int,
    sender_id: int | None,
    content: str,
    message_type: str = "text",
    reply_to_id: int | None = None,
    extra: dict[str, Any] | None = None,
) -> Message:
    """Add a message row and bump the chat, inside the caller's transaction."""
    message = Message(
        chat_id=chat_id,
        sender_id=sender_id,
        content=content,
        type=message_type,
        reply_to_id=reply_to_id,
        extra=extra,
        created_at=utcnow(),
    )
    db.add(message)
    chat = get_chat(db, chat_id)
    chat.updated_at = message.created_at
    db.flush()
    return message


def append_system_message(db: Session, chat_id: int, text: str) -> Message:
    """Narrate a membership change in the chat history."""
    return insert_message(db, chat_id, None, text, "system")


def send(db: Session, draft: MessageDraft, actor_id: int | None = None) -> dict[str, Any]:
    """Persist a user message and return it hydrated with its durable id."""
    if actor_id is not None and actor_id != draft.sender.id:
        raise Forbidden("Cannot send messages on behalf of another user")

    with atomic(db):
        get_user(db, draft.sender.id)
        chat = get_chat(db, draft.chat_id)
        membership = require_participant(db, chat.id, draft.sender.id)
        if chat_settings(chat).only_admins_can_send_messages and not membership.is_admin:
            raise Forbidden("Only admins can send messages in this chat")

        reply_to_id = None
        if draft.reply_to is not None:
            reply = db.get(Message, draft.reply_to.id)
            if reply is None or reply.chat_id != chat.id:
                raise NotFound("Replied message not found")
            reply_to_id = reply.id

        poll = None
        if isinstance(draft, PollDraft):
            poll = db.get(Poll, draft.poll_id)
            if poll is None or poll.chat_id != chat.id:
                raise NotFound("Poll not found")

        message = insert_message(
            db,
            chat.id,
            draft.sender.id,
            draft.stored_content(),
            draft.type,
            reply_to_id,
            draft.metadata(),
        )
        if poll is not None and poll.message_id is None:
            poll.message_id = message.id
        message_id = message.id

    logger.info("message %s sent to chat %s by user %s", message_id, draft.chat_id, draft.sender.id)
    return hydrate_message(db, db.get(Message, message_id))


def delete(db: Session, message_id: int, chat_id: int, requester_id: int) -> dict[str, int]:
    """Hard-delete a message; allowed for its sender or an admin of the chat."""
    with atomic(db):
        message = db.get(Message, message_id)
        if message is None or message.chat_id != chat_id:
            raise NotFound("Message not found")
        if message.sender_id != requester_id:
            membership = get_participant(db, chat_id, requester_id)
            if membership is None or not membership.is_admin:
                raise Unauthorized("You are not authorized to delete this message")

        db.execute(sa_delete(PinnedMessage).where(PinnedMessage.message_id == message_id))
        action_log.record(
            db,
            chat_id,
            requester_id,
            ACTION_DELETE_MESSAGE,
            f"Deleted message {message_id}",
            target_id=message.sender_id,
        )
        db.delete(message)

    logger.info("message %s deleted from chat %s by user %s", message_id, chat_id, requester_id)
    return {"messageId": message_id, "chatId": chat_id}


def pin(db: Session, message_id: int, pinned: bool, requester_id: int) -> dict[str, Any]:
    """Set the pin state of a message; repeating the current state changes nothing."""
    with atomic(db):
        message = db.get(Message, message_id)
        if message is None:
            raise NotFound("Message not found")
        require_admin(db, message.chat_id, requester_id)

        existing = db.get(PinnedMessage, message_id)
        changed = False
        if pinned and existing is None:
            db.add(
                PinnedMessage(
                    message_id=message_id,
                    chat_id=message.chat_id,
                    pinned_by=requester_id,
                    pinned_at=utcnow(),
                )
            )
            changed = True
        elif not pinned and existing is not None:
            db.delete(existing)
            changed = True

        if changed:
            action_log.record(
                db,
                message.chat_id,
                requester_id,
                ACTION_PIN_MESSAGE,
                f"{'Pinned' if pinned else 'Unpinned'} message {message_id}",
            )
        chat_id = message.chat_id

    return {
        "messageId": message_id,
        "chatId": chat_id,
        "pinned": pinned,
        "changed": changed,
        "pinnedBy": requester_id,
    }


def list_pinned(db: Session, chat_id: int, requester_id: int) -> list[dict[str, Any]]:
    get_chat(db, chat_id)
    require_participant(db, chat_id, requester_id)
    messages = db.scalars(
        select(Message)
        .join(PinnedMessage, PinnedMessage.message_id == Message.id)
        .where(PinnedMessage.chat_id == chat_id)
        .order_by(PinnedMessage.pinned_at.desc())
    ).unique().all()
    return hydrate_messages(db, list(messages))


def search(
    db: Session,
    chat_id: int,
    requester_id: int,
    query: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    sender_id: int | None = None,
    message_type: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Filter a chat's messages, newest first."""
    get_chat(db, chat_id)
    require_participant(db, chat_id, requester_id)

    stmt = select(Message).where(Message.chat_id == chat_id)
    if query:
        stmt = stmt.where(Message.content.ilike(f"%{query}%"))
    if start is not None:
        stmt = stmt.where(Message.created_at >= as_utc(start))
    if end is not None:
        stmt = stmt.where(Message.created_at <= as_utc(end))
    if sender_id is not None:
        stmt = stmt.where(Message.sender_id == sender_id)
    if message_type:
        stmt = stmt.where(Message.type == message_type)
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(
        limit or settings.search_limit
    )
    return hydrate_messages(db, list(db.scalars(stmt).unique()))
