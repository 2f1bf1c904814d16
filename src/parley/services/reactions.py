"""Per-user, per-emoji reaction toggling."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parley.db.session import atomic
from parley.models import Message, MessageReaction
from parley.services.access import require_participant
from parley.services.errors import NotFound
from parley.services.hydration import reaction_aggregates

logger = logging.getLogger(__name__)


def toggle(db: Session, message_id: int, user_id: int, emoji: str) -> dict[str, Any]:
    """Add the reaction if absent, remove it if present, and return the new aggregate."""
    try:
        with atomic(db):
            message = db.get(Message, message_id)
            if message is None:
                raise NotFound("Message not found")
            require_participant(db, message.chat_id, user_id)
            chat_id = message.chat_id

            existing = db.scalars(
                select(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji,
                )
            ).first()
            if existing is not None:
                db.delete(existing)
                reacted = False
            else:
                db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
                reacted = True
    except IntegrityError:
        # A concurrent toggle inserted the same row first; the reaction stands.
        logger.warning("concurrent reaction insert on message %s by user %s", message_id, user_id)
        reacted = True

    reactions = reaction_aggregates(db, [message_id]).get(message_id, [])
    group = next((r for r in reactions if r["emoji"] == emoji), None)
    return {
        "messageId": message_id,
        "chatId": chat_id,
        "userId": user_id,
        "emoji": emoji,
        "reacted": reacted,
        "count": group["count"] if group else 0,
        "users": group["users"] if group else [],
        "reactions": reactions,
    }
