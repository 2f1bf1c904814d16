"""Polls attached to chats: creation, voting and tallies."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from parley.db.session import atomic
from parley.db.time import as_utc, utcnow
from parley.models import Message, Poll, PollOption, PollVote
from parley.models.action_log import ACTION_OTHER
from parley.services import action_log
from parley.services.access import get_chat, get_user, require_participant
from parley.services.errors import Conflict, InvalidRequest, NotFound
from parley.services.hydration import hydrate_message, poll_tally
from parley.services.messages import insert_message

logger = logging.getLogger(__name__)

MIN_OPTIONS = 2


def create_poll(
    db: Session,
    chat_id: int,
    creator_id: int,
    question: str,
    options: list[str],
    expires_at: datetime | None = None,
) -> dict[str, Any]:
    """Create a poll and the ``poll`` message that carries it into history.

    Returns ``{"message": <hydrated message>, "poll": <tally>}``.
    """
    texts = [text.strip() for text in options if text and text.strip()]
    if len(texts) < MIN_OPTIONS:
        raise InvalidRequest("A poll needs at least two options")
    if not question or not question.strip():
        raise InvalidRequest("A poll needs a question")

    with atomic(db):
        get_chat(db, chat_id)
        get_user(db, creator_id)
        require_participant(db, chat_id, creator_id)

        poll = Poll(
            chat_id=chat_id,
            created_by=creator_id,
            question=question.strip(),
            expires_at=as_utc(expires_at),
            created_at=utcnow(),
        )
        poll.options = [PollOption(text=text) for text in texts]
        db.add(poll)
        db.flush()

        message = insert_message(
            db,
            chat_id,
            creator_id,
            poll.question,
            "poll",
            extra={"pollId": poll.id},
        )
        poll.message_id = message.id
        action_log.record(db, chat_id, creator_id, ACTION_OTHER, f"Created poll: {poll.question}")
        poll_id, message_id = poll.id, message.id

    logger.info("poll %s created in chat %s by user %s", poll_id, chat_id, creator_id)
    return {
        "message": hydrate_message(db, db.get(Message, message_id)),
        "poll": poll_tally(db, db.get(Poll, poll_id)),
    }


def vote(db: Session, poll_id: int, option_id: int, user_id: int) -> dict[str, Any]:
    """Record a user's choice; a second vote replaces the first."""
    with atomic(db):
        poll = db.get(Poll, poll_id)
        if poll is None:
            raise NotFound("Poll not found")
        require_participant(db, poll.chat_id, user_id)
        if not any(option.id == option_id for option in poll.options):
            raise NotFound("Option not found")
        if poll.expires_at is not None and as_utc(poll.expires_at) <= utcnow():
            raise Conflict("This poll has expired")

        existing = db.get(PollVote, (poll_id, user_id))
        if existing is not None:
            existing.option_id = option_id
            existing.voted_at = utcnow()
        else:
            db.add(PollVote(poll_id=poll_id, user_id=user_id, option_id=option_id))

    tally = poll_tally(db, db.get(Poll, poll_id))
    tally["userId"] = user_id
    tally["votedOption"] = option_id
    return tally


def get_results(db: Session, poll_id: int, requester_id: int | None = None) -> dict[str, Any]:
    poll = db.get(Poll, poll_id)
    if poll is None:
        raise NotFound("Poll not found")
    if requester_id is not None:
        require_participant(db, poll.chat_id, requester_id)
    return poll_tally(db, poll)
