"""Builders for the client-facing shapes of users, messages, polls and chats."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from parley.core.settings import settings
from parley.db.time import isoformat
from parley.models import (
    Chat,
    ChatTag,
    Message,
    MessageReaction,
    PinnedMessage,
    Poll,
    PollVote,
    Tag,
    User,
)
from parley.services.access import chat_settings

_ABSOLUTE_PREFIXES = ("http://", "https://", "data:", "blob:")


def absolute_url(path: str | None) -> str | None:
    """Prefix relative upload paths with the public base URL."""
    if not path:
        return None
    if path.startswith(_ABSOLUTE_PREFIXES):
        return path
    base = settings.public_base_url.rstrip("/")
    return f"{base}/{path.lstrip('/')}"


def user_ref(user: User | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "avatar": absolute_url(user.avatar)}


def user_profile(user: User) -> dict[str, Any]:
    """Public profile including presence."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar": absolute_url(user.avatar),
        "isOnline": bool(user.is_online),
        "lastSeen": isoformat(user.last_seen),
    }


def reaction_aggregates(
    db: Session, message_ids: Sequence[int]
) -> dict[int, list[dict[str, Any]]]:
    """Group reactions per message, then per emoji in first-reaction order."""
    if not message_ids:
        return {}
    rows = db.scalars(
        select(MessageReaction)
        .where(MessageReaction.message_id.in_(message_ids))
        .order_by(MessageReaction.id)
    ).all()
    grouped: dict[int, dict[str, list[int]]] = defaultdict(dict)
    for row in rows:
        grouped[row.message_id].setdefault(row.emoji, []).append(row.user_id)
    return {
        message_id: [
            {"emoji": emoji, "count": len(users), "users": users}
            for emoji, users in by_emoji.items()
        ]
        for message_id, by_emoji in grouped.items()
    }


def poll_tally(db: Session, poll: Poll) -> dict[str, Any]:
    """Return per-option vote counts and the total for a poll."""
    counts = dict(
        db.execute(
            select(PollVote.option_id, func.count())
            .where(PollVote.poll_id == poll.id)
            .group_by(PollVote.option_id)
        ).all()
    )
    options = [
        {"id": option.id, "text": option.text, "votes": counts.get(option.id, 0)}
        for option in poll.options
    ]
    return {
        "pollId": poll.id,
        "messageId": poll.message_id,
        "chatId": poll.chat_id,
        "question": poll.question,
        "options": options,
        "totalVotes": sum(option["votes"] for option in options),
        "createdBy": poll.created_by,
        "expiresAt": isoformat(poll.expires_at),
    }


def hydrate_messages(db: Session, messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Resolve sender, reply target, reactions, pin state and poll tallies."""
    ids = [message.id for message in messages]
    reactions = reaction_aggregates(db, ids)
    pinned = set(
        db.scalars(select(PinnedMessage.message_id).where(PinnedMessage.message_id.in_(ids)))
    ) if ids else set()
    polls: dict[int, Poll] = {}
    poll_ids = [
        (message.extra or {}).get("pollId") for message in messages if message.type == "poll"
    ]
    poll_ids = [poll_id for poll_id in poll_ids if poll_id is not None]
    if poll_ids:
        polls = {poll.id: poll for poll in db.scalars(select(Poll).where(Poll.id.in_(poll_ids)))}

    hydrated = []
    for message in messages:
        shape: dict[str, Any] = {
            "id": message.id,
            "chatId": message.chat_id,
            "content": message.content,
            "type": message.type,
            "timestamp": isoformat(message.created_at),
            "sender": user_ref(message.sender),
            "replyTo": None,
            "reactions": reactions.get(message.id, []),
            "isPinned": message.id in pinned,
        }
        if message.reply_to is not None:
            reply = message.reply_to
            shape["replyTo"] = {
                "id": reply.id,
                "content": reply.content,
                "sender": {"name": reply.sender.name} if reply.sender else None,
            }
        for key, value in (message.extra or {}).items():
            shape.setdefault(key, value)
        poll = polls.get(shape.get("pollId"))  # type: ignore[arg-type]
        if poll is not None:
            shape["poll"] = poll_tally(db, poll)
        hydrated.append(shape)
    return hydrated


def hydrate_message(db: Session, message: Message) -> dict[str, Any]:
    return hydrate_messages(db, [message])[0]


def chat_tags(db: Session, chat_ids: Iterable[int]) -> dict[int, list[dict[str, Any]]]:
    ids = list(chat_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(ChatTag.chat_id, Tag)
        .join(Tag, Tag.id == ChatTag.tag_id)
        .where(ChatTag.chat_id.in_(ids))
        .order_by(Tag.name)
    ).all()
    tags: dict[int, list[dict[str, Any]]] = defaultdict(list)
    for chat_id, tag in rows:
        tags[chat_id].append({"id": tag.id, "name": tag.name, "color": tag.color})
    return tags


def last_message(db: Session, chat_id: int) -> Message | None:
    return db.scalars(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
    ).first()


def hydrate_chat(
    db: Session,
    chat: Chat,
    tags: list[dict[str, Any]] | None = None,
    archived: bool | None = None,
) -> dict[str, Any]:
    """Return the full client shape of a chat with participants resolved.

    ``isArchived`` is per viewer, so it is only included when ``archived`` is given.
    """
    participants = [
        {
            "id": member.user.id,
            "name": member.user.name,
            "email": member.user.email,
            "avatar": absolute_url(member.user.avatar),
            "isOnline": bool(member.user.is_online),
            "isAdmin": bool(member.is_admin),
            "joinedAt": isoformat(member.joined_at),
        }
        for member in chat.participants
    ]
    latest = last_message(db, chat.id)
    if tags is None:
        tags = chat_tags(db, [chat.id]).get(chat.id, [])
    shape = {
        "id": chat.id,
        "name": chat.name,
        "avatar": absolute_url(chat.avatar),
        "isGroup": bool(chat.is_group),
        "settings": chat_settings(chat).to_blob(),
        "createdAt": isoformat(chat.created_at),
        "updatedAt": isoformat(chat.updated_at),
        "participants": participants,
        "lastMessage": hydrate_message(db, latest) if latest is not None else None,
        "tags": tags,
    }
    if archived is not None:
        shape["isArchived"] = archived
    return shape

