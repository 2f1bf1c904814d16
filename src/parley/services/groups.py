"""Chat creation, group membership and the admin state machine.

Every operation that reads admin or participant counts and then writes
runs inside one transaction with the chat row and its participant rows
locked, so two concurrent "last admin leaves" requests serialize instead
of both promoting someone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parley.db.session import atomic
from parley.db.time import utcnow
from parley.models import ArchivedChat, Chat, ChatParticipant, ChatTag, Message, Tag, User
from parley.models.action_log import (
    ACTION_ADD_MEMBER,
    ACTION_CHANGE_ADMIN,
    ACTION_OTHER,
    ACTION_REMOVE_MEMBER,
    ACTION_UPDATE_INFO,
)
from parley.schemas.chat import ChatSettings
from parley.services import action_log
from parley.services.access import (
    chat_settings,
    get_chat,
    get_user,
    lock_participants,
    require_admin,
    require_participant,
)
from parley.services.errors import Conflict, Forbidden, InvalidRequest, NotFound
from parley.services.hydration import chat_tags, hydrate_chat, hydrate_messages, user_profile
from parley.services.messages import append_system_message

logger = logging.getLogger(__name__)

PROMOTED_TEMPLATE = "{name} foi promovido a administrador do grupo"
ADDED_TEMPLATE = "{name} foi adicionado ao grupo"
LEFT_TEMPLATE = "{name} saiu do grupo"
REMOVED_TEMPLATE = "{name} foi removido do grupo"


@dataclass
class ChatCreation:
    """Outcome of ``create_chat``; ``created`` is False when an existing DM was reused."""

    chat: dict[str, Any]
    created: bool

    @property
    def participant_ids(self) -> list[int]:
        return [participant["id"] for participant in self.chat["participants"]]


@dataclass
class MembersAdded:
    chat: dict[str, Any]
    added_user_ids: list[int] = field(default_factory=list)
    system_messages: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class MembershipChange:
    """Everything the transport needs to announce a removal or leave."""

    chat_id: int
    user_id: int
    removed_by: int
    self_removal: bool
    chat_deleted: bool
    chat: dict[str, Any] | None = None
    system_messages: list[dict[str, Any]] = field(default_factory=list)
    promoted_user_id: int | None = None


@dataclass
class AdminStatusChange:
    chat: dict[str, Any]
    user_id: int
    is_admin: bool
    changed: bool
    system_messages: list[dict[str, Any]] = field(default_factory=list)


def _dm_key(first: int, second: int) -> str:
    low, high = sorted((first, second))
    return f"{low}:{high}"


def _ordered_unique(values: list[int]) -> list[int]:
    seen: set[int] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _hydrate(db: Session, chat_id: int) -> dict[str, Any]:
    return hydrate_chat(db, get_chat(db, chat_id))


def _hydrate_messages(db: Session, message_ids: list[int]) -> list[dict[str, Any]]:
    if not message_ids:
        return []
    messages = db.scalars(
        select(Message).where(Message.id.in_(message_ids)).order_by(Message.id)
    ).unique().all()
    return hydrate_messages(db, list(messages))


def create_chat(
    db: Session,
    is_group: bool,
    participant_ids: list[int],
    created_by: int,
    name: str | None = None,
    avatar: str | None = None,
    settings: ChatSettings | None = None,
) -> ChatCreation:
    """Create a group, or return the DM that already joins the same two users."""
    member_ids = _ordered_unique([created_by, *participant_ids])

    dm_key = None
    if not is_group:
        if len(member_ids) != 2:
            raise InvalidRequest("A direct message needs exactly two distinct participants")
        dm_key = _dm_key(*member_ids)
        existing = db.scalars(select(Chat).where(Chat.dm_key == dm_key)).first()
        if existing is not None:
            return ChatCreation(chat=hydrate_chat(db, existing), created=False)

    try:
        with atomic(db):
            for user_id in member_ids:
                get_user(db, user_id)

            now = utcnow()
            chat = Chat(
                name=(name or f"Grupo ({len(member_ids)})") if is_group else None,
                avatar=avatar if is_group else None,
                is_group=is_group,
                dm_key=dm_key,
                settings=(settings or ChatSettings()).to_blob(),
                created_at=now,
                updated_at=now,
            )
            db.add(chat)
            db.flush()
            for user_id in member_ids:
                db.add(
                    ChatParticipant(
                        chat_id=chat.id,
                        user_id=user_id,
                        is_admin=is_group and user_id == created_by,
                        joined_at=now,
                    )
                )
                # Flush one by one so surrogate ids follow the join order.
                db.flush()
            if is_group:
                action_log.record(db, chat.id, created_by, ACTION_OTHER, f"Created group {chat.name}")
            chat_id = chat.id
    except IntegrityError:
        if dm_key is None:
            raise
        # Another request created the same DM between our check and insert.
        existing = db.scalars(select(Chat).where(Chat.dm_key == dm_key)).first()
        if existing is None:
            raise
        logger.info("concurrent creation of DM %s resolved to chat %s", dm_key, existing.id)
        return ChatCreation(chat=hydrate_chat(db, existing), created=False)

    logger.info("chat %s created by user %s (group=%s)", chat_id, created_by, is_group)
    return ChatCreation(chat=_hydrate(db, chat_id), created=True)


def add_members(
    db: Session,
    chat_id: int,
    user_ids: list[int],
    requester_id: int,
) -> MembersAdded:
    """Add users to a group as regular members; existing members are skipped."""
    added: list[int] = []
    message_ids: list[int] = []
    with atomic(db):
        chat = get_chat(db, chat_id, lock=True)
        if not chat.is_group:
            raise Conflict("Members cannot be added to a direct message")
        members = lock_participants(db, chat_id)
        requester = next((m for m in members if m.user_id == requester_id), None)
        if requester is None:
            raise Forbidden("You are not a participant of this chat")
        if chat_settings(chat).only_admins_can_add_members and not requester.is_admin:
            raise Forbidden("Only admins can add members to this group")

        current = {member.user_id for member in members}
        for user_id in _ordered_unique(user_ids):
            if user_id in current:
                continue
            user = get_user(db, user_id)
            db.add(ChatParticipant(chat_id=chat_id, user_id=user_id, is_admin=False, joined_at=utcnow()))
            db.flush()
            current.add(user_id)
            added.append(user_id)
            message = append_system_message(db, chat_id, ADDED_TEMPLATE.format(name=user.name))
            message_ids.append(message.id)
            action_log.record(
                db,
                chat_id,
                requester_id,
                ACTION_ADD_MEMBER,
                f"Added {user.name}",
                target_id=user_id,
            )

    db.expire_all()
    logger.info("users %s added to chat %s by user %s", added, chat_id, requester_id)
    return MembersAdded(
        chat=_hydrate(db, chat_id),
        added_user_ids=added,
        system_messages=_hydrate_messages(db, message_ids),
    )


def remove_member(
    db: Session,
    chat_id: int,
    target_user_id: int,
    requested_by: int,
) -> MembershipChange:
    """Remove a participant from a group, either by leaving or by being kicked.

    The sole admin leaving hands the role to the earliest-joined remaining
    participant. The last participant leaving deletes the chat.
    """
    self_removal = target_user_id == requested_by
    promoted_user_id: int | None = None
    message_ids: list[int] = []

    with atomic(db):
        chat = get_chat(db, chat_id, lock=True)
        if not chat.is_group:
            raise NotFound("Chat is not a group")
        members = lock_participants(db, chat_id)
        target = next((m for m in members if m.user_id == target_user_id), None)
        if target is None:
            raise NotFound("User is not a participant of this chat")

        is_target_admin = target.is_admin
        admins = sum(1 for member in members if member.is_admin)

        if not self_removal:
            requester = next((m for m in members if m.user_id == requested_by), None)
            if is_target_admin:
                raise Forbidden("Cannot remove another admin")
            if requester is None or not requester.is_admin:
                raise Forbidden("Only admins can remove members")
        if admins == 1 and is_target_admin and not self_removal:
            raise Forbidden("Cannot remove the last admin")

        remaining = [member for member in members if member is not target]

        if admins == 1 and is_target_admin and self_removal and remaining:
            successor = remaining[0]
            successor.is_admin = True
            promoted_user_id = successor.user_id
            message_ids.append(
                append_system_message(
                    db, chat_id, PROMOTED_TEMPLATE.format(name=successor.user.name)
                ).id
            )

        target_name = target.user.name
        action_log.record(
            db,
            chat_id,
            requested_by,
            ACTION_REMOVE_MEMBER,
            f"{'Left' if self_removal else 'Removed'} {target_name}",
            target_id=target_user_id,
        )
        db.delete(target)
        db.execute(
            sa_delete(ArchivedChat).where(
                ArchivedChat.chat_id == chat_id, ArchivedChat.user_id == target_user_id
            )
        )
        db.flush()

        if not remaining:
            db.delete(chat)
            db.flush()
            logger.info("chat %s deleted after its last participant left", chat_id)
            return MembershipChange(
                chat_id=chat_id,
                user_id=target_user_id,
                removed_by=requested_by,
                self_removal=self_removal,
                chat_deleted=True,
            )

        if not any(member.is_admin for member in remaining):
            successor = remaining[0]
            successor.is_admin = True
            promoted_user_id = successor.user_id
            message_ids.append(
                append_system_message(
                    db, chat_id, PROMOTED_TEMPLATE.format(name=successor.user.name)
                ).id
            )

        if promoted_user_id is not None:
            action_log.record(
                db,
                chat_id,
                requested_by,
                ACTION_CHANGE_ADMIN,
                "Promoted to admin after the last admin left",
                target_id=promoted_user_id,
            )

        template = LEFT_TEMPLATE if self_removal else REMOVED_TEMPLATE
        message_ids.append(append_system_message(db, chat_id, template.format(name=target_name)).id)

    db.expire_all()
    logger.info(
        "user %s removed from chat %s by user %s (promoted=%s)",
        target_user_id,
        chat_id,
        requested_by,
        promoted_user_id,
    )
    return MembershipChange(
        chat_id=chat_id,
        user_id=target_user_id,
        removed_by=requested_by,
        self_removal=self_removal,
        chat_deleted=False,
        chat=_hydrate(db, chat_id),
        system_messages=_hydrate_messages(db, message_ids),
        promoted_user_id=promoted_user_id,
    )


def promote(db: Session, chat_id: int, target_user_id: int, requester_id: int) -> AdminStatusChange:
    """Make a participant an admin; promoting an admin changes nothing."""
    message_ids: list[int] = []
    with atomic(db):
        chat = get_chat(db, chat_id, lock=True)
        members = lock_participants(db, chat_id)
        requester = next((m for m in members if m.user_id == requester_id), None)
        if requester is None or not requester.is_admin:
            raise Forbidden("Only admins can change admins")
        target = next((m for m in members if m.user_id == target_user_id), None)
        if target is None:
            raise NotFound("User is not a participant of this chat")

        changed = not target.is_admin
        if changed:
            target.is_admin = True
            message_ids.append(
                append_system_message(
                    db, chat.id, PROMOTED_TEMPLATE.format(name=target.user.name)
                ).id
            )
            action_log.record(
                db,
                chat_id,
                requester_id,
                ACTION_CHANGE_ADMIN,
                f"Promoted {target.user.name}",
                target_id=target_user_id,
            )

    db.expire_all()
    return AdminStatusChange(
        chat=_hydrate(db, chat_id),
        user_id=target_user_id,
        is_admin=True,
        changed=changed,
        system_messages=_hydrate_messages(db, message_ids),
    )


def demote(db: Session, chat_id: int, target_user_id: int, requester_id: int) -> AdminStatusChange:
    """Revoke admin rights; the sole admin cannot be demoted."""
    with atomic(db):
        get_chat(db, chat_id, lock=True)
        members = lock_participants(db, chat_id)
        requester = next((m for m in members if m.user_id == requester_id), None)
        if requester is None or not requester.is_admin:
            raise Forbidden("Only admins can change admins")
        target = next((m for m in members if m.user_id == target_user_id), None)
        if target is None:
            raise NotFound("User is not a participant of this chat")

        changed = bool(target.is_admin)
        if changed:
            if sum(1 for member in members if member.is_admin) == 1:
                raise Conflict("Cannot demote the only admin of the group")
            target.is_admin = False
            action_log.record(
                db,
                chat_id,
                requester_id,
                ACTION_CHANGE_ADMIN,
                f"Demoted {target.user.name}",
                target_id=target_user_id,
            )

    db.expire_all()
    return AdminStatusChange(
        chat=_hydrate(db, chat_id),
        user_id=target_user_id,
        is_admin=False,
        changed=changed,
    )


def update_chat(
    db: Session,
    chat_id: int,
    requester_id: int,
    name: str | None = None,
    avatar: str | None = None,
    settings: ChatSettings | None = None,
    tags: list[int] | None = None,
) -> dict[str, Any]:
    """Update chat info; the tag list, when given, replaces the current one."""
    with atomic(db):
        chat = get_chat(db, chat_id, lock=True)
        membership = require_participant(db, chat_id, requester_id)
        if chat_settings(chat).only_admins_can_change_info and not membership.is_admin:
            raise Forbidden("Only admins can change this group's info")
        if tags is not None and not membership.is_admin:
            raise Forbidden("Only admins can change this group's tags")

        changes = []
        if name is not None:
            if chat.is_group and not name.strip():
                raise InvalidRequest("A group needs a name")
            chat.name = name.strip() if chat.is_group else chat.name
            changes.append("name")
        if avatar is not None:
            chat.avatar = avatar
            changes.append("avatar")
        if settings is not None:
            chat.settings = settings.to_blob()
            changes.append("settings")
        if tags is not None:
            tag_ids = _ordered_unique(tags)
            known = set(db.scalars(select(Tag.id).where(Tag.id.in_(tag_ids)))) if tag_ids else set()
            missing = [tag_id for tag_id in tag_ids if tag_id not in known]
            if missing:
                raise NotFound(f"Tag not found: {missing[0]}")
            db.execute(sa_delete(ChatTag).where(ChatTag.chat_id == chat_id))
            for tag_id in tag_ids:
                db.add(ChatTag(chat_id=chat_id, tag_id=tag_id, assigned_by=requester_id))
            changes.append("tags")

        if changes:
            chat.updated_at = utcnow()
            action_log.record(
                db,
                chat_id,
                requester_id,
                ACTION_UPDATE_INFO,
                f"Updated {', '.join(changes)}",
            )

    db.expire_all()
    return _hydrate(db, chat_id)


def delete_chat(db: Session, chat_id: int, requester_id: int) -> list[int]:
    """Delete a chat outright and return the ids of its former participants."""
    with atomic(db):
        chat = get_chat(db, chat_id, lock=True)
        if chat.is_group:
            require_admin(db, chat_id, requester_id)
        else:
            require_participant(db, chat_id, requester_id)
        participant_ids = [member.user_id for member in lock_participants(db, chat_id)]
        action_log.record(db, chat_id, requester_id, ACTION_OTHER, f"Deleted chat {chat_id}")
        db.delete(chat)

    logger.info("chat %s deleted by user %s", chat_id, requester_id)
    return participant_ids


def list_chats(db: Session, user_id: int) -> list[dict[str, Any]]:
    """Return every chat the user belongs to, most recently active first."""
    chats = db.scalars(
        select(Chat)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .where(ChatParticipant.user_id == user_id)
        .order_by(Chat.updated_at.desc(), Chat.id.desc())
    ).all()
    tags = chat_tags(db, [chat.id for chat in chats])
    archived = set(
        db.scalars(select(ArchivedChat.chat_id).where(ArchivedChat.user_id == user_id))
    )
    return [
        hydrate_chat(db, chat, tags.get(chat.id, []), archived=chat.id in archived)
        for chat in chats
    ]


def toggle_archive(db: Session, chat_id: int, user_id: int) -> dict[str, Any]:
    """Archive the chat for this user, or unarchive it if it already is."""
    with atomic(db):
        get_chat(db, chat_id)
        require_participant(db, chat_id, user_id)
        row = db.get(ArchivedChat, (chat_id, user_id))
        archived = row is None
        if archived:
            db.add(ArchivedChat(chat_id=chat_id, user_id=user_id))
        else:
            db.delete(row)
    logger.info("chat %s archived=%s for user %s", chat_id, archived, user_id)
    return {"chatId": chat_id, "isArchived": archived}


def participant_ids(db: Session, chat_id: int) -> list[int]:
    return list(
        db.scalars(
            select(ChatParticipant.user_id)
            .where(ChatParticipant.chat_id == chat_id)
            .order_by(ChatParticipant.id)
        )
    )


def update_user(
    db: Session,
    user_id: int,
    requester_id: int,
    name: str | None = None,
    email: str | None = None,
    avatar: str | None = None,
) -> dict[str, Any]:
    """Update the requester's own profile."""
    if user_id != requester_id:
        raise Forbidden("You can only update your own profile")
    with atomic(db):
        user = get_user(db, user_id)
        if email is not None and email != user.email:
            taken = db.scalars(
                select(User.id).where(User.email == email, User.id != user_id)
            ).first()
            if taken is not None:
                raise Conflict("Email already in use")
            user.email = email
        if name is not None:
            user.name = name
        if avatar is not None:
            user.avatar = avatar

    return user_profile(get_user(db, user_id))
