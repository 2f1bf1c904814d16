"""Lookup and permission helpers shared by the chat services."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import Update

from parley.models import Chat, ChatParticipant, User
from parley.schemas.chat import ChatSettings
from parley.services.errors import Forbidden, NotFound


def get_user(db: Session, user_id: int) -> User:
    """Return the user or raise ``NotFound``."""
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def claim_sqlite_write_lock(db: Session, stmt: Update) -> None:
    """Run a no-op update so SQLite takes its write lock before the rows are read.

    SQLite ignores ``FOR UPDATE`` and pysqlite only opens a transaction at the
    first write. Without this, two transactions can read the same participant
    rows and both act on a stale admin count. Other backends rely on the row
    locks alone.
    """
    if db.get_bind().dialect.name == "sqlite":
        db.execute(stmt.execution_options(synchronize_session=False))


def get_chat(db: Session, chat_id: int, *, lock: bool = False) -> Chat:
    """Return the chat, optionally locking its row for the current transaction."""
    stmt = select(Chat).where(Chat.id == chat_id)
    if lock:
        claim_sqlite_write_lock(
            db, update(Chat).where(Chat.id == chat_id).values(updated_at=Chat.updated_at)
        )
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    chat = db.scalars(stmt).first()
    if chat is None:
        raise NotFound("Chat not found")
    return chat


def get_participant(
    db: Session,
    chat_id: int,
    user_id: int,
    *,
    lock: bool = False,
) -> ChatParticipant | None:
    stmt = select(ChatParticipant).where(
        ChatParticipant.chat_id == chat_id,
        ChatParticipant.user_id == user_id,
    )
    if lock:
        stmt = stmt.with_for_update(of=ChatParticipant)
    return db.scalars(stmt).first()


def require_participant(db: Session, chat_id: int, user_id: int) -> ChatParticipant:
    """Return the membership row or raise ``Forbidden``."""
    membership = get_participant(db, chat_id, user_id)
    if membership is None:
        raise Forbidden("You are not a participant of this chat")
    return membership


def require_admin(db: Session, chat_id: int, user_id: int) -> ChatParticipant:
    membership = require_participant(db, chat_id, user_id)
    if not membership.is_admin:
        raise Forbidden("Only admins can perform this action")
    return membership


def lock_participants(db: Session, chat_id: int) -> list[ChatParticipant]:
    """Lock and return all participant rows of a chat in join order."""
    stmt = (
        select(ChatParticipant)
        .where(ChatParticipant.chat_id == chat_id)
        .order_by(ChatParticipant.id)
        .with_for_update(of=ChatParticipant)
        .execution_options(populate_existing=True)
    )
    return list(db.scalars(stmt).unique())


def admin_count(db: Session, chat_id: int) -> int:
    return db.scalar(
        select(func.count())
        .select_from(ChatParticipant)
        .where(ChatParticipant.chat_id == chat_id, ChatParticipant.is_admin.is_(True))
    ) or 0


def chat_settings(chat: Chat) -> ChatSettings:
    """Parse the stored settings blob, filling in defaults."""
    return ChatSettings.model_validate(chat.settings or {})
