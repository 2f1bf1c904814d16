"""Audit trail of administrative actions inside chats."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from parley.db.session import Base
from parley.db.time import utcnow

ACTION_ADD_MEMBER = "ADD_MEMBER"
ACTION_REMOVE_MEMBER = "REMOVE_MEMBER"
ACTION_PIN_MESSAGE = "PIN_MESSAGE"
ACTION_CHANGE_ADMIN = "CHANGE_ADMIN"
ACTION_DELETE_MESSAGE = "DELETE_MESSAGE"
ACTION_UPDATE_INFO = "UPDATE_INFO"
ACTION_OTHER = "OTHER"

# Types visible to participants who are not admins.
PUBLIC_ACTION_TYPES = (
    ACTION_ADD_MEMBER,
    ACTION_REMOVE_MEMBER,
    ACTION_PIN_MESSAGE,
    ACTION_CHANGE_ADMIN,
)


class ActionLog(Base):
    """Append-only record; rows are never updated."""

    __tablename__ = "action_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Kept after the chat is gone so users can still see their history.
    chat_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("chats.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
