"""Append-only audit trail of administrative actions."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from parley.core.settings import settings
from parley.db.time import isoformat
from parley.models import ActionLog, User
from parley.models.action_log import PUBLIC_ACTION_TYPES
from parley.services.access import get_chat, require_participant
from parley.services.errors import Forbidden

logger = logging.getLogger(__name__)


def record(
    db: Session,
    chat_id: int | None,
    user_id: int,
    action_type: str,
    details: str | None = None,
    target_id: int | None = None,
) -> ActionLog:
    """Add a log row to the caller's transaction."""
    entry = ActionLog(
        chat_id=chat_id,
        user_id=user_id,
        target_id=target_id,
        action_type=action_type,
        details=details,
    )
    db.add(entry)
    logger.debug("action %s in chat %s by user %s", action_type, chat_id, user_id)
    return entry


def _serialize(entry: ActionLog, names: dict[int, str]) -> dict[str, Any]:
    return {
        "id": entry.id,
        "chatId": entry.chat_id,
        "userId": entry.user_id,
        "userName": names.get(entry.user_id),
        "targetId": entry.target_id,
        "targetName": names.get(entry.target_id) if entry.target_id else None,
        "actionType": entry.action_type,
        "details": entry.details,
        "timestamp": isoformat(entry.timestamp),
    }


def _serialize_all(db: Session, entries: list[ActionLog]) -> list[dict[str, Any]]:
    user_ids = {entry.user_id for entry in entries}
    user_ids.update(entry.target_id for entry in entries if entry.target_id)
    names: dict[int, str] = {}
    if user_ids:
        names = dict(db.execute(select(User.id, User.name).where(User.id.in_(user_ids))).all())
    return [_serialize(entry, names) for entry in entries]


def list_for_chat(db: Session, chat_id: int, requester_id: int) -> list[dict[str, Any]]:
    """Return the newest log entries of a chat visible to the requester."""
    get_chat(db, chat_id)
    membership = require_participant(db, chat_id, requester_id)
    stmt = select(ActionLog).where(ActionLog.chat_id == chat_id)
    if not membership.is_admin:
        stmt = stmt.where(ActionLog.action_type.in_(PUBLIC_ACTION_TYPES))
    stmt = stmt.order_by(ActionLog.timestamp.desc(), ActionLog.id.desc()).limit(
        settings.action_log_limit
    )
    return _serialize_all(db, list(db.scalars(stmt)))


def list_for_user(db: Session, user_id: int, requester_id: int) -> list[dict[str, Any]]:
    """Return the actions a user performed; only the user may read them."""
    if user_id != requester_id:
        raise Forbidden("You can only view your own actions")
    stmt = (
        select(ActionLog)
        .where(ActionLog.user_id == user_id)
        .order_by(ActionLog.timestamp.desc(), ActionLog.id.desc())
        .limit(settings.action_log_limit)
    )
    return _serialize_all(db, list(db.scalars(stmt)))
