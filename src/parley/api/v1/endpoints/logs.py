"""Action log endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from parley.services import action_log

from ..dependencies import CurrentUserDep, SessionDep

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("/chat/{chat_id}")
async def chat_log(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    """Admins see every entry; other participants see membership, pin and admin changes."""
    return action_log.list_for_chat(db, chat_id, current_user.id)


@router.get("/user/{user_id}")
async def user_log(
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    return action_log.list_for_user(db, user_id, current_user.id)
