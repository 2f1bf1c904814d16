"""User directory and profile endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from sqlalchemy import select

from parley.models import User
from parley.schemas.user import UserUpdate
from parley.services import groups
from parley.services.hydration import user_profile

from ..dependencies import CurrentUserDep, GatewayDep, SessionDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(current_user: CurrentUserDep, db: SessionDep) -> dict[str, Any]:
    """Return every registered user with presence."""
    users = db.scalars(select(User).order_by(User.name, User.id)).all()
    return {"users": [user_profile(user) for user in users]}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    payload: UserUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    profile = groups.update_user(
        db, user_id, current_user.id, payload.name, payload.email, payload.avatar
    )
    await gateway.rooms.broadcast_all("user:updated", profile)
    return profile
