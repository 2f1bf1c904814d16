"""Message search, pin and delete endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query

from parley.schemas.message import PinRequest
from parley.services import messages

from ..dependencies import CurrentUserDep, GatewayDep, SessionDep

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/search")
async def search_messages(
    current_user: CurrentUserDep,
    db: SessionDep,
    chat_id: int = Query(..., alias="chatId"),
    query: str | None = None,
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    sender_id: int | None = Query(None, alias="senderId"),
    message_type: str | None = Query(None, alias="type"),
) -> list[dict[str, Any]]:
    """Search a chat's messages by text, date range, sender and type."""
    return messages.search(
        db,
        chat_id,
        current_user.id,
        query=query,
        start=start_date,
        end=end_date,
        sender_id=sender_id,
        message_type=message_type,
    )


@router.post("/{message_id}/pin")
async def pin_message(
    message_id: int,
    payload: PinRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    result = messages.pin(db, message_id, payload.pin, current_user.id)
    await gateway.publish_pin(result)
    return result


@router.delete("/{message_id}")
async def delete_message(
    message_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
    chat_id: int = Query(..., alias="chatId"),
) -> dict[str, int]:
    result = messages.delete(db, message_id, chat_id, current_user.id)
    await gateway.rooms.broadcast(chat_id, "message:deleted", result)
    return result
