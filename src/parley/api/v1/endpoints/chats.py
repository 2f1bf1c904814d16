"""Chat, membership and admin endpoints.

Mutations publish the same realtime events the socket handlers emit, so
connected clients see HTTP changes immediately.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, status

from parley.schemas.chat import ChatCreate, ChatUpdate, MembersAdd
from parley.services import groups, messages
from parley.services.access import get_chat, require_participant
from parley.services.errors import Forbidden
from parley.services.hydration import chat_tags

from ..dependencies import CurrentUserDep, GatewayDep, SessionDep

router = APIRouter(prefix="/chats", tags=["chats"])


@router.get("")
async def list_chats(current_user: CurrentUserDep, db: SessionDep) -> list[dict[str, Any]]:
    """Return the caller's chats, most recently active first."""
    return groups.list_chats(db, current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chat(
    payload: ChatCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    """Create a group or open (or reuse) a direct message."""
    if payload.created_by is not None and payload.created_by != current_user.id:
        raise Forbidden("Cannot create chats on behalf of another user")
    creation = groups.create_chat(
        db,
        payload.is_group,
        payload.participants,
        current_user.id,
        payload.name,
        payload.avatar,
        payload.settings,
    )
    await gateway.publish_chat_created(creation)
    return {**creation.chat, "created": creation.created}


@router.put("/{chat_id}")
async def update_chat(
    chat_id: int,
    payload: ChatUpdate,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    chat = groups.update_chat(
        db,
        chat_id,
        current_user.id,
        payload.name,
        payload.avatar,
        payload.settings,
        payload.tags,
    )
    await gateway.rooms.broadcast(chat_id, "chat:updated", chat)
    return chat


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> None:
    participant_ids = groups.delete_chat(db, chat_id, current_user.id)
    await gateway.publish_chat_deleted(chat_id, participant_ids)


@router.post("/{chat_id}/members")
async def add_members(
    chat_id: int,
    payload: MembersAdd,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    result = groups.add_members(db, chat_id, payload.user_ids, current_user.id)
    await gateway.publish_members_added(result)
    return {"chat": result.chat, "addedUserIds": result.added_user_ids}


@router.delete("/{chat_id}/members/{user_id}")
async def remove_member(
    chat_id: int,
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    """Kick a member, or leave when ``user_id`` is the caller."""
    change = groups.remove_member(db, chat_id, user_id, current_user.id)
    await gateway.publish_membership_change(change)
    return _membership_payload(change)


@router.post("/{chat_id}/leave")
async def leave_chat(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    change = groups.remove_member(db, chat_id, current_user.id, current_user.id)
    await gateway.publish_membership_change(change)
    return _membership_payload(change)


@router.post("/{chat_id}/admins/{user_id}")
async def promote(
    chat_id: int,
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    change = groups.promote(db, chat_id, user_id, current_user.id)
    await gateway.publish_admin_change(change)
    return change.chat


@router.delete("/{chat_id}/admins/{user_id}")
async def demote(
    chat_id: int,
    user_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    change = groups.demote(db, chat_id, user_id, current_user.id)
    await gateway.publish_admin_change(change)
    return change.chat


@router.post("/{chat_id}/archive")
async def toggle_archive(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    """Archive or unarchive the chat for the caller only."""
    return groups.toggle_archive(db, chat_id, current_user.id)


@router.get("/{chat_id}/messages")
async def get_history(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    before: int | None = None,
    limit: int | None = Query(None, ge=1),
) -> list[dict[str, Any]]:
    """Page backwards with ``before``, the oldest message id already loaded."""
    return messages.get_history(db, chat_id, current_user.id, limit=limit, before=before)


@router.get("/{chat_id}/pins")
async def list_pins(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    return messages.list_pinned(db, chat_id, current_user.id)


@router.get("/{chat_id}/tags")
async def list_chat_tags(
    chat_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> list[dict[str, Any]]:
    get_chat(db, chat_id)
    require_participant(db, chat_id, current_user.id)
    return chat_tags(db, [chat_id]).get(chat_id, [])


def _membership_payload(change: groups.MembershipChange) -> dict[str, Any]:
    return {
        "chatId": change.chat_id,
        "userId": change.user_id,
        "chatDeleted": change.chat_deleted,
        "promotedUserId": change.promoted_user_id,
        "chat": change.chat,
    }
