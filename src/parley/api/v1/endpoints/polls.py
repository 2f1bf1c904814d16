"""Poll endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from parley.schemas.poll import PollCreate, PollVoteRequest
from parley.services import polls

from ..dependencies import CurrentUserDep, GatewayDep, SessionDep

router = APIRouter(prefix="/polls", tags=["polls"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_poll(
    payload: PollCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    """Create a poll and post it to the chat."""
    result = polls.create_poll(
        db,
        payload.chat_id,
        current_user.id,
        payload.question,
        payload.options,
        payload.expires_at,
    )
    await gateway.publish_message(payload.chat_id, result["message"])
    return result


@router.post("/{poll_id}/vote")
async def vote(
    poll_id: int,
    payload: PollVoteRequest,
    current_user: CurrentUserDep,
    db: SessionDep,
    gateway: GatewayDep,
) -> dict[str, Any]:
    tally = polls.vote(db, poll_id, payload.option_id, current_user.id)
    await gateway.publish_poll_vote(tally)
    return tally


@router.get("/{poll_id}")
async def get_results(
    poll_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> dict[str, Any]:
    return polls.get_results(db, poll_id, current_user.id)
