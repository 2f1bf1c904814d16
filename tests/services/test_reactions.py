"""Tests for reaction toggling."""

from __future__ import annotations

import pytest

from parley.schemas.message import parse_message_draft
from parley.services import messages, reactions
from parley.services.errors import Forbidden, NotFound


@pytest.fixture()
def message(db_session, group, alice):
    draft = parse_message_draft({"chatId": group["id"], "sender": {"id": alice.id}, "content": "vote"})
    return messages.send(db_session, draft)


def test_toggle_adds_then_removes(db_session, message, bob) -> None:
    added = reactions.toggle(db_session, message["id"], bob.id, "👍")
    assert added["reacted"] is True
    assert added["count"] == 1
    assert added["users"] == [bob.id]
    assert added["chatId"] == message["chatId"]

    removed = reactions.toggle(db_session, message["id"], bob.id, "👍")
    assert removed["reacted"] is False
    assert removed["count"] == 0
    assert removed["reactions"] == []


def test_reactions_aggregate_per_emoji(db_session, message, alice, bob, dave) -> None:
    reactions.toggle(db_session, message["id"], bob.id, "👍")
    reactions.toggle(db_session, message["id"], dave.id, "👍")
    result = reactions.toggle(db_session, message["id"], alice.id, "🎉")

    assert result["reactions"] == [
        {"emoji": "👍", "count": 2, "users": [bob.id, dave.id]},
        {"emoji": "🎉", "count": 1, "users": [alice.id]},
    ]
    history = messages.get_history(db_session, message["chatId"])
    assert history[-1]["reactions"] == result["reactions"]


def test_outsider_cannot_react(db_session, message, make_user) -> None:
    outsider = make_user("Eve")
    with pytest.raises(Forbidden):
        reactions.toggle(db_session, message["id"], outsider.id, "👍")


def test_unknown_message_is_not_found(db_session, bob) -> None:
    with pytest.raises(NotFound):
        reactions.toggle(db_session, 404, bob.id, "👍")
