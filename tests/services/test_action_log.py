"""Tests for the admin action log."""

from __future__ import annotations

import pytest

from parley.schemas.message import parse_message_draft
from parley.services import action_log, groups, messages
from parley.services.errors import Forbidden


def test_admin_sees_all_entries_newest_first(db_session, group, alice, dave) -> None:
    groups.update_chat(db_session, group["id"], alice.id, name="Renamed")
    groups.remove_member(db_session, group["id"], dave.id, alice.id)

    entries = action_log.list_for_chat(db_session, group["id"], alice.id)

    assert [entry["actionType"] for entry in entries] == ["REMOVE_MEMBER", "UPDATE_INFO", "OTHER"]
    removal = entries[0]
    assert removal["userName"] == "Alice"
    assert removal["targetId"] == dave.id
    assert removal["targetName"] == "Dave"
    assert removal["timestamp"] is not None


def test_members_only_see_public_entries(db_session, group, alice, bob, dave) -> None:
    groups.update_chat(db_session, group["id"], alice.id, name="Renamed")
    groups.remove_member(db_session, group["id"], dave.id, alice.id)
    message = messages.send(
        db_session,
        parse_message_draft({"chatId": group["id"], "sender": {"id": bob.id}, "content": "x"}),
    )
    messages.delete(db_session, message["id"], group["id"], alice.id)

    entries = action_log.list_for_chat(db_session, group["id"], bob.id)

    assert [entry["actionType"] for entry in entries] == ["REMOVE_MEMBER"]


def test_outsider_cannot_read_chat_log(db_session, group, make_user) -> None:
    outsider = make_user("Eve")
    with pytest.raises(Forbidden):
        action_log.list_for_chat(db_session, group["id"], outsider.id)


def test_user_log_is_private(db_session, group, alice, bob) -> None:
    groups.promote(db_session, group["id"], bob.id, alice.id)

    own = action_log.list_for_user(db_session, alice.id, alice.id)
    assert [entry["actionType"] for entry in own] == ["CHANGE_ADMIN", "OTHER"]
    with pytest.raises(Forbidden):
        action_log.list_for_user(db_session, alice.id, bob.id)
