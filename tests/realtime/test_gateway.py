"""Tests for socket event handling through the realtime gateway."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import select

from parley.core.security import create_access_token
from parley.models import ChatParticipant, MessageReaction
from parley.realtime.rooms import chat_room


async def _emit(fake_server, event, sid, data=None):
    await fake_server.handlers[event](sid, data)


def _errors(fake_server, sid):
    return [e.data["message"] for e in fake_server.events("error") if e.target == sid]


async def _login(fake_server, sid, user):
    await _emit(fake_server, "user:login", sid, {"id": user.id, "token": create_access_token(user.id)})


@pytest.mark.asyncio
async def test_handlers_are_registered(gateway, fake_server) -> None:
    for event in ("connect", "disconnect", "user:login", "message:send", "poll:vote"):
        assert event in fake_server.handlers


@pytest.mark.asyncio
async def test_login_joins_rooms_and_lists_chats(gateway, fake_server, group, dm, alice) -> None:
    await _login(fake_server, "sid-a", alice)

    listing = fake_server.events("chat:list")
    assert len(listing) == 1
    assert listing[0].target == "sid-a"
    assert {chat["id"] for chat in listing[0].data} == {group["id"], dm["id"]}
    assert "sid-a" in fake_server.rooms[chat_room(group["id"])]
    assert "sid-a" in fake_server.rooms[chat_room(dm["id"])]
    assert gateway.registry.lookup(alice.id) == "sid-a"


@pytest.mark.asyncio
async def test_login_without_id_is_rejected(gateway, fake_server) -> None:
    await _emit(fake_server, "user:login", "sid-a", {"name": "nobody"})
    assert _errors(fake_server, "sid-a") == ["Invalid user data"]


@pytest.mark.asyncio
async def test_login_with_mismatched_token_is_rejected(gateway, fake_server, alice, bob) -> None:
    await _emit(
        fake_server,
        "user:login",
        "sid-a",
        {"id": alice.id, "token": create_access_token(bob.id)},
    )
    assert _errors(fake_server, "sid-a") == ["Token does not match user"]
    assert gateway.registry.lookup(alice.id) is None


@pytest.mark.asyncio
async def test_login_without_token_is_rejected_by_default(gateway, fake_server, alice) -> None:
    await _emit(fake_server, "user:login", "sid-a", {"id": alice.id})

    assert _errors(fake_server, "sid-a") == ["Could not validate credentials"]
    assert gateway.registry.lookup(alice.id) is None
    assert fake_server.events("chat:list") == []


@pytest.mark.asyncio
async def test_login_by_bare_id_when_tokens_are_optional(gateway, fake_server, alice) -> None:
    with patch("parley.realtime.gateway.settings.socket_require_token", False):
        await _emit(fake_server, "user:login", "sid-a", {"id": alice.id})

    assert _errors(fake_server, "sid-a") == []
    assert gateway.registry.lookup(alice.id) == "sid-a"


@pytest.mark.asyncio
async def test_events_before_login_are_rejected(gateway, fake_server, group, alice) -> None:
    await _emit(
        fake_server,
        "message:send",
        "sid-x",
        {"chatId": group["id"], "sender": {"id": alice.id}, "content": "hi"},
    )
    assert _errors(fake_server, "sid-x") == ["Login required"]
    assert fake_server.events("message:new") == []


@pytest.mark.asyncio
async def test_send_broadcasts_to_chat_room(gateway, fake_server, group, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    await _emit(
        fake_server,
        "message:send",
        "sid-a",
        {"chatId": group["id"], "sender": {"id": alice.id}, "content": "hi"},
    )

    sent = fake_server.events("message:new")
    assert len(sent) == 1
    assert sent[0].target == chat_room(group["id"])
    assert sent[0].data["content"] == "hi"
    assert sent[0].data["id"] > 0


@pytest.mark.asyncio
async def test_send_on_behalf_of_other_user_is_forbidden(gateway, fake_server, group, alice, bob) -> None:
    await _login(fake_server, "sid-b", bob)
    await _emit(
        fake_server,
        "message:send",
        "sid-b",
        {"chatId": group["id"], "sender": {"id": alice.id}, "content": "spoof"},
    )
    assert _errors(fake_server, "sid-b") == ["Cannot send messages on behalf of another user"]


@pytest.mark.asyncio
async def test_invalid_payload_reports_error(gateway, fake_server, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    await _emit(fake_server, "message:delete", "sid-a", {"messageId": "abc"})
    assert _errors(fake_server, "sid-a") == ["Invalid payload"]


@pytest.mark.asyncio
async def test_unexpected_failure_uses_event_message(gateway, fake_server, group, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    with patch("parley.services.messages.send", side_effect=RuntimeError("boom")):
        await _emit(
            fake_server,
            "message:send",
            "sid-a",
            {"chatId": group["id"], "sender": {"id": alice.id}, "content": "hi"},
        )
    assert _errors(fake_server, "sid-a") == ["Failed to send message"]


@pytest.mark.asyncio
async def test_reaction_request_id_is_applied_once(gateway, fake_server, db_session, group, alice, bob) -> None:
    await _login(fake_server, "sid-a", alice)
    await _login(fake_server, "sid-b", bob)
    await _emit(
        fake_server,
        "message:send",
        "sid-a",
        {"chatId": group["id"], "sender": {"id": alice.id}, "content": "react"},
    )
    message_id = fake_server.events("message:new")[0].data["id"]

    payload = {"messageId": message_id, "emoji": "👍", "requestId": "r-1"}
    await _emit(fake_server, "message:reaction", "sid-b", payload)
    await _emit(fake_server, "message:reaction", "sid-b", payload)

    db_session.expire_all()
    rows = db_session.scalars(select(MessageReaction)).all()
    assert len(rows) == 1
    broadcasts = fake_server.events("message:reaction")
    assert len(broadcasts) == 2
    assert all(e.data["reacted"] is True for e in broadcasts)


@pytest.mark.asyncio
async def test_concurrent_repeats_of_a_reaction_request_apply_once(
    gateway, fake_server, db_session, group, alice, bob
) -> None:
    await _login(fake_server, "sid-a", alice)
    await _login(fake_server, "sid-b", bob)
    await _emit(
        fake_server,
        "message:send",
        "sid-a",
        {"chatId": group["id"], "sender": {"id": alice.id}, "content": "react"},
    )
    message_id = fake_server.events("message:new")[0].data["id"]

    payload = {"messageId": message_id, "emoji": "🎉", "requestId": "r-2"}
    await asyncio.gather(
        _emit(fake_server, "message:reaction", "sid-b", payload),
        _emit(fake_server, "message:reaction", "sid-b", payload),
    )

    db_session.expire_all()
    assert len(db_session.scalars(select(MessageReaction)).all()) == 1
    broadcasts = fake_server.events("message:reaction")
    assert len(broadcasts) == 2
    assert all(e.data["reacted"] is True for e in broadcasts)
    assert _errors(fake_server, "sid-b") == []


@pytest.mark.asyncio
async def test_failed_reaction_request_can_be_retried(gateway, fake_server, group, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    payload = {"messageId": 999999, "emoji": "👍", "requestId": "r-3"}

    await _emit(fake_server, "message:reaction", "sid-a", payload)

    assert _errors(fake_server, "sid-a") == ["Message not found"]
    assert gateway.reaction_requests.get(alice.id, "r-3") is None


@pytest.mark.asyncio
async def test_history_accepts_bare_id_or_page_request(gateway, fake_server, group, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    for content in ("one", "two", "three"):
        await _emit(
            fake_server,
            "message:send",
            "sid-a",
            {"chatId": group["id"], "sender": {"id": alice.id}, "content": content},
        )
    newest_id = fake_server.events("message:new")[-1].data["id"]

    await _emit(fake_server, "message:history", "sid-a", group["id"])
    await _emit(
        fake_server,
        "message:history",
        "sid-a",
        {"chatId": group["id"], "before": newest_id, "limit": 1},
    )

    full, page = (e.data for e in fake_server.events("message:history"))
    assert [m["content"] for m in full] == ["one", "two", "three"]
    assert [m["content"] for m in page] == ["two"]


@pytest.mark.asyncio
async def test_leave_promotes_and_announces(gateway, fake_server, db_session, group, alice, bob) -> None:
    await _login(fake_server, "sid-a", alice)
    await _login(fake_server, "sid-b", bob)

    await _emit(fake_server, "chat:leave", "sid-a", group["id"])

    left = fake_server.events("chat:left")
    assert left[0].target == f"user:{alice.id}"
    assert left[0].data["promotedUserId"] == bob.id
    assert "sid-a" not in fake_server.rooms[chat_room(group["id"])]
    system = [e.data["content"] for e in fake_server.events("message:new")]
    assert system == ["Bob foi promovido a administrador do grupo", "Alice saiu do grupo"]
    updated = fake_server.events("chat:updated")[-1].data
    assert [p["id"] for p in updated["participants"] if p["isAdmin"]] == [bob.id]


@pytest.mark.asyncio
async def test_create_group_notifies_online_participants(gateway, fake_server, alice, bob, dave) -> None:
    await _login(fake_server, "sid-a", alice)
    await _login(fake_server, "sid-b", bob)

    await _emit(
        fake_server,
        "chat:create",
        "sid-a",
        {"isGroup": True, "participants": [bob.id, dave.id], "name": "Crew"},
    )

    created = fake_server.events("chat:new")
    assert {e.target for e in created} == {f"user:{alice.id}", f"user:{bob.id}", f"user:{dave.id}"}
    chat_id = created[0].data["id"]
    assert fake_server.rooms[chat_room(chat_id)] == {"sid-a", "sid-b"}


@pytest.mark.asyncio
async def test_add_members_joins_new_member(gateway, fake_server, db_session, group, alice, make_user) -> None:
    eve = make_user("Eve")
    await _login(fake_server, "sid-a", alice)
    await _login(fake_server, "sid-e", eve)

    await _emit(fake_server, "chat:addMembers", "sid-a", {"chatId": group["id"], "userIds": [eve.id]})

    assert "sid-e" in fake_server.rooms[chat_room(group["id"])]
    added = fake_server.events("chat:membersAdded")[0].data
    assert added["userIds"] == [eve.id]
    db_session.expire_all()
    member = db_session.scalars(
        select(ChatParticipant).where(
            ChatParticipant.chat_id == group["id"], ChatParticipant.user_id == eve.id
        )
    ).one()
    assert member.is_admin is False


@pytest.mark.asyncio
async def test_poll_vote_broadcasts_results(gateway, fake_server, db_session, group, alice, bob) -> None:
    from parley.services import polls

    created = polls.create_poll(db_session, group["id"], alice.id, "Lunch?", ["Pizza", "Sushi"])
    poll_id = created["poll"]["pollId"]
    option_id = created["poll"]["options"][0]["id"]
    await _login(fake_server, "sid-b", bob)

    await _emit(fake_server, "poll:vote", "sid-b", {"pollId": poll_id, "optionId": option_id})

    vote = fake_server.events("poll:vote")[0]
    assert vote.target == chat_room(group["id"])
    assert vote.data["userId"] == bob.id
    assert vote.data["results"]["totalVotes"] == 1


@pytest.mark.asyncio
async def test_disconnect_marks_offline(gateway, fake_server, alice) -> None:
    await _login(fake_server, "sid-a", alice)
    await fake_server.handlers["disconnect"]("sid-a")

    statuses = [e.data for e in fake_server.events("user:status")]
    assert statuses[-1] == {"userId": alice.id, "isOnline": False}
    assert gateway.registry.lookup(alice.id) is None
