"""Tests for the message endpoints."""

from __future__ import annotations

import pytest

from parley.schemas.message import parse_message_draft
from parley.services import messages


@pytest.fixture()
def sent(db_session, group, alice, bob):
    result = []
    for sender, content in ((alice, "Lunch at noon"), (bob, "lunch sounds good"), (bob, "see you")):
        draft = parse_message_draft(
            {"chatId": group["id"], "sender": {"id": sender.id}, "content": content}
        )
        result.append(messages.send(db_session, draft))
    return result


def test_search_by_text_and_sender(client, group, bob, sent, alice_headers) -> None:
    response = client.get(
        "/api/v1/messages/search",
        params={"chatId": group["id"], "query": "lunch"},
        headers=alice_headers,
    )
    assert response.status_code == 200
    assert [m["content"] for m in response.json()] == ["lunch sounds good", "Lunch at noon"]

    by_sender = client.get(
        "/api/v1/messages/search",
        params={"chatId": group["id"], "senderId": bob.id, "type": "text"},
        headers=alice_headers,
    )
    assert len(by_sender.json()) == 2


def test_search_requires_chat_id(client, alice_headers) -> None:
    response = client.get("/api/v1/messages/search", headers=alice_headers)
    assert response.status_code == 422


def test_pin_broadcasts(client, fake_server, group, sent, alice_headers) -> None:
    response = client.post(
        f"/api/v1/messages/{sent[0]['id']}/pin",
        json={"pin": True},
        headers=alice_headers,
    )

    assert response.status_code == 200
    assert response.json()["changed"] is True
    pinned = fake_server.events("message:pinned")[0]
    assert pinned.target == f"chat:{group['id']}"
    assert pinned.data["isPinned"] is True


def test_member_cannot_pin(client, sent, bob_headers) -> None:
    response = client.post(
        f"/api/v1/messages/{sent[0]['id']}/pin",
        json={"pin": True},
        headers=bob_headers,
    )
    assert response.status_code == 403


def test_delete_own_message(client, fake_server, group, sent, bob_headers) -> None:
    response = client.delete(
        f"/api/v1/messages/{sent[1]['id']}",
        params={"chatId": group["id"]},
        headers=bob_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"messageId": sent[1]["id"], "chatId": group["id"]}
    assert fake_server.events("message:deleted")[0].data == response.json()


def test_delete_others_message_is_unauthorized(client, group, sent, bob_headers) -> None:
    response = client.delete(
        f"/api/v1/messages/{sent[0]['id']}",
        params={"chatId": group["id"]},
        headers=bob_headers,
    )
    assert response.status_code == 401


def test_delete_unknown_message_is_not_found(client, group, alice_headers) -> None:
    response = client.delete(
        "/api/v1/messages/9999",
        params={"chatId": group["id"]},
        headers=alice_headers,
    )
    assert response.status_code == 404
