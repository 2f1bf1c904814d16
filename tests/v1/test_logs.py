"""Tests for the action log endpoints."""

from __future__ import annotations


def test_chat_log_visibility(client, group, dave, alice, alice_headers, bob_headers) -> None:
    client.put(f"/api/v1/chats/{group['id']}", json={"name": "Renamed"}, headers=alice_headers)
    client.delete(f"/api/v1/chats/{group['id']}/members/{dave.id}", headers=alice_headers)

    admin_view = client.get(f"/api/v1/logs/chat/{group['id']}", headers=alice_headers).json()
    member_view = client.get(f"/api/v1/logs/chat/{group['id']}", headers=bob_headers).json()

    assert [e["actionType"] for e in admin_view] == ["REMOVE_MEMBER", "UPDATE_INFO", "OTHER"]
    assert [e["actionType"] for e in member_view] == ["REMOVE_MEMBER"]


def test_user_log_is_private(client, group, alice, alice_headers, bob_headers) -> None:
    own = client.get(f"/api/v1/logs/user/{alice.id}", headers=alice_headers)
    assert own.status_code == 200
    assert own.json()[0]["actionType"] == "OTHER"

    other = client.get(f"/api/v1/logs/user/{alice.id}", headers=bob_headers)
    assert other.status_code == 403
