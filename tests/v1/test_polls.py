"""Tests for the poll endpoints."""

from __future__ import annotations


def test_create_vote_and_read_results(client, fake_server, group, alice_headers, bob_headers) -> None:
    created = client.post(
        "/api/v1/polls",
        json={"chatId": group["id"], "question": "Lunch?", "options": ["Pizza", "Sushi"]},
        headers=alice_headers,
    )
    assert created.status_code == 201
    poll = created.json()["poll"]
    assert fake_server.events("message:new")[0].data["type"] == "poll"

    sushi = poll["options"][1]["id"]
    voted = client.post(f"/api/v1/polls/{poll['pollId']}/vote", json={"optionId": sushi}, headers=bob_headers)
    assert voted.status_code == 200
    assert voted.json()["totalVotes"] == 1
    assert fake_server.events("poll:vote")[0].data["optionId"] == sushi

    results = client.get(f"/api/v1/polls/{poll['pollId']}", headers=alice_headers).json()
    assert [o["votes"] for o in results["options"]] == [0, 1]


def test_poll_with_one_option_is_rejected(client, group, alice_headers) -> None:
    response = client.post(
        "/api/v1/polls",
        json={"chatId": group["id"], "question": "Only?", "options": ["yes"]},
        headers=alice_headers,
    )
    assert response.status_code == 400


def test_unknown_poll_is_not_found(client, alice_headers) -> None:
    response = client.post("/api/v1/polls/999/vote", json={"optionId": 1}, headers=alice_headers)
    assert response.status_code == 404
