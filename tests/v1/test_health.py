"""Tests for the service endpoints."""

from __future__ import annotations


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_describes_api(client) -> None:
    body = client.get("/").json()
    assert body["socket"] == "/socket.io"
    assert body["docs"] == "/docs"


def test_duplicate_tag_conflicts(client, alice_headers) -> None:
    assert client.post("/api/v1/tags", json={"name": "ops"}, headers=alice_headers).status_code == 201
    assert client.post("/api/v1/tags", json={"name": "ops"}, headers=alice_headers).status_code == 409
    listed = client.get("/api/v1/tags", headers=alice_headers).json()
    assert [tag["name"] for tag in listed] == ["ops"]
