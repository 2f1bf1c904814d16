"""Tests for registration and login."""

from __future__ import annotations

from tests.conftest import TEST_PASSWORD


def test_register_creates_user(client) -> None:
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Carol", "email": "Carol@Example.com", "password": "hunter22"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["userId"] > 0
    assert body["message"] == "User registered"


def test_register_duplicate_email_conflicts(client, alice) -> None:
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Other", "email": alice.email, "password": "hunter22"},
    )
    assert response.status_code == 409


def test_register_rejects_short_password(client) -> None:
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "Carol", "email": "carol@example.com", "password": "123"},
    )
    assert response.status_code == 422


def test_login_returns_token_and_profile(client, alice) -> None:
    response = client.post(
        "/api/v1/auth/login",
        json={"email": alice.email, "password": TEST_PASSWORD},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == alice.id

    me = client.get(
        "/api/v1/users",
        headers={"Authorization": f"Bearer {body['access_token']}"},
    )
    assert me.status_code == 200


def test_login_with_wrong_password_is_rejected(client, alice) -> None:
    response = client.post(
        "/api/v1/auth/login",
        json={"email": alice.email, "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_protected_route_requires_token(client) -> None:
    assert client.get("/api/v1/chats").status_code in (401, 403)
    bad = client.get("/api/v1/chats", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
