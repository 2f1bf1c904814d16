"""Tests for password hashing and access tokens."""

from __future__ import annotations

import pytest

from parley.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_password_round_trip() -> None:
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_against_garbage_hash_is_false() -> None:
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_token_carries_user_id() -> None:
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_token_is_rejected() -> None:
    token = create_access_token(42, expires_minutes=-1)
    with pytest.raises(ValueError):
        decode_access_token(token)


def test_tampered_token_is_rejected() -> None:
    token = create_access_token(42)
    with pytest.raises(ValueError):
        decode_access_token(token[:-2] + ("aa" if not token.endswith("aa") else "bb"))
