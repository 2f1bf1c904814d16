"""Tests for presence tracking."""

from __future__ import annotations

import pytest

from parley.models import User
from parley.realtime.presence import STATUS_EVENT, mark_offline, mark_online


def test_mark_online_then_offline(db_session, alice) -> None:
    mark_online(db_session, alice.id, "sid-1")
    db_session.refresh(alice)
    assert alice.is_online is True
    assert alice.socket_id == "sid-1"

    assert mark_offline(db_session, "sid-1") == alice.id
    db_session.refresh(alice)
    assert alice.is_online is False
    assert alice.last_seen is not None


def test_unknown_handle_is_noop(db_session, alice) -> None:
    mark_online(db_session, alice.id, "sid-1")
    assert mark_offline(db_session, "sid-unknown") is None
    db_session.refresh(alice)
    assert alice.is_online is True


@pytest.mark.asyncio
async def test_replaced_handle_disconnect_keeps_user_online(gateway, fake_server, db_session, alice) -> None:
    await gateway.presence.login("sid-1", alice.id)
    await gateway.presence.login("sid-2", alice.id)

    assert fake_server.disconnected == ["sid-1"]
    assert await gateway.presence.disconnect("sid-1") is None

    db_session.expire_all()
    user = db_session.get(User, alice.id)
    assert user.is_online is True
    assert user.socket_id == "sid-2"
    offline = [e for e in fake_server.events(STATUS_EVENT) if e.data["isOnline"] is False]
    assert offline == []


@pytest.mark.asyncio
async def test_login_and_disconnect_announce_status(gateway, fake_server, db_session, alice) -> None:
    await gateway.presence.login("sid-1", alice.id)
    assert await gateway.presence.disconnect("sid-1") == alice.id

    statuses = fake_server.events(STATUS_EVENT)
    assert [e.data for e in statuses] == [
        {"userId": alice.id, "isOnline": True},
        {"userId": alice.id, "isOnline": False},
    ]
    assert all(e.skip_sid == "sid-1" for e in statuses)
    assert gateway.registry.lookup(alice.id) is None
