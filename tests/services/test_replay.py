"""Tests for the request replay cache."""

from __future__ import annotations

from unittest.mock import patch

from parley.services.replay import RequestReplayCache


def test_put_then_get_is_scoped_per_user() -> None:
    cache = RequestReplayCache(ttl_seconds=60)
    cache.put(1, "req-1", {"reacted": True})

    assert cache.get(1, "req-1") == {"reacted": True}
    assert cache.get(2, "req-1") is None
    assert cache.get(1, "req-2") is None


def test_entries_expire() -> None:
    with patch("parley.services.replay.time.monotonic", return_value=100.0) as clock:
        cache = RequestReplayCache(ttl_seconds=10)
        cache.put(1, "req", "result")

        clock.return_value = 105.0
        assert cache.get(1, "req") == "result"
        clock.return_value = 111.0
        assert cache.get(1, "req") is None


def test_zero_ttl_disables_cache() -> None:
    cache = RequestReplayCache(ttl_seconds=0)
    cache.put(1, "req", "result")
    assert cache.get(1, "req") is None


def test_discard_forgets_only_that_request() -> None:
    cache = RequestReplayCache(ttl_seconds=60)
    cache.put(1, "req-1", "first")
    cache.put(1, "req-2", "second")

    cache.discard(1, "req-1")
    cache.discard(1, "missing")

    assert cache.get(1, "req-1") is None
    assert cache.get(1, "req-2") == "second"
