"""Interleaved membership changes against a file-backed SQLite database."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from parley.db.session import Base
from parley.models import ChatParticipant, User
from parley.services import groups
from parley.services.access import lock_participants


@pytest.fixture()
def file_session_factory(tmp_path) -> Iterator[sessionmaker]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'parley.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    finally:
        engine.dispose()


def _seed_group(factory: sessionmaker) -> tuple[int, int, int, int]:
    with factory() as db:
        users = [
            User(name=name, email=f"{name.lower()}@example.com", password_hash="x")
            for name in ("Ana", "Beto", "Duda")
        ]
        db.add_all(users)
        db.commit()
        ana, beto, duda = (user.id for user in users)
        chat_id = groups.create_chat(db, True, [beto, duda], ana, name="Team").chat["id"]
        groups.promote(db, chat_id, beto, ana)
    return chat_id, ana, beto, duda


def test_two_admins_leaving_together_leave_an_admin_behind(file_session_factory) -> None:
    chat_id, ana, beto, duda = _seed_group(file_session_factory)
    first_read = threading.Event()
    second_done = threading.Event()
    errors: list[Exception] = []

    def slow_first_read(db, locked_chat_id):
        members = lock_participants(db, locked_chat_id)
        if not first_read.is_set():
            first_read.set()
            # Hold the first transaction open while the second leave runs.
            second_done.wait(timeout=1)
        return members

    def leave(user_id: int, wait_for: threading.Event | None, done: threading.Event | None) -> None:
        try:
            if wait_for is not None:
                wait_for.wait(timeout=5)
            with file_session_factory() as db:
                groups.remove_member(db, chat_id, user_id, user_id)
        except Exception as exc:
            errors.append(exc)
        finally:
            if done is not None:
                done.set()

    with patch("parley.services.groups.lock_participants", side_effect=slow_first_read):
        first = threading.Thread(target=leave, args=(ana, None, None))
        second = threading.Thread(target=leave, args=(beto, first_read, second_done))
        first.start()
        second.start()
        first.join(timeout=15)
        second.join(timeout=15)

    assert errors == []
    with file_session_factory() as db:
        remaining = list(
            db.scalars(select(ChatParticipant).where(ChatParticipant.chat_id == chat_id))
        )
    assert [member.user_id for member in remaining] == [duda]
    assert remaining[0].is_admin is True
