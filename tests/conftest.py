# tests/conftest.py
from __future__ import annotations

import os
from collections import defaultdict
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass
from typing import Any

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from parley.core.security import create_access_token, hash_password
from parley.db.session import Base
from parley.db.session import get_db as app_get_session
from parley.main import app as fastapi_app
from parley.models import User
from parley.realtime.gateway import RealtimeGateway
from parley.services import groups

TEST_DB_URL = "sqlite://"
TEST_PASSWORD = "secret123"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@dataclass
class Emission:
    event: str
    data: Any
    target: str | None
    skip_sid: str | None


class FakeSocketServer:
    """Records what the gateway asks the socket server to do."""

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.emitted: list[Emission] = []
        self.rooms: dict[str, set[str]] = defaultdict(set)
        self.disconnected: list[str] = []

    def on(self, event: str, handler: Callable[..., Any] | None = None, namespace: str | None = None):
        self.handlers[event] = handler
        return handler

    async def emit(
        self,
        event: str,
        data: Any = None,
        to: str | None = None,
        room: str | None = None,
        skip_sid: str | None = None,
        namespace: str | None = None,
    ) -> None:
        self.emitted.append(Emission(event, data, to or room, skip_sid))

    async def enter_room(self, sid: str, room: str, namespace: str | None = None) -> None:
        self.rooms[room].add(sid)

    async def leave_room(self, sid: str, room: str, namespace: str | None = None) -> None:
        self.rooms[room].discard(sid)

    async def disconnect(self, sid: str, namespace: str | None = None) -> None:
        self.disconnected.append(sid)

    def events(self, name: str) -> list[Emission]:
        return [emission for emission in self.emitted if emission.event == name]


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_server() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture()
def gateway(fake_server: FakeSocketServer, session_factory: sessionmaker) -> RealtimeGateway:
    return RealtimeGateway(fake_server, session_factory)


@pytest.fixture()
def app(gateway: RealtimeGateway, db_session: Session) -> Iterator[FastAPI]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    previous_gateway = fastapi_app.state.gateway
    fastapi_app.state.gateway = gateway
    fastapi_app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(app_get_session, None)
        fastapi_app.state.gateway = previous_gateway


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app, base_url="http://test")


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users with the shared test password."""

    def _make_user(name: str, email: str | None = None) -> User:
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            password_hash=_PASSWORD_HASH,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def alice(make_user: Callable[..., User]) -> User:
    return make_user("Alice")


@pytest.fixture()
def bob(make_user: Callable[..., User]) -> User:
    return make_user("Bob")


@pytest.fixture()
def dave(make_user: Callable[..., User]) -> User:
    return make_user("Dave")


@pytest.fixture()
def group(db_session: Session, alice: User, bob: User, dave: User) -> dict[str, Any]:
    """A group created by Alice (admin) with Bob and Dave, joined in that order."""
    creation = groups.create_chat(db_session, True, [bob.id, dave.id], alice.id, name="Team")
    return creation.chat


@pytest.fixture()
def dm(db_session: Session, alice: User, bob: User) -> dict[str, Any]:
    return groups.create_chat(db_session, False, [alice.id, bob.id], alice.id).chat


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def alice_headers(alice: User) -> dict[str, str]:
    return auth_headers(alice)


@pytest.fixture()
def bob_headers(bob: User) -> dict[str, str]:
    return auth_headers(bob)
