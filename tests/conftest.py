"""
Pytest fixtures for nodeplane tests.

Everything runs against in-memory SQLite shared through a StaticPool, so the
TestClient's worker thread and the test body see the same database. A
ticking clock makes command creation order deterministic.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from nodeplane.auth import HOST, USER, Principal, TokenCodec
from nodeplane.db.base import Base
from nodeplane.db.session import Database, get_db
from nodeplane.main import create_app
from nodeplane.models.host import Blockchain, Host
from nodeplane.models.node import Node
from nodeplane.services.commands import Commands
from nodeplane.services.notifier import Outbox
from nodeplane.settings import Settings

TEST_SECRET = "test-secret-5f0c2b7e9a4d4c1e8b3a"


def _sqlite_now():
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


def _setup_sqlite_now(dbapi_conn, connection_record):
    dbapi_conn.create_function("NOW", 0, _sqlite_now)


class TickingClock:
    """Advances by ``step`` on every read; a zero step freezes it."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def now(self) -> datetime:
        self.current = self.current + self.step
        return self.current


class RecordingPublisher:
    def __init__(self):
        self.messages: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        self.messages.append((topic, message))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.messages]


@pytest.fixture
def database() -> Generator[Database, None, None]:
    db = Database(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(db.engine, "connect", _setup_sqlite_now)
    Base.metadata.create_all(db.engine)
    yield db
    db.dispose()


@pytest.fixture
def sync_db_session(database) -> Generator[Session, None, None]:
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def frozen_clock() -> TickingClock:
    return TickingClock(step=timedelta(0))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def commands(sync_db_session, clock, publisher) -> Commands:
    return Commands(sync_db_session, clock=clock, outbox=Outbox(publisher))


@pytest.fixture
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def other_org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def blockchain(sync_db_session) -> Blockchain:
    chain = Blockchain(name="ethereum")
    sync_db_session.add(chain)
    sync_db_session.commit()
    return chain


@pytest.fixture
def host(sync_db_session, org_id) -> Host:
    h = Host(name="host-1", org_id=org_id)
    sync_db_session.add(h)
    sync_db_session.commit()
    return h


@pytest.fixture
def other_host(sync_db_session, other_org_id) -> Host:
    h = Host(name="host-2", org_id=other_org_id)
    sync_db_session.add(h)
    sync_db_session.commit()
    return h


@pytest.fixture
def make_node(sync_db_session, blockchain, host, org_id) -> Callable[..., Node]:
    def _make(**overrides: Any) -> Node:
        fields: dict[str, Any] = {
            "name": f"node-{uuid.uuid4().hex[:8]}",
            "org_id": org_id,
            "host_id": host.id,
            "blockchain_id": blockchain.id,
            "node_type": "validator",
            "version": "1.2.3",
            "allow_ips": ["10.0.0.0/24"],
            "deny_ips": ["192.168.1.7/32"],
        }
        fields.update(overrides)
        node = Node(**fields)
        sync_db_session.add(node)
        sync_db_session.commit()
        return node

    return _make


@pytest.fixture
def node(make_node) -> Node:
    return make_node(name="node-1")


@pytest.fixture
def host_principal(host) -> Principal:
    return Principal(kind=HOST, host_id=host.id)


@pytest.fixture
def other_host_principal(other_host) -> Principal:
    return Principal(kind=HOST, host_id=other_host.id)


@pytest.fixture
def user_principal(org_id) -> Principal:
    return Principal(kind=USER, user_id=uuid.uuid4(), org_id=org_id)


@pytest.fixture
def other_user_principal(other_org_id) -> Principal:
    return Principal(kind=USER, user_id=uuid.uuid4(), org_id=other_org_id)


@pytest.fixture
def codec_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def codec(codec_secret) -> TokenCodec:
    return TokenCodec(codec_secret, 3600)


@pytest.fixture
def auth_headers(codec) -> Callable[[Principal], dict[str, str]]:
    def _headers(principal: Principal) -> dict[str, str]:
        return {"Authorization": f"Bearer {codec.issue(principal)}"}

    return _headers


@pytest.fixture
def app(database, sync_db_session, clock, publisher):
    settings = Settings(secret_key=TEST_SECRET, database_url="sqlite://", token_max_age_seconds=3600)
    application = create_app(settings, database=database, clock=clock, publisher=publisher)

    def override_get_db():
        yield sync_db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def sync_client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
