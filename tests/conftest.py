"""Shared test fixtures."""

from collections.abc import Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import beaconhub.database as db_module
from beaconhub.database import get_session
from beaconhub.events.broker import Broker, Topic, get_broker
from beaconhub.main import app
from beaconhub.presence.models import LocationReport


class RecordingSink:
    """EventSink that remembers what was published."""

    def __init__(self) -> None:
        self.topics: list[Topic] = []

    def publish(self, topic: Topic) -> int:
        self.topics.append(topic)
        return 0


def _insert_report(
    session: Session,
    nickname: str,
    created_at: datetime,
    uuid: str = "",
    major: str = "",
    minor: str = "",
) -> LocationReport:
    """Insert a report with an explicit server timestamp."""
    report = LocationReport(
        nickname=nickname,
        beacon_uuid=uuid,
        beacon_major=major,
        beacon_minor=minor,
        created_at=created_at,
    )
    session.add(report)
    session.commit()
    session.refresh(report)
    return report


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created.

    StaticPool ensures every session uses the same connection,
    so the in-memory database is shared across the test.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def add_report(session):
    """Insert reports with explicit server timestamps into the test session."""

    def _add(nickname: str, created_at: datetime, *triple: str) -> LocationReport:
        return _insert_report(session, nickname, created_at, *triple)

    return _add


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def broker() -> Broker:
    return Broker(queue_size=100)


@pytest.fixture
def client(engine, broker) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with overridden DB engine, session and broker."""
    # Patch the module-level engine so lifespan's init_db() and the
    # beacon seed both use the test engine.
    original_engine = db_module.engine
    db_module.engine = engine

    def _override_session() -> Generator[Session, None, None]:
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_broker] = lambda: broker
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    db_module.engine = original_engine
