"""
HostelSync transport - test configuration and fixtures

Tests run without external services: a SQLite file stands in for
PostgreSQL, fakeredis for Redis, and OpenObserve events are recorded
in memory.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hostelsync.api import booking, route, schedule, vehicle
from hostelsync.src import ledger, openobserve, redis
from hostelsync.src.db import (
    Account,
    AccountToken,
    ORMbase,
    Route,
    Schedule,
    Vehicle,
)
from hostelsync.src.enums import AccountStatus, Day, Role

# Bookings in the tests fall on the fridays of March 2024
TODAY = date(2024, 2, 20)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'transport.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    ORMbase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    for module in (booking, route, schedule, vehicle):
        monkeypatch.setattr(module, "sessionMaker", factory)
    return factory


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    monkeypatch.setattr(redis, "redisClient", client)
    return client


@pytest.fixture(autouse=True)
def events(monkeypatch):
    recorded = []
    monkeypatch.setattr(openobserve, "logEvent", recorded.append)
    return recorded


@pytest.fixture(autouse=True)
def today(monkeypatch):
    monkeypatch.setattr(ledger, "currentDate", lambda: TODAY)
    return TODAY


def makeAccount(session, name: str, role: Role, status=AccountStatus.ACTIVE) -> Account:
    account = Account(
        name=name,
        email_id=f"{name}@hostelsync.com",
        role=role,
        status=status,
    )
    session.add(account)
    session.flush()
    token = AccountToken(
        account_id=account.id,
        expires_in=3600,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    session.add(token)
    session.commit()
    account.header = {"Authorization": f"Bearer {token.access_token}"}
    return account


@pytest.fixture
def admin(session):
    return makeAccount(session, "admin", Role.ADMIN)


@pytest.fixture
def warden(session):
    return makeAccount(session, "warden", Role.WARDEN)


@pytest.fixture
def student(session):
    return makeAccount(session, "student", Role.STUDENT)


@pytest.fixture
def other_student(session):
    return makeAccount(session, "other", Role.STUDENT)


@pytest.fixture
def riders(session):
    """Factory for any number of student accounts."""

    def make(count: int):
        return [makeAccount(session, f"rider{i}", Role.STUDENT) for i in range(count)]

    return make


@pytest.fixture
def campus_route(session):
    campusRoute = Route(
        name="Campus Loop",
        start_point="Hostel gate",
        end_point="Main campus",
        stops=["Library", "Canteen"],
    )
    session.add(campusRoute)
    session.commit()
    return campusRoute


@pytest.fixture
def bus(session):
    bus = Vehicle(type="Bus", number="KL01AB1234", capacity=40)
    session.add(bus)
    session.commit()
    return bus


@pytest.fixture
def friday_schedule(session, campus_route, bus):
    """Friday schedule valid through March 2024 with 5 seats."""
    fridaySchedule = Schedule(
        route_id=campus_route.id,
        vehicle_id=bus.id,
        day=Day.FRIDAY,
        start_time=time(8, 0),
        end_time=time(9, 0),
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        max_capacity=5,
        price=Decimal("25.00"),
    )
    session.add(fridaySchedule)
    session.commit()
    return fridaySchedule


@pytest.fixture
def client(session_factory):
    from hostelsync.main import app

    with TestClient(app) as client:
        yield client
