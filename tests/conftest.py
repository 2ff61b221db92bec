"""Test configuration and fixtures"""

from datetime import datetime
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api.deps import get_clock, get_dispatcher
from app.database import Base, get_db, get_session_factory
from app.main import app
from app.models.resource import Resource, ResourceKind
from app.models.user import StaffMembership, User, UserRole
from app.models.venue import Venue
from app.services.actors import Actor
from app.services.availability import AvailabilityEngine
from app.services.clock import FixedClock
from app.services.ledger import ReservationLedger
from app.services.notifications import render_template
from app.services.reconciliation import ReservationReconciler
from app.services.registry import ResourceRegistry
from app.services.scheduler import ExpirationScheduler

# Wednesday, noon venue-local
NOW = datetime(2025, 1, 1, 12, 0)

# Open every day but Sunday
OPEN_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
DAILY_HOURS = {day: {"open": "11:00", "close": "23:00"} for day in OPEN_DAYS}


class RecordingDispatcher:
    """Collects notifications instead of sending them"""

    def __init__(self):
        self.sent = []

    async def notify(self, owner_id, template_id, payload):
        render_template(template_id, payload)
        self.sent.append((owner_id, template_id, payload))

    @property
    def templates(self):
        return [template_id for _, template_id, _ in self.sent]


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database per test"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/lineup.db", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def registry(session_factory):
    return ResourceRegistry(session_factory)


@pytest.fixture
def ledger(session_factory, clock, registry):
    return ReservationLedger(session_factory, clock, registry=registry)


@pytest.fixture
def availability(session_factory, clock, ledger):
    return AvailabilityEngine(session_factory, clock, ledger=ledger)


@pytest.fixture
def scheduler(ledger, dispatcher, clock):
    return ExpirationScheduler(ledger, dispatcher, clock)


@pytest.fixture
def reconciler(ledger, clock):
    return ReservationReconciler(ledger, clock)


@pytest.fixture
def make_venue(session_factory):
    """Factory for venues with optional tables and lanes"""

    async def _make_venue(
        name="Test Venue",
        hours_json=None,
        policies_json=None,
        seating_capacity=None,
        tables=(),
        lanes=0,
        lane_capacity=6,
    ):
        venue = Venue(
            id=uuid4(),
            name=name,
            timezone="America/New_York",
            hours_json=DAILY_HOURS if hours_json is None else hours_json,
            policies_json=policies_json or {},
            seating_capacity=seating_capacity,
        )
        resources = []
        for number, capacity in enumerate(tables, start=1):
            resources.append(Resource(
                id=uuid4(),
                venue_id=venue.id,
                kind=ResourceKind.TABLE,
                label=f"Table {number}",
                number=number,
                capacity=capacity,
            ))
        for number in range(1, lanes + 1):
            resources.append(Resource(
                id=uuid4(),
                venue_id=venue.id,
                kind=ResourceKind.LANE,
                label=f"Lane {number}",
                number=number,
                capacity=lane_capacity,
            ))

        async with session_factory() as session:
            session.add(venue)
            await session.flush()
            session.add_all(resources)
            await session.commit()

        venue.test_resources = resources
        return venue

    return _make_venue


@pytest.fixture
async def venue(make_venue):
    """Open 11:00-23:00 Monday to Saturday with 16 covers and three lanes"""
    return await make_venue(tables=(2, 4, 4, 6), lanes=3)


@pytest.fixture
def tables(venue):
    return [r for r in venue.test_resources if r.kind == ResourceKind.TABLE]


@pytest.fixture
def lanes(venue):
    return [r for r in venue.test_resources if r.kind == ResourceKind.LANE]


@pytest.fixture
def diner():
    return Actor(user_id="diner-1")


@pytest.fixture
def other_diner():
    return Actor(user_id="diner-2")


@pytest.fixture
def staff(venue):
    return Actor(user_id="staff-1", staff_venue_ids=frozenset({venue.id}))


# Users and API clients


@pytest.fixture
def make_user(session_factory):
    async def _make_user(email, role=UserRole.DINER, venue=None, phone=None):
        user = User(
            id=uuid4(),
            email=email,
            full_name=email.split("@")[0].title(),
            phone=phone,
            role=role,
            is_active=True,
        )
        async with session_factory() as session:
            session.add(user)
            await session.flush()
            if venue is not None:
                session.add(StaffMembership(user_id=user.id, venue_id=venue.id, role="host"))
            await session.commit()
        return user

    return _make_user


@pytest.fixture
async def diner_user(make_user):
    return await make_user("diner@example.com", phone="+15551234567")


@pytest.fixture
async def staff_user(make_user, venue):
    return await make_user("host@example.com", role=UserRole.STAFF, venue=venue)


@pytest.fixture
async def admin_user(make_user):
    return await make_user("admin@example.com", role=UserRole.SUPER_ADMIN)


@pytest.fixture
async def client(session_factory, clock, dispatcher):
    """Create test client with overridden database, clock and dispatcher"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def auth_headers(user):
    from app.api.auth import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def diner_headers(diner_user):
    return auth_headers(diner_user)


@pytest.fixture
def staff_headers(staff_user):
    return auth_headers(staff_user)


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)
