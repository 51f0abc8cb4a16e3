"""
Pytest fixtures for the test database, HTTP client, authentication and the
in-memory doubles used by the booking service tests.

API tests run against an in-memory SQLite database (aiosqlite) created fresh
for every test. Set TEST_DATABASE_URL to run them against PostgreSQL instead.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")

from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from itertools import count
from types import SimpleNamespace
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from studio_booking.main import app
from studio_booking.db.base import Base
from studio_booking.db.session import get_db
from studio_booking.core.security import create_access_token, hash_password
from studio_booking.models import Equipment, Room, Staff, Studio, User
from studio_booking.services.booking_rules import (
    ROOM, EQUIPMENT, STAFF, CANCELLED, Actor, TimeWindow,
)
from studio_booking.services.booking_service import BookingService
from studio_booking.services.interfaces import (
    BookingFilter, BookingStore, Directory, Notifier, StaleBooking, StoreConflict,
)

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Monday 2030-01-07, far enough ahead to never be "in the past"
BASE_DAY = datetime(2030, 1, 7, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: int = 0) -> datetime:
    return BASE_DAY + timedelta(days=day, hours=hour, minutes=minute)


def iso(hour: int, minute: int = 0, day: int = 0) -> str:
    return at(hour, minute, day).isoformat()


# --- Database and HTTP client ----------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Persisted users and studio --------------------------------------------


async def _add(db_session: AsyncSession, obj):
    db_session.add(obj)
    await db_session.commit()
    await db_session.refresh(obj)
    return obj


def _user(name: str, email: str, user_type: str) -> User:
    return User(
        name=name,
        email=email,
        user_type=user_type,
        hashed_password=hash_password("testpassword123"),
    )


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await _add(db_session, _user("Olivia Owner", "owner@example.com", "studio_owner"))


@pytest_asyncio.fixture
async def musician(db_session: AsyncSession) -> User:
    return await _add(db_session, _user("Miles Musician", "miles@example.com", "musician"))


@pytest_asyncio.fixture
async def other_musician(db_session: AsyncSession) -> User:
    return await _add(db_session, _user("Nina Other", "nina@example.com", "musician"))


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    return await _add(db_session, _user("Sam Engineer", "sam@example.com", "staff"))


@pytest_asyncio.fixture
async def studio(db_session: AsyncSession, owner: User) -> Studio:
    return await _add(db_session, Studio(owner_id=owner.id, name="Blue Room Studios", address="1 Main St"))


@pytest_asyncio.fixture
async def room(db_session: AsyncSession, studio: Studio) -> Room:
    return await _add(db_session, Room(studio_id=studio.id, name="Room A", hourly_rate=Decimal("50.00")))


@pytest_asyncio.fixture
async def equipment(db_session: AsyncSession, studio: Studio) -> Equipment:
    return await _add(db_session, Equipment(studio_id=studio.id, name="Neumann U87", category="microphone"))


@pytest_asyncio.fixture
async def staff_member(db_session: AsyncSession, studio: Studio, staff_user: User) -> Staff:
    return await _add(db_session, Staff(studio_id=studio.id, user_id=staff_user.id, role="engineer"))


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def owner_headers(owner: User) -> dict:
    return _headers(owner)


@pytest.fixture
def musician_headers(musician: User) -> dict:
    return _headers(musician)


@pytest.fixture
def other_musician_headers(other_musician: User) -> dict:
    return _headers(other_musician)


@pytest.fixture
def staff_headers(staff_user: User, staff_member: Staff) -> dict:
    return _headers(staff_user)


# --- In-memory doubles for the booking service ------------------------------


class FakeDirectory(Directory):
    """
    Studio 1 (owner user 1) has rooms 10 (50.00/h), 11 (37.50/h) and the
    inactive room 12, equipment 100 and the unavailable 101, and staff 200
    (user 4). Studio 2 (owner user 6) employs staff 201 (user 5).
    """

    def __init__(self):
        studio_1 = SimpleNamespace(id=1, owner_id=1, name="Blue Room Studios")
        studio_2 = SimpleNamespace(id=2, owner_id=6, name="Red Door Studios")
        self.studios = {1: studio_1, 2: studio_2}
        self.rooms = {
            10: SimpleNamespace(id=10, studio_id=1, studio=studio_1, name="Room A",
                                hourly_rate=Decimal("50.00"), is_active=True),
            11: SimpleNamespace(id=11, studio_id=1, studio=studio_1, name="Room B",
                                hourly_rate=Decimal("37.50"), is_active=True),
            12: SimpleNamespace(id=12, studio_id=1, studio=studio_1, name="Closed Room",
                                hourly_rate=Decimal("20.00"), is_active=False),
        }
        self.equipment = {
            100: SimpleNamespace(id=100, studio_id=1, name="Neumann U87", is_available=True),
            101: SimpleNamespace(id=101, studio_id=1, name="Broken Amp", is_available=False),
        }
        self.staff = {
            200: SimpleNamespace(id=200, user_id=4, studio_id=1, name="Sam Engineer"),
            201: SimpleNamespace(id=201, user_id=5, studio_id=2, name="Rita Producer"),
        }
        self.users = {
            1: SimpleNamespace(id=1, email="owner@example.com"),
            2: SimpleNamespace(id=2, email="miles@example.com"),
            3: SimpleNamespace(id=3, email="nina@example.com"),
            4: SimpleNamespace(id=4, email="sam@example.com"),
            5: SimpleNamespace(id=5, email="rita@example.com"),
            6: SimpleNamespace(id=6, email="other-owner@example.com"),
        }

    async def get_room(self, room_id):
        return self.rooms.get(room_id)

    async def get_studio(self, studio_id):
        return self.studios.get(studio_id)

    async def get_equipment(self, equipment_ids):
        return [self.equipment[i] for i in equipment_ids if i in self.equipment]

    async def get_staff(self, staff_ids):
        return [self.staff[i] for i in staff_ids if i in self.staff]

    async def get_staff_membership(self, user_id):
        for member in self.staff.values():
            if member.user_id == user_id:
                return member.studio_id
        return None

    async def get_user(self, user_id):
        return self.users.get(user_id)


class FakeBookingStore(BookingStore):

    def __init__(self):
        self.bookings: dict[int, SimpleNamespace] = {}
        self.exclusive_calls = 0
        self.reject_next_write = False
        self.reject_next_read = False
        # status another request writes between our read and our write
        self.concurrent_status: Optional[str] = None
        self._ids = count(1)

    async def begin_exclusive(self):
        self.exclusive_calls += 1

    async def find_overlapping(self, kind, resource_id, window: TimeWindow, exclude_id=None):
        if self.reject_next_read:
            self.reject_next_read = False
            raise StoreConflict("could not serialize access due to read/write dependencies")
        found = []
        for booking in self.bookings.values():
            if booking.status == CANCELLED or booking.id == exclude_id:
                continue
            held = {
                ROOM: [booking.room_id],
                EQUIPMENT: booking.equipment_ids,
                STAFF: booking.staff_ids,
            }[kind]
            if resource_id in held and window.overlaps(TimeWindow(booking.start_time, booking.end_time)):
                found.append(booking)
        return found

    def _check_rejection(self):
        if self.reject_next_write:
            self.reject_next_write = False
            raise StoreConflict("could not serialize access")

    async def insert_booking(self, draft):
        self._check_rejection()
        booking = SimpleNamespace(
            id=next(self._ids),
            room_id=draft.room_id,
            client_id=draft.client_id,
            start_time=draft.window.start,
            end_time=draft.window.end,
            status=draft.status,
            total_amount=draft.total_amount,
            notes=draft.notes,
            equipment_ids=list(draft.equipment_ids),
            staff_ids=list(draft.staff_ids),
            cancellation_reason=None,
            cancelled_by=None,
            cancelled_at=None,
        )
        self.bookings[booking.id] = booking
        return booking

    async def get_booking(self, booking_id):
        return self.bookings.get(booking_id)

    async def update_booking(self, booking_id, patch, expected_status=None):
        self._check_rejection()
        booking = self.bookings[booking_id]
        if self.concurrent_status is not None:
            booking.status, self.concurrent_status = self.concurrent_status, None
        if expected_status is not None and booking.status != expected_status:
            raise StaleBooking(f"Booking {booking_id} is no longer {expected_status}")
        for key, value in patch.items():
            setattr(booking, key, list(value) if key.endswith("_ids") else value)
        return booking

    async def delete_booking(self, booking_id):
        self.bookings.pop(booking_id, None)

    async def list_bookings(self, booking_filter: BookingFilter):
        rooms = FakeDirectory().rooms
        result = []
        for booking in self.bookings.values():
            room = rooms[booking.room_id]
            if booking_filter.client_id is not None and booking.client_id != booking_filter.client_id:
                continue
            if booking_filter.owner_id is not None and room.studio.owner_id != booking_filter.owner_id:
                continue
            if booking_filter.studio_id is not None and room.studio_id != booking_filter.studio_id:
                continue
            if booking_filter.status is not None and booking.status != booking_filter.status:
                continue
            if booking_filter.room_id is not None and booking.room_id != booking_filter.room_id:
                continue
            result.append(booking)
        return sorted(result, key=lambda b: (b.start_time, b.id))


@dataclass
class RecordingNotifier(Notifier):
    sent: list = field(default_factory=list)
    fail: bool = False

    async def notify(self, event, recipient, payload):
        if self.fail:
            raise ConnectionError("mail relay down")
        self.sent.append((event, recipient, payload))


OWNER = Actor(user_id=1, role="studio_owner")
MUSICIAN = Actor(user_id=2, role="musician")
OTHER_MUSICIAN = Actor(user_id=3, role="musician")
STAFF_MEMBER = Actor(user_id=4, role="staff", staff_studio_id=1)
FOREIGN_STAFF = Actor(user_id=5, role="staff", staff_studio_id=2)
OTHER_OWNER = Actor(user_id=6, role="studio_owner")


@pytest.fixture
def make_service():
    """Factory returning (service, store, notifier) wired to fresh in-memory doubles."""

    def _make(
        fail_notifications: bool = False,
        client_cancel_pending_only: bool = False,
        schedule: Optional[object] = None,
    ):
        store = FakeBookingStore()
        notifier = RecordingNotifier(fail=fail_notifications)
        service = BookingService(
            store=store,
            directory=FakeDirectory(),
            notifier=notifier,
            schedule=schedule,
            client_cancel_pending_only=client_cancel_pending_only,
        )
        return service, store, notifier

    return _make
