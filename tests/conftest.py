"""Shared fixtures: a throwaway sqlite database per test, seeded trips and a
controllable clock."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from seatlock.db.base import Base
from seatlock.db.session import make_engine, make_session_factory
import seatlock.models  # noqa: F401
from seatlock.deps import build_services
from seatlock.models.models import Seat, Trip
from seatlock.services.change_feed import InMemoryChangeFeed

TRIP_ID = "T1"
OTHER_TRIP_ID = "T2"
FARE = Decimal("100.00")
SEAT_COUNT = 13


class FakeClock:
    def __init__(self, start=None):
        self.current = start or datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


class RecordingNotifier:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, booking, trip, email):
        self.calls.append((booking.reference, trip.id, email))
        if self.fail:
            raise RuntimeError("broker down")


def seat_id(number, trip_id=TRIP_ID):
    return f"{trip_id}-{number}"


def seat_position(number, seat_count=SEAT_COUNT):
    """Rows of four, except the back row which takes the last five seats."""
    last_row = (seat_count - 5) // 4 + 1
    if number > seat_count - 5:
        return last_row, number - (seat_count - 5)
    return (number - 1) // 4 + 1, (number - 1) % 4 + 1


async def seed_trip(session_factory, trip_id=TRIP_ID, seat_count=SEAT_COUNT, fare=FARE):
    async with session_factory() as session:
        async with session.begin():
            session.add(Trip(id=trip_id, route="Main Gate - City Campus", fare=fare, total_seats=seat_count, bus_type="AC"))
            await session.flush()
            for n in range(1, seat_count + 1):
                row, col = seat_position(n, seat_count)
                session.add(Seat(id=seat_id(n, trip_id), trip_id=trip_id, seat_number=str(n), row_number=row, column_number=col))


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'seatlock.db'}", per_run=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = make_session_factory(engine)
    await seed_trip(factory)
    await seed_trip(factory, trip_id=OTHER_TRIP_ID, seat_count=9)
    yield factory
    await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def services(session_factory, feed, clock, notifier):
    return build_services(session_factory, feed, clock=clock, notifier=notifier, hold_seconds=600)


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def engine(services):
    return services.engine


@pytest.fixture
def sweeper(services):
    return services.sweeper


@pytest_asyncio.fixture
async def client(services):
    from seatlock.main import app

    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
