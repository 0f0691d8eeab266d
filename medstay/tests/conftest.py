"""
Shared fixtures: a file-backed SQLite database per test, isolated lock
managers and event publishers, and an in-memory Redis double.
"""
import fnmatch
from datetime import date
from typing import Dict, Optional

import pytest
import pytest_asyncio

from medstay.config import Settings
from medstay.database import init_db, make_engine, make_session_factory
from medstay.models import Property
from medstay.redis_service import RedisService
from medstay.schemas import BookingCreate, GuestDetails
from medstay.services.booking import BookingEngine
from medstay.services.events import BookingEventPublisher
from medstay.services.locks import PropertyLockManager

# Fixed "today" for booking rules, so dated fixtures never fall into the past
TODAY = date(2025, 1, 1)


class FakeRedis:
    """Just enough of the redis.asyncio client surface for RedisService."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.published = []

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def aclose(self):
        pass


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'medstay_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db:
        yield db


@pytest.fixture
def offline_redis():
    """A RedisService that was never connected."""
    return RedisService()


@pytest.fixture
def fake_redis():
    service = RedisService()
    service.redis_client = FakeRedis()
    return service


@pytest.fixture
def locks(offline_redis):
    return PropertyLockManager(backend="local", redis=offline_redis, timeout=5)


@pytest_asyncio.fixture
async def events(offline_redis):
    publisher = BookingEventPublisher(redis=offline_redis, channel="test-events")
    yield publisher
    await publisher.drain()


@pytest.fixture
def captured_events(events):
    received = []

    async def capture(message):
        received.append(message)

    events.subscribe(capture)
    return received


@pytest.fixture
def config():
    config = Settings()
    config.max_stay_nights = 365
    config.enforce_blocked_dates = False
    return config


@pytest.fixture
def today():
    return lambda: TODAY


@pytest.fixture
def make_engine_for(locks, events, config, today):
    def build(db, **overrides) -> BookingEngine:
        options = {"locks": locks, "events": events, "config": config, "today": today}
        options.update(overrides)
        return BookingEngine(db, **options)
    return build


@pytest.fixture
def booking_engine(session, make_engine_for):
    return make_engine_for(session)


@pytest.fixture
def make_property(session_factory):
    async def create(base_price: float = 100.0, max_guests: int = 4, name: str = "Suite near Mercy Hospital") -> str:
        async with session_factory() as db:
            rental = Property(name=name, base_price=base_price, max_guests=max_guests)
            db.add(rental)
            await db.commit()
            return rental.id
    return create


@pytest_asyncio.fixture
async def property_id(make_property):
    return await make_property()


def booking_request(
    property_id: str,
    check_in: date,
    check_out: date,
    guest_count: int = 2,
    special_requests: Optional[str] = None
) -> BookingCreate:
    return BookingCreate(
        property_id=property_id,
        check_in=check_in,
        check_out=check_out,
        guest_count=guest_count,
        guest_details=GuestDetails(
            name="Dana Rivera",
            email="dana.rivera@example.com",
            phone="+15551234567",
            purpose_of_visit="Oncology treatment"
        ),
        special_requests=special_requests
    )


@pytest.fixture
def make_request():
    return booking_request
