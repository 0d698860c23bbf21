"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL.  Every transaction opens with
``BEGIN IMMEDIATE``: concurrent units of work then queue on SQLite's write
lock the way racing writers queue on row locks in PostgreSQL, which lets the
race tests use real concurrency instead of mocks.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from dispatch.domain.entities import Location
from dispatch.domain.enums import RideCategory, VerificationStatus
from dispatch.infrastructure import models  # noqa: F401  (registers tables)
from dispatch.infrastructure.database import Base
from dispatch.infrastructure.models import DriverModel
from dispatch.services.drivers import DriverAvailabilityService
from dispatch.services.matching import MatchingService
from dispatch.services.trips import TripLifecycleService

# Silchar, the reference city for the sample scenario
PICKUP = Location(24.33, 92.01)
DESTINATION = Location(24.37, 92.17)
START = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic stand-in for the server timestamp source."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class PerCallService:
    """Runs every service call in a fresh session, like one HTTP request each."""

    def __init__(self, service_cls, session_factory, clock):
        self._service_cls = service_cls
        self._session_factory = session_factory
        self._clock = clock

    def __getattr__(self, name):
        async def call(*args, **kwargs):
            async with self._session_factory() as session:
                service = self._service_cls(session, self._clock)
                return await getattr(service, name)(*args, **kwargs)

        return call


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a throwaway database file, then dispose."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def trips(session_factory, clock) -> TripLifecycleService:
    return PerCallService(TripLifecycleService, session_factory, clock)


@pytest.fixture
def matching(session_factory, clock) -> MatchingService:
    return PerCallService(MatchingService, session_factory, clock)


@pytest.fixture
def drivers(session_factory, clock) -> DriverAvailabilityService:
    return PerCallService(DriverAvailabilityService, session_factory, clock)


# ── Helpers ───────────────────────────────────────────────────────────


async def add_driver(
    session_factory,
    driver_id: str,
    lat: Optional[float] = 24.331,
    lng: Optional[float] = 92.012,
    *,
    category: RideCategory = RideCategory.ECONOMY,
    status: VerificationStatus = VerificationStatus.VERIFIED,
    online: bool = True,
    available: bool = True,
    current_trip_id: Optional[str] = None,
) -> DriverModel:
    """Insert a driver row directly, bypassing registration and verification."""
    async with session_factory() as session:
        driver = DriverModel(
            driver_id=driver_id,
            name=f"Driver {driver_id}",
            vehicle_category=category,
            verification_status=status,
            is_online=online,
            is_available=available,
            current_trip_id=current_trip_id,
            current_lat=lat,
            current_lng=lng,
            location_updated_at=START if lat is not None else None,
            location_version=0,
            total_rides=0,
            total_deliveries=0,
            rating=4.5,
            total_earnings=0.0,
            created_at=START,
            updated_at=START,
        )
        session.add(driver)
        await session.commit()
        return driver


async def load_driver(session_factory, driver_id: str) -> DriverModel:
    async with session_factory() as session:
        return await session.get(DriverModel, driver_id)


async def request_ride(trips, requester_id: str = "rider-1", **overrides):
    params = dict(
        kind="ride",
        requester_id=requester_id,
        pickup=PICKUP,
        destination=DESTINATION,
        category="economy",
        fare=164.0,
    )
    params.update(overrides)
    return await trips.create_trip(**params)


async def request_delivery(trips, requester_id: str = "sender-1", **overrides):
    params = dict(
        kind="delivery",
        requester_id=requester_id,
        pickup=PICKUP,
        destination=DESTINATION,
        category="document",
        fare=60.0,
        recipient_name="Meera Nair",
        recipient_phone="+919876543210",
        package_description="Signed lease",
    )
    params.update(overrides)
    return await trips.create_trip(**params)
