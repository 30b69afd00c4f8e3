"""
Shared test fixtures.

Each test gets its own file-backed SQLite database (via aiosqlite) so the
trip core runs without PostgreSQL / Redis.  The partial unique index on
live provider trips is created with its SQLite ``WHERE`` clause, so the
one-live-trip rule is enforced here exactly as in production.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ridecore.api.app import create_app
from ridecore.api.dependencies import get_db
from ridecore.api.middleware import limiter
from ridecore.config import settings
from ridecore.domain.entities import Actor
from ridecore.domain.enums import ActorRole, BookingType, TripStatus
from ridecore.infrastructure import models  # noqa: F401  (registers tables)
from ridecore.infrastructure.database import Base
from ridecore.services.container import build_services
from ridecore.services.trip_state_machine import TripRequest
from tests.support import DEPOT, EventRecorder, StubRouter, north_of, seed_tariffs


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ridecore.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(session_factory):
    await seed_tariffs(session_factory)
    return session_factory


# ── Trip core ─────────────────────────────────────────────────────────


@pytest.fixture
def router() -> StubRouter:
    """No route by default, so estimation falls through to the geometric tier."""
    return StubRouter()


@pytest.fixture
def services(seeded, router):
    return build_services(seeded, settings, router=router)


@pytest.fixture
def machine(services):
    return services.machine


@pytest.fixture
def events(services) -> EventRecorder:
    recorder = EventRecorder()
    services.bus.subscribe(recorder)
    return recorder


@pytest.fixture
def requester() -> Actor:
    return Actor("rider-1", ActorRole.REQUESTER)


@pytest.fixture
def provider() -> Actor:
    return Actor("prov-1", ActorRole.PROVIDER)


@pytest.fixture
def drive_trip(machine, requester):
    """
    Request a sedan trip from the depot and walk it forward to *status*.
    Booking fields can be overridden by keyword.
    """

    async def _drive(
        status: TripStatus = TripStatus.IN_PROGRESS,
        provider_id: str = "prov-1",
        **overrides,
    ):
        fields = dict(
            requester_id=requester.id,
            pickup=DEPOT,
            destination=north_of(DEPOT, 7.0),
            booking_type=BookingType.METERED,
            vehicle_class="sedan",
        )
        fields.update(overrides)
        trip = await machine.request_trip(TripRequest(**fields), requester)
        if status == TripStatus.REQUESTED:
            return trip

        actor = Actor(provider_id, ActorRole.PROVIDER)
        trip = await machine.assign(trip.id, provider_id, actor)
        if status == TripStatus.ASSIGNED:
            return trip

        trip = await machine.mark_arrived(trip.id, actor)
        if status == TripStatus.PROVIDER_ARRIVED:
            return trip

        code = await machine.issue_pickup_code(trip.id, requester)
        return await machine.verify_pickup_code(trip.id, code, actor)

    return _drive


# ── HTTP ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(seeded, services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database; lifespan workers are not started."""
    app = create_app()
    app.state.services = services

    async def override_get_db():
        async with seeded() as session:
            try:
                yield session
            finally:
                await session.rollback()

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
