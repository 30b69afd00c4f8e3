"""
FastAPI application factory.

* Registers routes for trips, providers / requesters and admin.
* Builds the trip core (state machine, availability reconciler, event bus)
  and starts / stops the background workers via lifespan events.
* Applies rate-limiting middleware and the JSON envelope for trip errors.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridecore.api.middleware import limiter, trip_error_handler
from ridecore.api.routes import admin, providers, trips
from ridecore.config import settings
from ridecore.domain.errors import TripError
from ridecore.infrastructure.database import async_session_factory
from ridecore.infrastructure.event_publisher import RedisEventPublisher
from ridecore.infrastructure.redis_client import close_redis, get_redis
from ridecore.services.container import build_services
from ridecore.workers import reconciler as _reconciler
from ridecore.workers.change_feed import ChangeFeedSubscriber

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the trip core, start the workers on startup; stop on shutdown."""
    services = build_services(async_session_factory, settings)
    app.state.services = services

    redis = await get_redis()
    publisher = RedisEventPublisher(redis, settings.trip_events_channel)
    publisher.attach(services.bus)

    feed = ChangeFeedSubscriber(
        redis,
        services.machine,
        services.availability,
        settings.change_feed_channel,
        reconnect_delay=settings.change_feed_reconnect_seconds,
    )
    await feed.start()
    await _reconciler.start_reconcile_loop(
        services.availability, settings.reconcile_interval_seconds
    )
    yield
    await _reconciler.stop_reconcile_loop()
    await feed.stop()
    publisher.detach(services.bus)
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ridecore Trip API",
        description=(
            "Trip lifecycle for a ride-hailing platform: assignment, "
            "pickup and drop verification codes, GPS-based distance "
            "estimation with fallbacks, and fares for metered, rental, "
            "intercity and airport-transfer bookings."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(TripError, trip_error_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(providers.router, prefix="/api/v1")
    app.include_router(providers.requester_router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
