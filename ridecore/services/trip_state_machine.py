"""
Trip State Machine
==================

The single writer of trip state::

    requested -> assigned -> provider_arrived -> in_progress -> completed
         \\____________\\_______________\\_______________\\-> cancelled

Concurrency
-----------
Every write is a compare-and-swap on the observed ``(status, version)``; a
zero row count surfaces as ``Conflict``.  No lock is held across I/O:
``complete`` reads in one short session, estimates and prices with no
session open (the routing call may be slow), then commits the fare, the
trip row and the provider release in one transaction.  A ``cancel`` that
commits in between makes that final CAS fail.

Committed transitions are published on the ``EventBus`` after commit.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.domain.entities import (
    Actor,
    Breadcrumb,
    FareBreakdown,
    Location,
    Trip,
    utc_now,
)
from ridecore.domain.enums import (
    ActorRole,
    BookingType,
    CodeKind,
    TripLeg,
    TripStatus,
)
from ridecore.domain.errors import (
    CodeMismatch,
    Conflict,
    Expired,
    InvalidCommand,
    InvalidTransition,
    NotAuthorized,
    ProviderBusy,
    ProviderNotFound,
    TripError,
    TripNotFound,
)
from ridecore.domain.estimation import DistanceEstimator, EstimationInput
from ridecore.domain.events import EventBus, TripEvent
from ridecore.domain.pricing import FareEngine, FareRequest
from ridecore.infrastructure.repositories import (
    BreadcrumbRepository,
    EstimationLogRepository,
    FareBreakdownRepository,
    ProviderRepository,
    TariffRepository,
    TripRepository,
)
from ridecore.services.availability import AvailabilityReconciler

logger = logging.getLogger(__name__)

SideEffect = Callable[[AsyncSession], Awaitable[None]]


@dataclass(frozen=True)
class TripRequest:
    requester_id: str
    pickup: Location
    destination: Location
    booking_type: BookingType
    vehicle_class: str
    pickup_address: str = ""
    destination_address: str = ""
    trip_leg: TripLeg = TripLeg.ROUND_TRIP
    rental_hours: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    payment_method: str = "cash"


def generate_code(digits: int = 4) -> str:
    """Numeric one-time code with no leading zero (1000-9999 for 4 digits)."""
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


class TripStateMachine:
    def __init__(
        self,
        session_factory,
        estimator: DistanceEstimator,
        fare_engine: FareEngine,
        availability: AvailabilityReconciler,
        bus: EventBus,
        tariff_defaults,
        code_digits: int = 4,
    ):
        self.session_factory = session_factory
        self.estimator = estimator
        self.fare_engine = fare_engine
        self.availability = availability
        self.bus = bus
        self.tariff_defaults = tariff_defaults
        self.code_digits = code_digits

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_trip(self, trip_id: str) -> Trip:
        async with self.session_factory() as session:
            return await self._load(session, trip_id)

    @staticmethod
    async def _load(session: AsyncSession, trip_id: str) -> Trip:
        trip = await TripRepository(session).get(trip_id)
        if trip is None:
            raise TripNotFound(f"Trip {trip_id} not found")
        return trip

    # ── Commands ──────────────────────────────────────────────────────

    async def request_trip(self, request: TripRequest, actor: Actor) -> Trip:
        if actor.role == ActorRole.PROVIDER or (
            actor.role == ActorRole.REQUESTER and actor.id != request.requester_id
        ):
            raise NotAuthorized("Trips are requested by their requester")
        if request.booking_type == BookingType.RENTAL and not request.rental_hours:
            raise InvalidCommand("Rental bookings need rental_hours")

        trip = Trip(
            id=str(uuid.uuid4()),
            requester_id=request.requester_id,
            pickup=request.pickup,
            destination=request.destination,
            pickup_address=request.pickup_address,
            destination_address=request.destination_address,
            booking_type=request.booking_type,
            trip_leg=(
                request.trip_leg
                if request.booking_type == BookingType.INTERCITY
                else TripLeg.ROUND_TRIP
            ),
            vehicle_class=request.vehicle_class,
            rental_hours=request.rental_hours,
            scheduled_time=request.scheduled_time,
            payment_method=request.payment_method,
        )
        async with self.session_factory() as session:
            try:
                trip = await TripRepository(session).create(trip)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.info(
            "Trip %s requested (%s/%s) by %s",
            trip.id, trip.booking_type.value, trip.vehicle_class, trip.requester_id,
        )
        await self._publish(trip, "requested", None)
        return trip

    async def assign(self, trip_id: str, provider_id: str, actor: Actor) -> Trip:
        if actor.role == ActorRole.REQUESTER or (
            actor.role == ActorRole.PROVIDER and actor.id != provider_id
        ):
            raise NotAuthorized("Only the provider itself or the system may assign")

        async with self.session_factory() as session:
            trip = await self._load(session, trip_id)
            if await ProviderRepository(session).get(provider_id) is None:
                raise ProviderNotFound(f"Provider {provider_id} not found")
            active = await TripRepository(session).active_for_provider(provider_id)

        if trip.status != TripStatus.REQUESTED or trip.provider_id is not None:
            raise Conflict(f"Trip {trip_id} is {trip.status.value}, not requested")
        if active is not None:
            raise ProviderBusy(f"Provider {provider_id} already holds trip {active.id}")

        updated = trip.copy()
        updated.transition_to(TripStatus.ASSIGNED)
        updated.provider_id = provider_id
        updated.assigned_at = utc_now()

        async def engage(session: AsyncSession) -> None:
            await self.availability.engage(session, provider_id)

        return await self._commit(
            trip,
            updated,
            "assigned",
            require_unassigned=True,
            side_effect=engage,
            on_integrity_error=ProviderBusy(
                f"Provider {provider_id} already holds a live trip"
            ),
        )

    async def mark_arrived(self, trip_id: str, actor: Actor) -> Trip:
        trip = await self.get_trip(trip_id)
        self._require_provider(trip, actor)
        if trip.status == TripStatus.PROVIDER_ARRIVED:
            return trip

        updated = trip.copy()
        updated.transition_to(TripStatus.PROVIDER_ARRIVED)
        updated.arrived_at = utc_now()
        return await self._commit(trip, updated, "arrived")

    async def issue_pickup_code(self, trip_id: str, actor: Actor) -> str:
        return await self._issue_code(
            trip_id, actor, CodeKind.PICKUP, TripStatus.PROVIDER_ARRIVED
        )

    async def issue_drop_code(self, trip_id: str, actor: Actor) -> str:
        return await self._issue_code(
            trip_id, actor, CodeKind.DROP, TripStatus.IN_PROGRESS
        )

    async def _issue_code(
        self, trip_id: str, actor: Actor, kind: CodeKind, required: TripStatus
    ) -> str:
        trip = await self.get_trip(trip_id)
        if not trip.is_party(actor):
            raise NotAuthorized(f"{actor.id} is not a party to trip {trip_id}")
        if trip.status != required:
            raise InvalidTransition(
                f"A {kind.value} code needs status {required.value}, "
                f"trip is {trip.status.value}"
            )

        updated = trip.copy()
        code = updated.issue_code(kind, generate_code(self.code_digits))
        await self._commit(trip, updated, f"{kind.value}_code_issued")
        return code.value

    async def verify_pickup_code(self, trip_id: str, code: str, actor: Actor) -> Trip:
        trip = await self.get_trip(trip_id)
        self._require_provider(trip, actor)
        if trip.status in (TripStatus.REQUESTED, TripStatus.ASSIGNED):
            raise InvalidTransition(
                f"Trip {trip_id} is {trip.status.value}; provider has not arrived"
            )
        if trip.status != TripStatus.PROVIDER_ARRIVED:
            raise Expired(f"Trip {trip_id} is {trip.status.value}; pickup code expired")
        live = trip.live_code(CodeKind.PICKUP)
        if live is None:
            raise Expired(f"No pickup code outstanding for trip {trip_id}")
        if not secrets.compare_digest(live.value, str(code)):
            raise CodeMismatch("Pickup code does not match")

        updated = trip.copy()
        updated.transition_to(TripStatus.IN_PROGRESS)
        updated.started_at = utc_now()
        return await self._commit(trip, updated, "started")

    async def record_breadcrumbs(
        self, trip_id: str, points: list[Breadcrumb], actor: Actor
    ) -> int:
        async with self.session_factory() as session:
            try:
                trip = await self._load(session, trip_id)
                if actor.role != ActorRole.PROVIDER or actor.id != trip.provider_id:
                    raise NotAuthorized("Breadcrumbs come from the assigned provider")
                if trip.status != TripStatus.IN_PROGRESS:
                    raise InvalidTransition(
                        f"Trip {trip_id} is {trip.status.value}; not collecting breadcrumbs"
                    )
                stored = await BreadcrumbRepository(session).append(
                    [replace(p, trip_id=trip.id) for p in points]
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.debug("Trip %s: %d breadcrumbs stored", trip_id, stored)
        return stored

    async def complete(
        self,
        trip_id: str,
        actor: Actor,
        drop_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FareBreakdown:
        now = now or utc_now()

        # 1. short read
        async with self.session_factory() as session:
            trip = await self._load(session, trip_id)
            self._require_provider(trip, actor)
            if trip.status != TripStatus.IN_PROGRESS:
                raise InvalidTransition(
                    f"Cannot complete trip {trip_id} from {trip.status.value}"
                )
            live = trip.live_code(CodeKind.DROP)
            if live is not None and (
                drop_code is None or not secrets.compare_digest(live.value, str(drop_code))
            ):
                raise CodeMismatch("Drop code does not match")
            breadcrumbs = await BreadcrumbRepository(session).list_for_trip(trip.id)

        # 2. estimation and pricing, no transaction open
        estimate = await self.estimator.estimate(
            EstimationInput(
                trip_id=trip.id,
                booking_type=trip.booking_type,
                pickup=trip.pickup,
                destination=trip.destination,
                now=now,
                started_at=trip.started_at,
                trip_leg=trip.trip_leg,
                breadcrumbs=tuple(breadcrumbs),
            )
        )
        await self._log_estimate(trip.id, estimate)

        async with self.session_factory() as session:
            snapshot = await TariffRepository(session, self.tariff_defaults).snapshot(
                trip.booking_type, trip.vehicle_class, trip.rental_hours
            )

        dropoff = (
            Location(breadcrumbs[-1].latitude, breadcrumbs[-1].longitude)
            if breadcrumbs
            else trip.destination
        )
        distance_km = round(estimate.distance_km, 3)
        fare = self.fare_engine.calculate(
            FareRequest(
                booking_type=trip.booking_type,
                vehicle_class=trip.vehicle_class,
                distance_km=distance_km,
                duration_minutes=estimate.duration_minutes,
                pickup=trip.pickup,
                dropoff=dropoff,
                rental_hours=trip.rental_hours,
                scheduled_time=trip.scheduled_time,
                distance_source=estimate.source,
            ),
            snapshot,
        )
        fare = replace(
            fare,
            details={
                **fare.details,
                "estimation_tier": int(estimate.tier),
                "estimation_degraded": estimate.degraded,
                "flagged_for_audit": estimate.flagged_for_audit,
                "actual_dropoff": {
                    "latitude": dropoff.latitude,
                    "longitude": dropoff.longitude,
                },
            },
        )

        # 3. one write transaction
        updated = trip.copy()
        updated.transition_to(TripStatus.COMPLETED)
        updated.fare_amount = fare.total_fare
        updated.distance_km = distance_km
        updated.duration_minutes = estimate.duration_minutes
        updated.completed_at = now

        async def settle(session: AsyncSession) -> None:
            await FareBreakdownRepository(session).add(updated, fare)
            if updated.provider_id:
                await self.availability.release(session, updated.provider_id)

        await self._commit(
            trip,
            updated,
            "completed",
            side_effect=settle,
            on_integrity_error=Conflict(f"Trip {trip_id} already has a fare"),
            payload={
                "total_fare": float(fare.total_fare),
                "distance_km": distance_km,
                "duration_minutes": estimate.duration_minutes,
                "estimation_tier": int(estimate.tier),
                "degraded": estimate.degraded,
            },
        )
        return fare

    async def cancel(self, trip_id: str, reason: str, actor: Actor) -> Trip:
        if not reason or not reason.strip():
            raise InvalidCommand("A cancellation reason is required")

        trip = await self.get_trip(trip_id)
        if not trip.is_party(actor):
            raise NotAuthorized(f"{actor.id} may not cancel trip {trip_id}")

        updated = trip.copy()
        updated.transition_to(TripStatus.CANCELLED)
        updated.cancellation_reason = reason.strip()
        updated.cancelled_by = actor.id
        updated.cancelled_at = utc_now()

        async def release(session: AsyncSession) -> None:
            if trip.provider_id:
                await self.availability.release(session, trip.provider_id)

        return await self._commit(
            trip,
            updated,
            "cancelled",
            side_effect=release,
            payload={"reason": updated.cancellation_reason, "by": actor.role.value},
        )

    async def rate(
        self, trip_id: str, rating: int, actor: Actor, feedback: Optional[str] = None
    ) -> Trip:
        trip = await self.get_trip(trip_id)
        if actor.role != ActorRole.REQUESTER or actor.id != trip.requester_id:
            raise NotAuthorized("Only the requester may rate a trip")
        if trip.status != TripStatus.COMPLETED:
            raise InvalidTransition(f"Trip {trip_id} is {trip.status.value}, not completed")
        if not 1 <= int(rating) <= 5:
            raise InvalidCommand("Rating must be between 1 and 5")
        if trip.rating is not None:
            raise InvalidCommand(f"Trip {trip_id} is already rated")

        updated = trip.copy()
        updated.rating = int(rating)
        updated.feedback = feedback
        updated.version += 1
        return await self._commit(trip, updated, "rated", payload={"rating": updated.rating})

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    def _require_provider(trip: Trip, actor: Actor) -> None:
        if actor.role == ActorRole.SYSTEM:
            return
        if actor.role == ActorRole.PROVIDER and actor.id == trip.provider_id:
            return
        raise NotAuthorized(f"{actor.id} is not the provider of trip {trip.id}")

    async def _commit(
        self,
        before: Trip,
        after: Trip,
        kind: str,
        *,
        require_unassigned: bool = False,
        side_effect: Optional[SideEffect] = None,
        on_integrity_error: Optional[TripError] = None,
        payload: Optional[dict] = None,
    ) -> Trip:
        async with self.session_factory() as session:
            try:
                swapped = await TripRepository(session).compare_and_swap(
                    after,
                    before.status,
                    before.version,
                    require_unassigned=require_unassigned,
                )
                if not swapped:
                    raise Conflict(
                        f"Trip {before.id} changed since it was read "
                        f"({before.status.value} v{before.version})"
                    )
                if side_effect is not None:
                    await side_effect(session)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if on_integrity_error is not None:
                    raise on_integrity_error from e
                raise
            except Exception:
                await session.rollback()
                raise

        logger.info(
            "Trip %s %s: %s -> %s (v%d)",
            after.id, kind, before.status.value, after.status.value, after.version,
        )
        await self._publish(after, kind, before.status, payload)
        return after

    async def _publish(
        self,
        trip: Trip,
        kind: str,
        from_status: Optional[TripStatus],
        payload: Optional[dict] = None,
    ) -> None:
        await self.bus.publish(
            TripEvent(
                trip_id=trip.id,
                kind=kind,
                from_status=from_status.value if from_status else None,
                to_status=trip.status.value,
                version=trip.version,
                occurred_at=utc_now(),
                provider_id=trip.provider_id,
                payload=payload or {},
            )
        )

    async def _log_estimate(self, trip_id: str, estimate) -> None:
        async with self.session_factory() as session:
            try:
                await EstimationLogRepository(session).append(trip_id, estimate)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
