"""
Trip endpoints
==============

POST /api/v1/trips                            -- request a trip
GET  /api/v1/trips/{trip_id}                  -- current trip state
POST /api/v1/trips/{trip_id}/assign           -- provider accepts / system assigns
POST /api/v1/trips/{trip_id}/arrive           -- provider at pickup
POST /api/v1/trips/{trip_id}/pickup-code      -- issue pickup code
POST /api/v1/trips/{trip_id}/pickup-code/verify
POST /api/v1/trips/{trip_id}/drop-code        -- issue drop code
POST /api/v1/trips/{trip_id}/breadcrumbs      -- GPS samples while in progress
POST /api/v1/trips/{trip_id}/complete         -- estimate, price, settle
POST /api/v1/trips/{trip_id}/cancel
POST /api/v1/trips/{trip_id}/rating
GET  /api/v1/trips/{trip_id}/fare             -- stored fare breakdown

Every command goes through the trip state machine; errors come back as
``{"error": <code>, "detail": <message>}`` with the error's HTTP status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.api.dependencies import get_actor, get_db, get_state_machine
from ridecore.api.middleware import limiter
from ridecore.api.schemas import (
    AssignRequest,
    BreadcrumbAck,
    BreadcrumbBatch,
    CancelRequest,
    CodeResponse,
    CompleteRequest,
    ErrorResponse,
    FareBreakdownResponse,
    RatingRequest,
    TripCreateRequest,
    TripResponse,
    VerifyCodeRequest,
)
from ridecore.config import settings
from ridecore.domain.entities import Actor, Breadcrumb, Location
from ridecore.domain.enums import CodeKind
from ridecore.domain.errors import InvalidTransition, NotAuthorized, TripNotFound
from ridecore.infrastructure.repositories import (
    FareBreakdownRepository,
    TripRepository,
)
from ridecore.services.trip_state_machine import TripRequest, TripStateMachine

router = APIRouter(
    prefix="/trips",
    tags=["trips"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Request a trip",
)
@limiter.limit(settings.rate_limit)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.request_trip(
        TripRequest(
            requester_id=body.requester_id,
            pickup=Location(body.pickup_lat, body.pickup_lng),
            destination=Location(body.destination_lat, body.destination_lng),
            booking_type=body.booking_type,
            vehicle_class=body.vehicle_class,
            pickup_address=body.pickup_address,
            destination_address=body.destination_address,
            trip_leg=body.trip_leg,
            rental_hours=body.rental_hours,
            scheduled_time=body.scheduled_time,
            payment_method=body.payment_method,
        ),
        actor,
    )
    return TripResponse.from_trip(trip)


@router.get("/{trip_id}", response_model=TripResponse, summary="Get trip state")
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.get_trip(trip_id)
    if not trip.is_party(actor):
        raise NotAuthorized(f"{actor.id} is not a party to trip {trip_id}")
    return TripResponse.from_trip(trip)


@router.post("/{trip_id}/assign", response_model=TripResponse, summary="Assign a provider")
@limiter.limit(settings.rate_limit)
async def assign_trip(
    request: Request,
    trip_id: str,
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.assign(trip_id, body.provider_id, actor)
    return TripResponse.from_trip(trip)


@router.post("/{trip_id}/arrive", response_model=TripResponse, summary="Provider arrived")
@limiter.limit(settings.rate_limit)
async def mark_arrived(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    return TripResponse.from_trip(await machine.mark_arrived(trip_id, actor))


@router.post(
    "/{trip_id}/pickup-code",
    status_code=201,
    response_model=CodeResponse,
    summary="Issue the pickup code",
)
@limiter.limit(settings.rate_limit)
async def issue_pickup_code(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    code = await machine.issue_pickup_code(trip_id, actor)
    return CodeResponse(trip_id=trip_id, kind=CodeKind.PICKUP.value, code=code)


@router.post(
    "/{trip_id}/pickup-code/verify",
    response_model=TripResponse,
    summary="Verify the pickup code and start the trip",
)
@limiter.limit(settings.rate_limit)
async def verify_pickup_code(
    request: Request,
    trip_id: str,
    body: VerifyCodeRequest,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.verify_pickup_code(trip_id, body.code, actor)
    return TripResponse.from_trip(trip)


@router.post(
    "/{trip_id}/drop-code",
    status_code=201,
    response_model=CodeResponse,
    summary="Issue the drop code",
)
@limiter.limit(settings.rate_limit)
async def issue_drop_code(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    code = await machine.issue_drop_code(trip_id, actor)
    return CodeResponse(trip_id=trip_id, kind=CodeKind.DROP.value, code=code)


@router.post(
    "/{trip_id}/breadcrumbs",
    status_code=202,
    response_model=BreadcrumbAck,
    summary="Record GPS breadcrumbs",
)
@limiter.limit(settings.rate_limit)
async def record_breadcrumbs(
    request: Request,
    trip_id: str,
    body: BreadcrumbBatch,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    points = [
        Breadcrumb(
            trip_id=trip_id,
            latitude=p.latitude,
            longitude=p.longitude,
            captured_at=p.captured_at,
            accuracy_m=p.accuracy_m,
        )
        for p in body.points
    ]
    stored = await machine.record_breadcrumbs(trip_id, points, actor)
    return BreadcrumbAck(trip_id=trip_id, stored=stored)


@router.post(
    "/{trip_id}/complete",
    response_model=FareBreakdownResponse,
    summary="Complete the trip",
    description=(
        "Estimates distance and duration (GPS track, then routing service, "
        "then great-circle fallback), prices the trip against a tariff "
        "snapshot and settles it.  On any failure the trip stays in progress."
    ),
)
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    trip_id: str,
    body: Optional[CompleteRequest] = None,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    drop_code = body.drop_code if body else None
    fare = await machine.complete(trip_id, actor, drop_code=drop_code)
    return FareBreakdownResponse.from_fare(fare)


@router.post("/{trip_id}/cancel", response_model=TripResponse, summary="Cancel the trip")
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: str,
    body: CancelRequest,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.cancel(trip_id, body.reason, actor)
    return TripResponse.from_trip(trip)


@router.post("/{trip_id}/rating", response_model=TripResponse, summary="Rate a completed trip")
@limiter.limit(settings.rate_limit)
async def rate_trip(
    request: Request,
    trip_id: str,
    body: RatingRequest,
    actor: Actor = Depends(get_actor),
    machine: TripStateMachine = Depends(get_state_machine),
):
    trip = await machine.rate(trip_id, body.rating, actor, feedback=body.feedback)
    return TripResponse.from_trip(trip)


@router.get(
    "/{trip_id}/fare",
    response_model=FareBreakdownResponse,
    summary="Get the stored fare breakdown",
)
@limiter.limit(settings.rate_limit)
async def get_fare(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    trip = await TripRepository(db).get(trip_id)
    if trip is None:
        raise TripNotFound(f"Trip {trip_id} not found")
    if not trip.is_party(actor):
        raise NotAuthorized(f"{actor.id} is not a party to trip {trip_id}")
    fare = await FareBreakdownRepository(db).get_for_trip(trip_id)
    if fare is None:
        raise InvalidTransition(f"Trip {trip_id} has no fare until it is completed")
    return FareBreakdownResponse.from_fare(fare)
