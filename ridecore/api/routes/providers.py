"""
Provider / requester endpoints
==============================

PUT  /api/v1/providers/{provider_id}/availability -- manual on/off toggle
POST /api/v1/providers/{provider_id}/resync       -- re-derive flag from trips
GET  /api/v1/providers/{provider_id}/earnings     -- completed-trip totals
GET  /api/v1/requesters/{requester_id}/spending   -- completed-trip totals
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.api.dependencies import (
    get_actor,
    get_availability,
    get_db,
    require_self_or_system,
)
from ridecore.api.middleware import limiter
from ridecore.api.schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    ErrorResponse,
    TotalsResponse,
)
from ridecore.config import settings
from ridecore.domain.entities import Actor
from ridecore.domain.enums import ActorRole, BookingType
from ridecore.domain.errors import ProviderNotFound
from ridecore.infrastructure.repositories import (
    FareBreakdownRepository,
    ProviderRepository,
)
from ridecore.services.availability import AvailabilityReconciler

router = APIRouter(
    prefix="/providers",
    tags=["providers"],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
requester_router = APIRouter(prefix="/requesters", tags=["requesters"])


@router.put(
    "/{provider_id}/availability",
    response_model=AvailabilityResponse,
    summary="Set provider availability",
    description=(
        "Toggles a provider between available and unavailable.  Rejected "
        "with has_active_trip while the provider holds a live trip."
    ),
    responses={409: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def set_availability(
    request: Request,
    provider_id: str,
    body: AvailabilityRequest,
    actor: Actor = Depends(get_actor),
    availability: AvailabilityReconciler = Depends(get_availability),
):
    require_self_or_system(actor, provider_id, ActorRole.PROVIDER)
    status = await availability.set_manual(provider_id, body.status)
    return AvailabilityResponse(provider_id=provider_id, status=status)


@router.post(
    "/{provider_id}/resync",
    response_model=AvailabilityResponse,
    summary="Re-derive provider availability from the trip store",
)
@limiter.limit(settings.rate_limit)
async def resync_availability(
    request: Request,
    provider_id: str,
    actor: Actor = Depends(get_actor),
    availability: AvailabilityReconciler = Depends(get_availability),
):
    require_self_or_system(actor, provider_id, ActorRole.PROVIDER)
    status = await availability.resync(provider_id)
    return AvailabilityResponse(provider_id=provider_id, status=status)


@router.get(
    "/{provider_id}/earnings",
    response_model=TotalsResponse,
    summary="Provider earnings from completed trips",
)
@limiter.limit(settings.rate_limit)
async def provider_earnings(
    request: Request,
    provider_id: str,
    booking_type: Optional[BookingType] = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    require_self_or_system(actor, provider_id, ActorRole.PROVIDER)
    if await ProviderRepository(db).get(provider_id) is None:
        raise ProviderNotFound(f"Provider {provider_id} not found")
    trips, total = await FareBreakdownRepository(db).totals(
        provider_id=provider_id, booking_type=booking_type
    )
    return TotalsResponse(
        subject_id=provider_id, booking_type=booking_type, trips=trips, total=float(total)
    )


@requester_router.get(
    "/{requester_id}/spending",
    response_model=TotalsResponse,
    summary="Requester spending on completed trips",
)
@limiter.limit(settings.rate_limit)
async def requester_spending(
    request: Request,
    requester_id: str,
    booking_type: Optional[BookingType] = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    require_self_or_system(actor, requester_id, ActorRole.REQUESTER)
    trips, total = await FareBreakdownRepository(db).totals(
        requester_id=requester_id, booking_type=booking_type
    )
    return TotalsResponse(
        subject_id=requester_id, booking_type=booking_type, trips=trips, total=float(total)
    )
