"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health                     -- simple health check
GET /api/v1/admin/trips/{trip_id}/estimations -- distance estimation audit log
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.api.dependencies import get_actor, get_db
from ridecore.api.middleware import limiter
from ridecore.api.schemas import EstimationLogResponse, HealthResponse
from ridecore.config import settings
from ridecore.domain.entities import Actor
from ridecore.domain.enums import ActorRole
from ridecore.domain.errors import NotAuthorized, TripNotFound
from ridecore.infrastructure.repositories import (
    EstimationLogRepository,
    TripRepository,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/trips/{trip_id}/estimations",
    response_model=list[EstimationLogResponse],
    summary="Distance estimation decisions recorded for a trip",
)
@limiter.limit(settings.rate_limit)
async def trip_estimations(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    if actor.role != ActorRole.SYSTEM:
        raise NotAuthorized("The estimation audit log is for system callers")
    if await TripRepository(db).get(trip_id) is None:
        raise TripNotFound(f"Trip {trip_id} not found")
    return await EstimationLogRepository(db).list_for_trip(trip_id)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
