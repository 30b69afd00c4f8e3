"""FastAPI dependency injection helpers."""

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.domain.entities import Actor
from ridecore.domain.enums import ActorRole
from ridecore.domain.errors import NotAuthorized
from ridecore.infrastructure.database import async_session_factory
from ridecore.services.availability import AvailabilityReconciler
from ridecore.services.trip_state_machine import TripStateMachine


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield a read-only async DB session for query endpoints."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


def get_state_machine(request: Request) -> TripStateMachine:
    return request.app.state.services.machine


def get_availability(request: Request) -> AvailabilityReconciler:
    return request.app.state.services.availability


async def get_actor(
    x_actor_id: str = Header(..., description="Caller identity"),
    x_actor_role: ActorRole = Header(..., description="requester | provider | system"),
) -> Actor:
    return Actor(id=x_actor_id, role=x_actor_role)


def require_self_or_system(actor: Actor, subject_id: str, role: ActorRole) -> None:
    if actor.role == ActorRole.SYSTEM:
        return
    if actor.role == role and actor.id == subject_id:
        return
    raise NotAuthorized(f"{actor.id} may not act for {role.value} {subject_id}")
