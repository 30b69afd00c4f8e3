"""Wiring of the trip core: one place that builds the long-lived services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ridecore.domain.estimation import (
    DistanceEstimator,
    EstimationThresholds,
    RoutingProvider,
)
from ridecore.domain.events import EventBus
from ridecore.domain.pricing import FareEngine
from ridecore.infrastructure.routing_client import DirectionsClient
from ridecore.services.availability import AvailabilityReconciler
from ridecore.services.trip_state_machine import TripStateMachine

_FROM_SETTINGS = object()


@dataclass
class Services:
    bus: EventBus
    availability: AvailabilityReconciler
    machine: TripStateMachine


def build_services(session_factory, settings, router=_FROM_SETTINGS) -> Services:
    """
    Build the event bus, availability reconciler and state machine.

    *router* defaults to a ``DirectionsClient`` when an API key is
    configured; pass ``None`` to run without the routing tier.
    """
    routing: Optional[RoutingProvider] = (
        DirectionsClient.from_settings(settings) if router is _FROM_SETTINGS else router
    )
    bus = EventBus()
    availability = AvailabilityReconciler(session_factory)
    machine = TripStateMachine(
        session_factory=session_factory,
        estimator=DistanceEstimator.default(
            routing, EstimationThresholds.from_settings(settings)
        ),
        fare_engine=FareEngine.from_settings(settings),
        availability=availability,
        bus=bus,
        tariff_defaults=settings,
        code_digits=settings.one_time_code_digits,
    )
    return Services(bus=bus, availability=availability, machine=machine)
