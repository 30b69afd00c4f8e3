"""
Distance / duration estimation
==============================

An ordered list of strategies sharing one capability,
``estimate(input) -> DistanceEstimate | Skipped``, tried in sequence:

1. **Breadcrumbs** -- sum of great-circle hops between the trip's GPS
   samples, duration = first -> last sample (min 1 minute).  Rejected when
   the path is below ``floor_ratio`` of the pickup -> destination baseline,
   except that a rejected track on a baseline under 100 m is a stationary
   engagement billed as 0.1 km / 1 min; accepted but flagged for audit
   above ``ceiling_ratio``.
2. **Routing** -- driving distance/duration from the routing service.
3. **Geometric** -- baseline x road circuity factor, duration from the
   wall-clock time since the trip started.  Never skips.

Only tier-1 results are doubled for one-way intercity bookings, whose GPS
track covers the outbound leg while billing covers the return too.

Every strategy is pure with respect to the trip store: breadcrumbs are
loaded by the caller and passed in.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Protocol, Union

from .distance import haversine_km, path_distance_km
from .entities import Breadcrumb, Location, as_utc
from .enums import BookingType, EstimationTier, TripLeg

logger = logging.getLogger(__name__)


class RoutingUnavailable(Exception):
    """The routing service could not be reached or answered an error."""


@dataclass(frozen=True)
class RouteResult:
    distance_km: float
    duration_seconds: float


class RoutingProvider(Protocol):
    async def route(
        self, origin: Location, destination: Location
    ) -> Optional[RouteResult]: ...


@dataclass(frozen=True)
class EstimationThresholds:
    min_breadcrumbs: int = 2
    floor_ratio: float = 0.5
    ceiling_ratio: float = 3.0
    stationary_baseline_km: float = 0.1
    stationary_distance_km: float = 0.1
    stationary_duration_minutes: int = 1
    road_circuity_factor: float = 1.3
    max_segment_km: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "EstimationThresholds":
        return cls(
            min_breadcrumbs=settings.min_breadcrumbs,
            floor_ratio=settings.plausibility_floor_ratio,
            ceiling_ratio=settings.plausibility_ceiling_ratio,
            stationary_baseline_km=settings.stationary_baseline_km,
            stationary_distance_km=settings.stationary_distance_km,
            stationary_duration_minutes=settings.stationary_duration_minutes,
            road_circuity_factor=settings.road_circuity_factor,
            max_segment_km=settings.max_segment_km,
        )


@dataclass(frozen=True)
class EstimationInput:
    trip_id: str
    booking_type: BookingType
    pickup: Location
    destination: Location
    now: datetime
    started_at: Optional[datetime] = None
    trip_leg: TripLeg = TripLeg.ROUND_TRIP
    breadcrumbs: tuple[Breadcrumb, ...] = ()

    @property
    def baseline_km(self) -> float:
        return haversine_km(
            self.pickup.latitude, self.pickup.longitude,
            self.destination.latitude, self.destination.longitude,
        )

    @property
    def bills_return_leg(self) -> bool:
        return (
            self.booking_type == BookingType.INTERCITY
            and self.trip_leg == TripLeg.ONE_WAY
        )


@dataclass(frozen=True)
class DistanceEstimate:
    distance_km: float
    duration_minutes: int
    tier: EstimationTier
    reason: str
    flagged_for_audit: bool = False
    doubled: bool = False
    attempts: tuple[tuple[str, str], ...] = ()
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        """``EstimationDegraded``: a fallback tier replaced the GPS track."""
        return self.tier != EstimationTier.BREADCRUMBS

    @property
    def source(self) -> str:
        return self.tier.name.lower()


@dataclass(frozen=True)
class Skipped:
    reason: str


Outcome = Union[DistanceEstimate, Skipped]


def _minutes(seconds: float) -> int:
    return max(1, round(seconds / 60))


# ── Strategy hierarchy ────────────────────────────────────────────────


class EstimationStrategy(ABC):
    name: str = "strategy"
    tier: EstimationTier

    @abstractmethod
    async def estimate(self, data: EstimationInput) -> Outcome: ...


class BreadcrumbStrategy(EstimationStrategy):
    name = "breadcrumbs"
    tier = EstimationTier.BREADCRUMBS

    def __init__(self, thresholds: EstimationThresholds):
        self.thresholds = thresholds

    async def estimate(self, data: EstimationInput) -> Outcome:
        t = self.thresholds
        started_at = as_utc(data.started_at)
        points = sorted(
            (
                b
                for b in data.breadcrumbs
                if started_at is None or as_utc(b.captured_at) >= started_at
            ),
            key=lambda b: as_utc(b.captured_at),
        )
        if len(points) < t.min_breadcrumbs:
            return Skipped(f"insufficient breadcrumbs ({len(points)})")

        path_km, segments = path_distance_km(
            ((b.latitude, b.longitude) for b in points), t.max_segment_km
        )
        span = as_utc(points[-1].captured_at) - as_utc(points[0].captured_at)
        duration = _minutes(span.total_seconds())
        baseline = data.baseline_km
        diagnostics = {
            "points": len(points),
            "segments_used": segments,
            "path_km": round(path_km, 3),
            "baseline_km": round(baseline, 3),
        }

        # a track with no displacement at all fails like a short one
        if path_km < t.floor_ratio * baseline or path_km == 0:
            if baseline < t.stationary_baseline_km:
                return DistanceEstimate(
                    distance_km=t.stationary_distance_km,
                    duration_minutes=t.stationary_duration_minutes,
                    tier=self.tier,
                    reason="stationary engagement",
                    diagnostics=diagnostics,
                )
            return Skipped(
                f"implausible path {path_km:.3f} km below "
                f"{t.floor_ratio:.0%} of baseline {baseline:.3f} km"
            )

        flagged = (
            baseline >= t.stationary_baseline_km
            and path_km > t.ceiling_ratio * baseline
        )
        return DistanceEstimate(
            distance_km=path_km,
            duration_minutes=duration,
            tier=self.tier,
            reason="erratic tracking accepted" if flagged else "gps path",
            flagged_for_audit=flagged,
            diagnostics=diagnostics,
        )


class RoutingStrategy(EstimationStrategy):
    name = "routing"
    tier = EstimationTier.ROUTING

    def __init__(self, router: Optional[RoutingProvider]):
        self.router = router

    async def estimate(self, data: EstimationInput) -> Outcome:
        if self.router is None:
            return Skipped("no routing service configured")
        try:
            route = await self.router.route(data.pickup, data.destination)
        except RoutingUnavailable as exc:
            return Skipped(f"routing unavailable: {exc}")
        if route is None or route.distance_km <= 0:
            return Skipped("routing returned no route")
        return DistanceEstimate(
            distance_km=route.distance_km,
            duration_minutes=_minutes(route.duration_seconds),
            tier=self.tier,
            reason="driving route",
        )


class GeometricStrategy(EstimationStrategy):
    name = "geometric"
    tier = EstimationTier.GEOMETRIC

    def __init__(self, thresholds: EstimationThresholds):
        self.thresholds = thresholds

    async def estimate(self, data: EstimationInput) -> Outcome:
        baseline = data.baseline_km
        started_at = as_utc(data.started_at)
        elapsed = (
            (as_utc(data.now) - started_at).total_seconds() if started_at else 0.0
        )
        return DistanceEstimate(
            distance_km=baseline * self.thresholds.road_circuity_factor,
            duration_minutes=_minutes(max(0.0, elapsed)),
            tier=self.tier,
            reason="great-circle x circuity",
            diagnostics={
                "baseline_km": round(baseline, 3),
                "circuity_factor": self.thresholds.road_circuity_factor,
            },
        )


# ── Estimator facade ──────────────────────────────────────────────────


class DistanceEstimator:
    """Runs strategies in order; the last one must always produce a result."""

    def __init__(self, strategies: list[EstimationStrategy]):
        if not strategies:
            raise ValueError("DistanceEstimator needs at least one strategy")
        self.strategies = strategies

    @classmethod
    def default(
        cls,
        router: Optional[RoutingProvider],
        thresholds: Optional[EstimationThresholds] = None,
    ) -> "DistanceEstimator":
        thresholds = thresholds or EstimationThresholds()
        return cls(
            [
                BreadcrumbStrategy(thresholds),
                RoutingStrategy(router),
                GeometricStrategy(thresholds),
            ]
        )

    async def estimate(self, data: EstimationInput) -> DistanceEstimate:
        attempts: list[tuple[str, str]] = []
        for strategy in self.strategies:
            outcome = await strategy.estimate(data)
            if isinstance(outcome, Skipped):
                attempts.append((strategy.name, outcome.reason))
                continue

            result = replace(outcome, attempts=tuple(attempts))
            if result.tier == EstimationTier.BREADCRUMBS and data.bills_return_leg:
                result = replace(
                    result, distance_km=result.distance_km * 2, doubled=True
                )
            logger.info(
                "Trip %s distance %.3f km / %d min via tier %d (%s)%s",
                data.trip_id,
                result.distance_km,
                result.duration_minutes,
                result.tier.value,
                result.reason,
                " [degraded]" if result.degraded else "",
            )
            return result

        raise RuntimeError(
            f"No estimation strategy produced a result for trip {data.trip_id}"
        )
