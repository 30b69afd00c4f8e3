"""
Fare Engine  (Strategy Pattern)
===============================

One pricing strategy per booking type produces the pre-tax charge lines;
the engine then adds the platform fee and the two tax lines.

Regimes
-------
* **Metered**   base + extra km x per-km + minutes x per-minute
                + deadhead (drop-off between inner and outer ring)
                + surge ((subtotal) x (multiplier - 1))
* **Rental**    package fare + (distance + return-to-depot - included km)
                x overage rate + extra minutes x per-minute rate
* **Intercity** < threshold: smallest slab covering the distance (a slab
                covers 2 x its named one-way km) + excess at the slab
                overage rate.  >= threshold: per-day base + per-day driver
                allowance + daily km allowance x per-km, excess at per-km.
* **Airport**   flat fare by direction.

Rounding
--------
Every line is rounded half-up to 0.01 and ``total_fare`` is the sum of the
rounded lines, so a stored breakdown always adds up.

The engine never derives distance or duration; callers pass them in.
Complexity: O(s) for s intercity slabs, O(1) otherwise.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .distance import haversine_km
from .entities import FareBreakdown, Location
from .enums import BookingType
from .errors import TariffNotFound
from .tariffs import DeadheadZones, TariffSnapshot

CENT = Decimal("0.01")
ZERO = Decimal("0")


def money(value: Any) -> Decimal:
    """Round a number to currency precision (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


@dataclass(frozen=True)
class FareRequest:
    booking_type: BookingType
    vehicle_class: str
    distance_km: float
    duration_minutes: int
    pickup: Location
    dropoff: Location
    rental_hours: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    distance_source: Optional[str] = None


@dataclass
class Charges:
    """Pre-tax charge lines produced by a strategy."""

    base_fare: Decimal = ZERO
    distance_fare: Decimal = ZERO
    time_fare: Decimal = ZERO
    surge_charges: Decimal = ZERO
    deadhead_charges: Decimal = ZERO
    extra_km_charges: Decimal = ZERO
    driver_allowance: Decimal = ZERO
    details: dict[str, Any] = field(default_factory=dict)

    def rounded(self) -> "Charges":
        return Charges(
            base_fare=money(self.base_fare),
            distance_fare=money(self.distance_fare),
            time_fare=money(self.time_fare),
            surge_charges=money(self.surge_charges),
            deadhead_charges=money(self.deadhead_charges),
            extra_km_charges=money(self.extra_km_charges),
            driver_allowance=money(self.driver_allowance),
            details=self.details,
        )

    def subtotal(self) -> Decimal:
        return (
            self.base_fare
            + self.distance_fare
            + self.time_fare
            + self.surge_charges
            + self.deadhead_charges
            + self.extra_km_charges
            + self.driver_allowance
        )


# ── Strategy hierarchy ────────────────────────────────────────────────


class FareStrategy(ABC):
    @abstractmethod
    def charges(self, request: FareRequest, snapshot: TariffSnapshot) -> Charges: ...


class MeteredPricing(FareStrategy):
    def __init__(self, depot: Location):
        self.depot = depot

    def charges(self, request: FareRequest, snapshot: TariffSnapshot) -> Charges:
        tariff = snapshot.metered
        if tariff is None:
            raise TariffNotFound(
                f"No metered tariff for vehicle class {request.vehicle_class}"
            )

        distance = _dec(request.distance_km)
        extra_km = max(ZERO, distance - tariff.base_km_included)
        distance_fare = extra_km * tariff.per_km_rate
        time_fare = Decimal(request.duration_minutes) * tariff.per_minute_rate

        deadhead, zone_name, is_inner = self.deadhead(
            request.dropoff, tariff.per_km_rate, tariff.zones
        )
        before_surge = tariff.base_fare + distance_fare + time_fare + deadhead
        surge = before_surge * (tariff.surge_multiplier - 1)

        return Charges(
            base_fare=tariff.base_fare,
            distance_fare=distance_fare,
            time_fare=time_fare,
            surge_charges=max(ZERO, surge),
            deadhead_charges=deadhead,
            details={
                "base_km_included": float(tariff.base_km_included),
                "extra_km": float(extra_km),
                "per_km_rate": float(tariff.per_km_rate),
                "per_minute_rate": float(tariff.per_minute_rate),
                "surge_multiplier": float(tariff.surge_multiplier),
                "zone_detected": zone_name,
                "is_inner_zone": is_inner,
            },
        )

    def deadhead(
        self,
        dropoff: Location,
        per_km_rate: Decimal,
        zones: Optional[DeadheadZones],
    ) -> tuple[Decimal, str, bool]:
        """
        Half the drop-off -> depot distance at the per-km rate, charged only
        when the drop-off lies between the inner and the outer ring.
        """
        if zones is None:
            return ZERO, "Unknown", False

        to_center = haversine_km(
            dropoff.latitude, dropoff.longitude, zones.center_lat, zones.center_lng
        )
        if to_center <= zones.inner_radius_km:
            return ZERO, zones.inner_name, True
        if to_center > zones.outer_radius_km:
            return ZERO, "Beyond Outer Zone", False

        to_depot = haversine_km(
            dropoff.latitude, dropoff.longitude,
            self.depot.latitude, self.depot.longitude,
        )
        return _dec(to_depot) / 2 * per_km_rate, "Between Inner and Outer Ring", False


class RentalPricing(FareStrategy):
    def __init__(self, depot: Location):
        self.depot = depot

    def charges(self, request: FareRequest, snapshot: TariffSnapshot) -> Charges:
        package = snapshot.rental
        if package is None or (
            request.rental_hours is not None
            and package.duration_hours != request.rental_hours
        ):
            raise TariffNotFound(
                f"No {request.rental_hours}h rental package for "
                f"vehicle class {request.vehicle_class}"
            )

        return_km = haversine_km(
            request.dropoff.latitude, request.dropoff.longitude,
            self.depot.latitude, self.depot.longitude,
        )
        total_km = _dec(request.distance_km) + _dec(return_km)
        extra_km = max(ZERO, total_km - package.km_included)

        package_minutes = package.duration_hours * 60
        extra_minutes = max(0, request.duration_minutes - package_minutes)

        extra_km_charges = extra_km * package.extra_km_rate
        time_fare = Decimal(extra_minutes) * package.extra_minute_rate

        return Charges(
            base_fare=package.base_fare,
            time_fare=time_fare,
            extra_km_charges=extra_km_charges,
            details={
                "package_name": package.package_name,
                "package_hours": package.duration_hours,
                "base_km_included": float(package.km_included),
                "return_to_depot_km": round(return_km, 3),
                "total_distance_with_return": float(total_km),
                "extra_km": float(extra_km),
                "extra_minutes": extra_minutes,
                "per_km_rate": float(package.extra_km_rate),
                "per_minute_rate": float(package.extra_minute_rate),
                "within_allowance": extra_km == 0 and extra_minutes == 0,
            },
        )


class IntercityPricing(FareStrategy):
    def __init__(self, slab_threshold_km: float = 300.0):
        self.slab_threshold_km = slab_threshold_km

    def charges(self, request: FareRequest, snapshot: TariffSnapshot) -> Charges:
        tariff = snapshot.intercity
        if tariff is None:
            raise TariffNotFound(
                f"No intercity tariff for vehicle class {request.vehicle_class}"
            )

        distance = _dec(request.distance_km)
        if request.distance_km < self.slab_threshold_km and tariff.slabs:
            return self._slab(distance, tariff)
        return self._daily(distance, request.duration_minutes, tariff)

    def _slab(self, distance: Decimal, tariff) -> Charges:
        slabs = sorted(tariff.slabs, key=lambda s: s.one_way_km)
        selected = next(
            (s for s in slabs if distance <= s.round_trip_km), slabs[-1]
        )
        extra_km = max(ZERO, distance - selected.round_trip_km)

        return Charges(
            base_fare=selected.fare,
            extra_km_charges=extra_km * tariff.slab_extra_km_rate,
            details={
                "pricing_method": "slab",
                "package_name": (
                    f"{selected.one_way_km}km Slab "
                    f"(covers up to {selected.round_trip_km}km round trip)"
                ),
                "slab_one_way_km": selected.one_way_km,
                "base_km_included": selected.round_trip_km,
                "slab_fare": float(selected.fare),
                "extra_km": float(extra_km),
                "per_km_rate": float(tariff.slab_extra_km_rate),
                "within_allowance": extra_km == 0,
                "days_calculated": 1,
            },
        )

    def _daily(self, distance: Decimal, duration_minutes: int, tariff) -> Charges:
        days = max(1, math.ceil(duration_minutes / (60 * 24)))
        km_allowance = tariff.daily_km_limit * days
        extra_km = max(ZERO, distance - km_allowance)

        return Charges(
            base_fare=tariff.base_fare_per_day * days,
            distance_fare=km_allowance * tariff.per_km_rate,
            extra_km_charges=extra_km * tariff.per_km_rate,
            driver_allowance=tariff.driver_allowance_per_day * days,
            details={
                "pricing_method": "per_day",
                "days_calculated": days,
                "daily_km_limit": float(tariff.daily_km_limit),
                "km_allowance": float(km_allowance),
                "extra_km": float(extra_km),
                "per_km_rate": float(tariff.per_km_rate),
                "within_allowance": extra_km == 0,
            },
        )


class AirportPricing(FareStrategy):
    def __init__(self, reference: Location):
        self.reference = reference

    def charges(self, request: FareRequest, snapshot: TariffSnapshot) -> Charges:
        tariff = snapshot.airport
        if tariff is None:
            raise TariffNotFound(
                f"No airport tariff for vehicle class {request.vehicle_class}"
            )

        to_airport = self.is_to_airport(request.pickup, request.dropoff)
        return Charges(
            base_fare=tariff.to_airport_fare if to_airport else tariff.from_airport_fare,
            details={
                "direction": "to_airport" if to_airport else "from_airport",
            },
        )

    def is_to_airport(self, pickup: Location, dropoff: Location) -> bool:
        """The endpoint closer to the reference point is the origin side."""
        ref = self.reference
        pickup_gap = haversine_km(
            pickup.latitude, pickup.longitude, ref.latitude, ref.longitude
        )
        dropoff_gap = haversine_km(
            dropoff.latitude, dropoff.longitude, ref.latitude, ref.longitude
        )
        return pickup_gap < dropoff_gap


# ── Engine facade ─────────────────────────────────────────────────────


class FareEngine:
    """Pure fare computation used by the trip state machine."""

    def __init__(
        self,
        depot: Location,
        airport_reference: Location,
        intercity_slab_threshold_km: float = 300.0,
    ):
        self.strategies: dict[BookingType, FareStrategy] = {
            BookingType.METERED: MeteredPricing(depot),
            BookingType.RENTAL: RentalPricing(depot),
            BookingType.INTERCITY: IntercityPricing(intercity_slab_threshold_km),
            BookingType.AIRPORT_TRANSFER: AirportPricing(airport_reference),
        }

    @classmethod
    def from_settings(cls, settings) -> "FareEngine":
        return cls(
            depot=Location(settings.depot_lat, settings.depot_lng),
            airport_reference=Location(
                settings.airport_reference_lat, settings.airport_reference_lng
            ),
            intercity_slab_threshold_km=settings.intercity_slab_threshold_km,
        )

    def calculate(self, request: FareRequest, snapshot: TariffSnapshot) -> FareBreakdown:
        if (
            snapshot.booking_type != request.booking_type
            or snapshot.vehicle_class != request.vehicle_class
        ):
            raise TariffNotFound(
                f"Tariff {snapshot.version} does not price "
                f"{request.booking_type.value}/{request.vehicle_class}"
            )

        charges = self.strategies[request.booking_type].charges(request, snapshot).rounded()
        subtotal = charges.subtotal()
        platform_fee = money(snapshot.platform_fee)
        tax_on_charges = money(subtotal * snapshot.tax_rate_charges)
        tax_on_platform_fee = money(platform_fee * snapshot.tax_rate_platform_fee)
        total = subtotal + platform_fee + tax_on_charges + tax_on_platform_fee

        details: dict[str, Any] = {
            "actual_distance_km": request.distance_km,
            "actual_duration_minutes": request.duration_minutes,
            "distance_source": request.distance_source,
            "tariff_version": snapshot.version,
            "platform_fee_flat": float(platform_fee),
            "tax_rate_charges": float(snapshot.tax_rate_charges),
            "tax_rate_platform_fee": float(snapshot.tax_rate_platform_fee),
        }
        if request.rental_hours is not None:
            details["rental_hours"] = request.rental_hours
        if request.scheduled_time is not None:
            details["scheduled_time"] = request.scheduled_time.isoformat()
        details.update(charges.details)

        return FareBreakdown(
            booking_type=request.booking_type,
            vehicle_class=request.vehicle_class,
            base_fare=charges.base_fare,
            distance_fare=charges.distance_fare,
            time_fare=charges.time_fare,
            surge_charges=charges.surge_charges,
            deadhead_charges=charges.deadhead_charges,
            extra_km_charges=charges.extra_km_charges,
            driver_allowance=charges.driver_allowance,
            platform_fee=platform_fee,
            tax_on_charges=tax_on_charges,
            tax_on_platform_fee=tax_on_platform_fee,
            total_fare=total,
            details=details,
        )
