"""
Tariff snapshot value objects.

A ``TariffSnapshot`` is read once, when fare computation begins, and every
number in the resulting ``FareBreakdown`` derives from it.  Exactly one of
the regime blocks is populated, matching ``booking_type``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from .enums import BookingType


@dataclass(frozen=True)
class DeadheadZones:
    """Inner/outer ring around the depot; drop-offs between them pay deadhead."""

    center_lat: float
    center_lng: float
    inner_radius_km: float
    outer_radius_km: float
    inner_name: str = "Inner Ring"
    outer_name: str = "Outer Ring"


@dataclass(frozen=True)
class MeteredTariff:
    base_fare: Decimal
    per_km_rate: Decimal
    base_km_included: Decimal = Decimal("0")
    per_minute_rate: Decimal = Decimal("0")
    surge_multiplier: Decimal = Decimal("1")
    zones: Optional[DeadheadZones] = None


@dataclass(frozen=True)
class RentalPackage:
    package_name: str
    duration_hours: int
    base_fare: Decimal
    km_included: Decimal
    extra_km_rate: Decimal
    extra_minute_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class DistanceSlab:
    """A slab named for its one-way km; it covers twice that, round trip."""

    one_way_km: int
    fare: Decimal

    @property
    def round_trip_km(self) -> int:
        return self.one_way_km * 2


@dataclass(frozen=True)
class IntercityTariff:
    base_fare_per_day: Decimal
    per_km_rate: Decimal
    driver_allowance_per_day: Decimal
    daily_km_limit: Decimal
    slabs: tuple[DistanceSlab, ...] = ()
    slab_extra_km_rate: Decimal = Decimal("0")


@dataclass(frozen=True)
class AirportTariff:
    to_airport_fare: Decimal
    from_airport_fare: Decimal


@dataclass(frozen=True)
class TariffSnapshot:
    version: str
    booking_type: BookingType
    vehicle_class: str
    platform_fee: Decimal
    tax_rate_charges: Decimal
    tax_rate_platform_fee: Decimal
    metered: Optional[MeteredTariff] = None
    rental: Optional[RentalPackage] = None
    intercity: Optional[IntercityTariff] = None
    airport: Optional[AirportTariff] = None
    sources: tuple[str, ...] = field(default_factory=tuple)
