"""
Helpers shared by the test modules (plain functions, no fixtures).

Distances are laid out along a meridian so Haversine lengths are exact to
floating-point noise: ``north_of(origin, 7.9)`` is 7.9 km from *origin*.
"""

import asyncio
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from ridecore.config import settings
from ridecore.domain.entities import Breadcrumb, Location
from ridecore.domain.enums import BookingType
from ridecore.domain.estimation import RouteResult
from ridecore.domain.tariffs import (
    AirportTariff,
    DeadheadZones,
    DistanceSlab,
    IntercityTariff,
    MeteredTariff,
    RentalPackage,
    TariffSnapshot,
)
from ridecore.infrastructure.models import (
    AirportTariffModel,
    IntercitySlabModel,
    IntercityTariffModel,
    MeteredTariffModel,
    PlatformFeeModel,
    ProviderModel,
    RentalPackageModel,
)

EARTH_RADIUS_KM = 6_371.0

DEPOT = Location(settings.depot_lat, settings.depot_lng)


def north_of(origin: Location, km: float) -> Location:
    return Location(origin.latitude + math.degrees(km / EARTH_RADIUS_KM), origin.longitude)


def track(
    trip_id: str,
    start: datetime,
    offsets_km: list[float],
    minutes: float,
    origin: Location = DEPOT,
) -> list[Breadcrumb]:
    """Breadcrumbs at *offsets_km* north of *origin*, evenly spread over *minutes*."""
    step = minutes * 60 / max(1, len(offsets_km) - 1)
    crumbs = []
    for i, km in enumerate(offsets_km):
        point = north_of(origin, km)
        crumbs.append(
            Breadcrumb(
                trip_id=trip_id,
                latitude=point.latitude,
                longitude=point.longitude,
                captured_at=start + timedelta(seconds=i * step),
            )
        )
    return crumbs


# ── Fakes ─────────────────────────────────────────────────────────────


class StubRouter:
    """Routing service double; optionally parks every call on *gate*."""

    def __init__(
        self,
        result: Optional[RouteResult] = None,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.result = result
        self.error = error
        self.gate = gate
        self.calls = 0

    async def route(self, origin, destination):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class EventRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]


async def wait_for(predicate, attempts: int = 200, delay: float = 0.01) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition not reached")


# ── Tariffs ───────────────────────────────────────────────────────────

METERED_SEDAN = MeteredTariff(
    base_fare=Decimal("50"),
    per_km_rate=Decimal("12"),
    base_km_included=Decimal("4"),
    per_minute_rate=Decimal("1"),
)

RENTAL_4H = RentalPackage(
    package_name="4 Hours / 40 KM",
    duration_hours=4,
    base_fare=Decimal("1000"),
    km_included=Decimal("40"),
    extra_km_rate=Decimal("10"),
    extra_minute_rate=Decimal("2"),
)

SLABS = tuple(
    DistanceSlab(one_way_km=km, fare=Decimal(1000 + 20 * km)) for km in range(10, 151, 10)
)

INTERCITY_SEDAN = IntercityTariff(
    base_fare_per_day=Decimal("2000"),
    per_km_rate=Decimal("12"),
    driver_allowance_per_day=Decimal("300"),
    daily_km_limit=Decimal("300"),
    slabs=SLABS,
    slab_extra_km_rate=Decimal("12"),
)

AIRPORT_SEDAN = AirportTariff(
    to_airport_fare=Decimal("1200"), from_airport_fare=Decimal("1400")
)

HOSUR_RINGS = DeadheadZones(
    center_lat=DEPOT.latitude,
    center_lng=DEPOT.longitude,
    inner_radius_km=12.0,
    outer_radius_km=25.0,
)


def snapshot(booking_type: BookingType, **block) -> TariffSnapshot:
    fee = Decimal("10") if booking_type == BookingType.METERED else Decimal("20")
    return TariffSnapshot(
        version=f"{booking_type.value}/sedan/v1+fee-v1",
        booking_type=booking_type,
        vehicle_class="sedan",
        platform_fee=fee,
        tax_rate_charges=Decimal("0.05"),
        tax_rate_platform_fee=Decimal("0.18"),
        **block,
    )


async def seed_tariffs(session_factory) -> None:
    """Sedan tariffs for every regime plus providers prov-1 and prov-2."""
    async with session_factory() as session:
        session.add_all(
            [
                ProviderModel(id="prov-1", name="Ravi Kumar", vehicle_class="sedan"),
                ProviderModel(id="prov-2", name="Suresh Babu", vehicle_class="sedan"),
                MeteredTariffModel(
                    vehicle_class="sedan",
                    base_fare=Decimal("50"),
                    base_km_included=Decimal("4"),
                    per_km_rate=Decimal("12"),
                    per_minute_rate=Decimal("1"),
                    surge_multiplier=Decimal("1"),
                ),
                RentalPackageModel(
                    vehicle_class="sedan",
                    package_name="4 Hours / 40 KM",
                    duration_hours=4,
                    base_fare=Decimal("1000"),
                    km_included=Decimal("40"),
                    extra_km_rate=Decimal("10"),
                    extra_minute_rate=Decimal("2"),
                ),
                IntercityTariffModel(
                    vehicle_class="sedan",
                    base_fare_per_day=Decimal("2000"),
                    per_km_rate=Decimal("12"),
                    driver_allowance_per_day=Decimal("300"),
                    daily_km_limit=Decimal("300"),
                    slab_extra_km_rate=Decimal("12"),
                ),
                AirportTariffModel(
                    vehicle_class="sedan",
                    to_airport_fare=Decimal("1200"),
                    from_airport_fare=Decimal("1400"),
                ),
            ]
        )
        for slab in SLABS:
            session.add(
                IntercitySlabModel(
                    vehicle_class="sedan", one_way_km=slab.one_way_km, fare=slab.fare
                )
            )
        # metered has no row: the configured default fee applies
        for booking_type in (
            BookingType.RENTAL,
            BookingType.INTERCITY,
            BookingType.AIRPORT_TRANSFER,
        ):
            session.add(
                PlatformFeeModel(
                    booking_type=booking_type.value,
                    vehicle_class="sedan",
                    platform_fee=Decimal("20"),
                )
            )
        await session.commit()


async def provider_status(session_factory, provider_id: str) -> str:
    async with session_factory() as session:
        return (await session.get(ProviderModel, provider_id)).status


async def set_provider_status(session_factory, provider_id: str, status: str) -> None:
    async with session_factory() as session:
        (await session.get(ProviderModel, provider_id)).status = status
        await session.commit()
