"""
Seed script -- populates the database with tariffs and sample providers.

Run after migrations:
    python seed.py

Creates:
  - 6 sample providers (sedan / suv / hatchback)
  - metered tariffs and the inner / outer deadhead rings around Hosur
  - rental packages (4h, 8h, 12h)
  - intercity tariffs with 15 distance slabs (10-150 km one-way)
  - airport transfer flat fares
  - platform fee rows per booking type
"""

import asyncio
from decimal import Decimal

from sqlalchemy import text

from ridecore.config import settings
from ridecore.infrastructure.database import async_session_factory, engine
from ridecore.infrastructure.models import (
    AirportTariffModel,
    IntercitySlabModel,
    IntercityTariffModel,
    MeteredTariffModel,
    PlatformFeeModel,
    ProviderModel,
    RentalPackageModel,
    TariffZoneModel,
)
from ridecore.domain.enums import BookingType

VEHICLE_CLASSES = ("hatchback", "sedan", "suv")

PROVIDERS = [
    {"id": "prov-0001", "name": "Ravi Kumar", "vehicle_class": "sedan"},
    {"id": "prov-0002", "name": "Suresh Babu", "vehicle_class": "sedan"},
    {"id": "prov-0003", "name": "Manjunath G", "vehicle_class": "suv"},
    {"id": "prov-0004", "name": "Arun Prakash", "vehicle_class": "hatchback"},
    {"id": "prov-0005", "name": "Imran Khan", "vehicle_class": "suv"},
    {"id": "prov-0006", "name": "Lokesh R", "vehicle_class": "hatchback"},
]

# base fare, km in base, per km, per minute
METERED = {
    "hatchback": (Decimal("60"), Decimal("4"), Decimal("12"), Decimal("1.0")),
    "sedan": (Decimal("80"), Decimal("4"), Decimal("14"), Decimal("1.5")),
    "suv": (Decimal("120"), Decimal("4"), Decimal("18"), Decimal("2.0")),
}

# name, hours, km included, sedan fare (scaled by CLASS_FACTOR)
RENTAL_PACKAGES = [
    ("4 Hours / 40 KM", 4, Decimal("40"), Decimal("1000")),
    ("8 Hours / 80 KM", 8, Decimal("80"), Decimal("1900")),
    ("12 Hours / 120 KM", 12, Decimal("120"), Decimal("2700")),
]
CLASS_FACTOR = {"hatchback": Decimal("0.85"), "sedan": Decimal("1"), "suv": Decimal("1.35")}

# per-day base, per km, driver allowance, daily km limit
INTERCITY = {
    "hatchback": (Decimal("1800"), Decimal("11"), Decimal("300"), Decimal("300")),
    "sedan": (Decimal("2200"), Decimal("13"), Decimal("400"), Decimal("300")),
    "suv": (Decimal("3000"), Decimal("17"), Decimal("500"), Decimal("300")),
}

AIRPORT = {
    "hatchback": (Decimal("1100"), Decimal("1200")),
    "sedan": (Decimal("1400"), Decimal("1500")),
    "suv": (Decimal("1900"), Decimal("2000")),
}

PLATFORM_FEES = {
    BookingType.METERED: Decimal("10"),
    BookingType.RENTAL: Decimal("20"),
    BookingType.INTERCITY: Decimal("20"),
    BookingType.AIRPORT_TRANSFER: Decimal("20"),
}


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM metered_tariffs"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Providers ─────────────────────────────────────────────────
        for p in PROVIDERS:
            session.add(ProviderModel(status="available", **p))
        print(f"  Created {len(PROVIDERS)} providers")

        # ── Metered + deadhead rings ──────────────────────────────────
        for vehicle_class, (base, base_km, per_km, per_min) in METERED.items():
            session.add(
                MeteredTariffModel(
                    vehicle_class=vehicle_class,
                    base_fare=base,
                    base_km_included=base_km,
                    per_km_rate=per_km,
                    per_minute_rate=per_min,
                    surge_multiplier=Decimal("1"),
                )
            )
        session.add_all(
            [
                TariffZoneModel(
                    name="Hosur Inner Ring",
                    ring="inner",
                    center_lat=settings.depot_lat,
                    center_lng=settings.depot_lng,
                    radius_km=12.0,
                ),
                TariffZoneModel(
                    name="Hosur Outer Ring",
                    ring="outer",
                    center_lat=settings.depot_lat,
                    center_lng=settings.depot_lng,
                    radius_km=25.0,
                ),
            ]
        )
        print(f"  Created {len(METERED)} metered tariffs and 2 zones")

        # ── Rentals ───────────────────────────────────────────────────
        count = 0
        for vehicle_class in VEHICLE_CLASSES:
            factor = CLASS_FACTOR[vehicle_class]
            for name, hours, km, fare in RENTAL_PACKAGES:
                session.add(
                    RentalPackageModel(
                        vehicle_class=vehicle_class,
                        package_name=name,
                        duration_hours=hours,
                        base_fare=(fare * factor).quantize(Decimal("1")),
                        km_included=km,
                        extra_km_rate=(Decimal("12") * factor).quantize(Decimal("0.01")),
                        extra_minute_rate=(Decimal("2") * factor).quantize(Decimal("0.01")),
                        is_popular=hours == 8,
                    )
                )
                count += 1
        print(f"  Created {count} rental packages")

        # ── Intercity + slabs ─────────────────────────────────────────
        for vehicle_class, (per_day, per_km, allowance, limit) in INTERCITY.items():
            session.add(
                IntercityTariffModel(
                    vehicle_class=vehicle_class,
                    base_fare_per_day=per_day,
                    per_km_rate=per_km,
                    driver_allowance_per_day=allowance,
                    daily_km_limit=limit,
                    slab_extra_km_rate=per_km,
                )
            )
            for one_way_km in range(10, 151, 10):
                # a slab covers the round trip: 2 x one-way km at the per-km rate
                session.add(
                    IntercitySlabModel(
                        vehicle_class=vehicle_class,
                        one_way_km=one_way_km,
                        fare=per_km * 2 * one_way_km + allowance,
                    )
                )
        print(f"  Created {len(INTERCITY)} intercity tariffs with 15 slabs each")

        # ── Airport ───────────────────────────────────────────────────
        for vehicle_class, (to_airport, from_airport) in AIRPORT.items():
            session.add(
                AirportTariffModel(
                    vehicle_class=vehicle_class,
                    to_airport_fare=to_airport,
                    from_airport_fare=from_airport,
                )
            )
        print(f"  Created {len(AIRPORT)} airport tariffs")

        # ── Platform fees ─────────────────────────────────────────────
        for booking_type, fee in PLATFORM_FEES.items():
            for vehicle_class in VEHICLE_CLASSES:
                session.add(
                    PlatformFeeModel(
                        booking_type=booking_type.value,
                        vehicle_class=vehicle_class,
                        platform_fee=fee,
                        tax_rate_charges=Decimal(str(settings.tax_rate_charges)),
                        tax_rate_platform_fee=Decimal(str(settings.tax_rate_platform_fee)),
                    )
                )
        print("  Created platform fee rows")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
