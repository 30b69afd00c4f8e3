"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and speaks in
domain entities.  Trip writes go through ``TripRepository.compare_and_swap``
only: the UPDATE matches on the observed status and row version, and a
zero row count means somebody else moved the trip first.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AirportTariffModel,
    BreadcrumbModel,
    EstimationLogModel,
    FareBreakdownModel,
    IntercitySlabModel,
    IntercityTariffModel,
    MeteredTariffModel,
    PlatformFeeModel,
    ProviderModel,
    RentalPackageModel,
    TariffZoneModel,
    TripModel,
)
from ridecore.domain.enums import (
    ACTIVE_STATUSES,
    AvailabilityStatus,
    BookingType,
    CodeKind,
    TripLeg,
    TripStatus,
)
from ridecore.domain.entities import (
    Breadcrumb,
    FareBreakdown,
    Location,
    OneTimeCode,
    Trip,
    as_utc,
)
from ridecore.domain.errors import TariffNotFound
from ridecore.domain.estimation import DistanceEstimate
from ridecore.domain.tariffs import (
    AirportTariff,
    DeadheadZones,
    DistanceSlab,
    IntercityTariff,
    MeteredTariff,
    RentalPackage,
    TariffSnapshot,
)


def _d(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ── Trips ─────────────────────────────────────────────────────────────


def trip_from_row(row: TripModel) -> Trip:
    code = None
    if row.code_kind and row.code_value and row.code_issued_in:
        code = OneTimeCode(
            kind=CodeKind(row.code_kind),
            value=row.code_value,
            issued_in=TripStatus(row.code_issued_in),
        )
    return Trip(
        id=row.id,
        requester_id=row.requester_id,
        provider_id=row.provider_id,
        pickup=Location(row.pickup_lat, row.pickup_lng),
        destination=Location(row.destination_lat, row.destination_lng),
        pickup_address=row.pickup_address or "",
        destination_address=row.destination_address or "",
        booking_type=BookingType(row.booking_type),
        trip_leg=TripLeg(row.trip_leg),
        vehicle_class=row.vehicle_class,
        rental_hours=row.rental_hours,
        scheduled_time=as_utc(row.scheduled_time),
        status=TripStatus(row.status),
        version=row.version,
        code=code,
        fare_amount=_d(row.fare_amount) if row.fare_amount is not None else None,
        distance_km=row.distance_km,
        duration_minutes=row.duration_minutes,
        payment_method=row.payment_method,
        payment_status=row.payment_status,
        cancellation_reason=row.cancellation_reason,
        cancelled_by=row.cancelled_by,
        rating=row.rating,
        feedback=row.feedback,
        created_at=as_utc(row.created_at),
        assigned_at=as_utc(row.assigned_at),
        arrived_at=as_utc(row.arrived_at),
        started_at=as_utc(row.started_at),
        completed_at=as_utc(row.completed_at),
        cancelled_at=as_utc(row.cancelled_at),
    )


def _mutable_values(trip: Trip) -> dict[str, Any]:
    """Columns a transition may change; identity and booking stay fixed."""
    code = trip.code
    return {
        "provider_id": trip.provider_id,
        "status": trip.status.value,
        "version": trip.version,
        "code_kind": code.kind.value if code else None,
        "code_value": code.value if code else None,
        "code_issued_in": code.issued_in.value if code else None,
        "fare_amount": trip.fare_amount,
        "distance_km": trip.distance_km,
        "duration_minutes": trip.duration_minutes,
        "payment_status": trip.payment_status,
        "cancellation_reason": trip.cancellation_reason,
        "cancelled_by": trip.cancelled_by,
        "rating": trip.rating,
        "feedback": trip.feedback,
        "assigned_at": trip.assigned_at,
        "arrived_at": trip.arrived_at,
        "started_at": trip.started_at,
        "completed_at": trip.completed_at,
        "cancelled_at": trip.cancelled_at,
    }


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: Trip) -> Trip:
        row = TripModel(
            id=trip.id,
            requester_id=trip.requester_id,
            pickup_lat=trip.pickup.latitude,
            pickup_lng=trip.pickup.longitude,
            pickup_address=trip.pickup_address,
            destination_lat=trip.destination.latitude,
            destination_lng=trip.destination.longitude,
            destination_address=trip.destination_address,
            booking_type=trip.booking_type.value,
            trip_leg=trip.trip_leg.value,
            vehicle_class=trip.vehicle_class,
            rental_hours=trip.rental_hours,
            scheduled_time=as_utc(trip.scheduled_time),
            payment_method=trip.payment_method,
            status=trip.status.value,
            version=trip.version,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return trip_from_row(row)

    async def get(self, trip_id: str) -> Optional[Trip]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.id == trip_id)
        )
        row = result.scalar_one_or_none()
        return trip_from_row(row) if row else None

    async def active_for_provider(self, provider_id: str) -> Optional[Trip]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.provider_id == provider_id)
            .where(TripModel.status.in_([s.value for s in ACTIVE_STATUSES]))
            .order_by(TripModel.created_at)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return trip_from_row(row) if row else None

    async def compare_and_swap(
        self,
        trip: Trip,
        expected_status: TripStatus,
        expected_version: int,
        *,
        require_unassigned: bool = False,
    ) -> bool:
        """Write *trip* only if the row still shows the observed state."""
        stmt = (
            update(TripModel)
            .where(TripModel.id == trip.id)
            .where(TripModel.status == expected_status.value)
            .where(TripModel.version == expected_version)
        )
        if require_unassigned:
            stmt = stmt.where(TripModel.provider_id.is_(None))
        result = await self.session.execute(
            stmt.values(**_mutable_values(trip)).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount == 1


# ── Breadcrumbs ───────────────────────────────────────────────────────


def _crumb(row: BreadcrumbModel) -> Breadcrumb:
    return Breadcrumb(
        trip_id=row.trip_id,
        latitude=row.latitude,
        longitude=row.longitude,
        captured_at=as_utc(row.captured_at),
        accuracy_m=row.accuracy_m,
    )


class BreadcrumbRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, points: list[Breadcrumb]) -> int:
        for p in points:
            self.session.add(
                BreadcrumbModel(
                    trip_id=p.trip_id,
                    latitude=p.latitude,
                    longitude=p.longitude,
                    captured_at=as_utc(p.captured_at),
                    accuracy_m=p.accuracy_m,
                )
            )
        await self.session.flush()
        return len(points)

    async def list_for_trip(self, trip_id: str) -> list[Breadcrumb]:
        result = await self.session.execute(
            select(BreadcrumbModel)
            .where(BreadcrumbModel.trip_id == trip_id)
            .order_by(BreadcrumbModel.captured_at, BreadcrumbModel.id)
        )
        return [_crumb(r) for r in result.scalars().all()]


# ── Providers ─────────────────────────────────────────────────────────


class ProviderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, provider_id: str) -> Optional[ProviderModel]:
        return await self.session.get(ProviderModel, provider_id)

    async def list_ids(self) -> list[str]:
        result = await self.session.execute(select(ProviderModel.id))
        return list(result.scalars().all())

    async def set_status(self, provider_id: str, status: AvailabilityStatus) -> bool:
        result = await self.session.execute(
            update(ProviderModel)
            .where(ProviderModel.id == provider_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_status_unless(
        self,
        provider_id: str,
        status: AvailabilityStatus,
        unless: AvailabilityStatus,
    ) -> bool:
        """Compare-and-swap: write *status* unless the flag currently is *unless*."""
        result = await self.session.execute(
            update(ProviderModel)
            .where(ProviderModel.id == provider_id)
            .where(ProviderModel.status != unless.value)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def current_status(self, provider_id: str) -> Optional[AvailabilityStatus]:
        """Fresh read of the flag, bypassing the session's identity map."""
        result = await self.session.execute(
            select(ProviderModel.status).where(ProviderModel.id == provider_id)
        )
        status = result.scalar_one_or_none()
        return AvailabilityStatus(status) if status is not None else None

    @staticmethod
    def _live_trip(provider_id: str):
        return (
            select(TripModel.id)
            .where(TripModel.provider_id == provider_id)
            .where(TripModel.status.in_([s.value for s in ACTIVE_STATUSES]))
            .exists()
        )

    async def engage_if_live(self, provider_id: str) -> bool:
        """-> engaged, but only while a live trip still names the provider."""
        result = await self.session.execute(
            update(ProviderModel)
            .where(ProviderModel.id == provider_id)
            .where(self._live_trip(provider_id))
            .values(status=AvailabilityStatus.ENGAGED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_if_idle(self, provider_id: str) -> bool:
        """engaged -> available, but only while no live trip names the provider."""
        result = await self.session.execute(
            update(ProviderModel)
            .where(ProviderModel.id == provider_id)
            .where(ProviderModel.status == AvailabilityStatus.ENGAGED.value)
            .where(~self._live_trip(provider_id))
            .values(status=AvailabilityStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


# ── Fare breakdowns ───────────────────────────────────────────────────


def _fare(row: FareBreakdownModel) -> FareBreakdown:
    return FareBreakdown(
        booking_type=BookingType(row.booking_type),
        vehicle_class=row.vehicle_class,
        base_fare=_d(row.base_fare),
        distance_fare=_d(row.distance_fare),
        time_fare=_d(row.time_fare),
        surge_charges=_d(row.surge_charges),
        deadhead_charges=_d(row.deadhead_charges),
        extra_km_charges=_d(row.extra_km_charges),
        driver_allowance=_d(row.driver_allowance),
        platform_fee=_d(row.platform_fee),
        tax_on_charges=_d(row.tax_on_charges),
        tax_on_platform_fee=_d(row.tax_on_platform_fee),
        total_fare=_d(row.total_fare),
        details=dict(row.details or {}),
    )


class FareBreakdownRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, trip: Trip, fare: FareBreakdown) -> None:
        """Insert the trip's breakdown; the unique trip_id makes it write-once."""
        self.session.add(
            FareBreakdownModel(
                trip_id=trip.id,
                provider_id=trip.provider_id,
                requester_id=trip.requester_id,
                booking_type=fare.booking_type.value,
                vehicle_class=fare.vehicle_class,
                base_fare=fare.base_fare,
                distance_fare=fare.distance_fare,
                time_fare=fare.time_fare,
                surge_charges=fare.surge_charges,
                deadhead_charges=fare.deadhead_charges,
                extra_km_charges=fare.extra_km_charges,
                driver_allowance=fare.driver_allowance,
                platform_fee=fare.platform_fee,
                tax_on_charges=fare.tax_on_charges,
                tax_on_platform_fee=fare.tax_on_platform_fee,
                total_fare=fare.total_fare,
                details=fare.details,
            )
        )
        await self.session.flush()

    async def get_for_trip(self, trip_id: str) -> Optional[FareBreakdown]:
        result = await self.session.execute(
            select(FareBreakdownModel).where(FareBreakdownModel.trip_id == trip_id)
        )
        row = result.scalar_one_or_none()
        return _fare(row) if row else None

    async def totals(
        self,
        *,
        provider_id: Optional[str] = None,
        requester_id: Optional[str] = None,
        booking_type: Optional[BookingType] = None,
    ) -> tuple[int, Decimal]:
        """(trip count, sum of total_fare) for a provider or a requester."""
        query = select(
            func.count(FareBreakdownModel.id),
            func.coalesce(func.sum(FareBreakdownModel.total_fare), 0),
        )
        if provider_id is not None:
            query = query.where(FareBreakdownModel.provider_id == provider_id)
        if requester_id is not None:
            query = query.where(FareBreakdownModel.requester_id == requester_id)
        if booking_type is not None:
            query = query.where(FareBreakdownModel.booking_type == booking_type.value)
        count, total = (await self.session.execute(query)).one()
        return int(count or 0), _d(total).quantize(Decimal("0.01"))


# ── Estimation audit log ──────────────────────────────────────────────


class EstimationLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, trip_id: str, estimate: DistanceEstimate) -> None:
        self.session.add(
            EstimationLogModel(
                trip_id=trip_id,
                tier=int(estimate.tier),
                source=estimate.source,
                reason=estimate.reason,
                distance_km=estimate.distance_km,
                duration_minutes=estimate.duration_minutes,
                degraded=estimate.degraded,
                flagged_for_audit=estimate.flagged_for_audit,
                doubled=estimate.doubled,
                attempts=[
                    {"strategy": name, "reason": reason}
                    for name, reason in estimate.attempts
                ],
                diagnostics=estimate.diagnostics,
            )
        )
        await self.session.flush()

    async def list_for_trip(self, trip_id: str) -> list[EstimationLogModel]:
        result = await self.session.execute(
            select(EstimationLogModel)
            .where(EstimationLogModel.trip_id == trip_id)
            .order_by(EstimationLogModel.id)
        )
        return list(result.scalars().all())


# ── Tariff store ──────────────────────────────────────────────────────


class TariffRepository:
    """
    Builds an immutable ``TariffSnapshot`` for one (booking type, vehicle
    class[, rental hours]) key.  Platform fee and tax rates fall back to the
    configured defaults when no ``platform_fees`` row exists.
    """

    def __init__(self, session: AsyncSession, defaults):
        self.session = session
        self.defaults = defaults

    async def snapshot(
        self,
        booking_type: BookingType,
        vehicle_class: str,
        rental_hours: Optional[int] = None,
    ) -> TariffSnapshot:
        loaders = {
            BookingType.METERED: self._metered,
            BookingType.RENTAL: self._rental,
            BookingType.INTERCITY: self._intercity,
            BookingType.AIRPORT_TRANSFER: self._airport,
        }
        block, regime_version, source = await loaders[booking_type](
            vehicle_class, rental_hours
        )
        fee = await self._platform_fee(booking_type, vehicle_class)
        fee_version = fee.version if fee else 0

        return TariffSnapshot(
            version=(
                f"{booking_type.value}/{vehicle_class}"
                f"/v{regime_version}+fee-v{fee_version}"
            ),
            booking_type=booking_type,
            vehicle_class=vehicle_class,
            platform_fee=(
                _d(fee.platform_fee) if fee else _d(self.defaults.default_platform_fee)
            ),
            tax_rate_charges=(
                _d(fee.tax_rate_charges)
                if fee and fee.tax_rate_charges is not None
                else _d(self.defaults.tax_rate_charges)
            ),
            tax_rate_platform_fee=(
                _d(fee.tax_rate_platform_fee)
                if fee and fee.tax_rate_platform_fee is not None
                else _d(self.defaults.tax_rate_platform_fee)
            ),
            sources=(source, "platform_fees" if fee else "defaults"),
            **block,
        )

    async def _platform_fee(
        self, booking_type: BookingType, vehicle_class: str
    ) -> Optional[PlatformFeeModel]:
        result = await self.session.execute(
            select(PlatformFeeModel)
            .where(PlatformFeeModel.booking_type == booking_type.value)
            .where(PlatformFeeModel.vehicle_class == vehicle_class)
            .where(PlatformFeeModel.is_active.is_(True))
            .order_by(PlatformFeeModel.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _metered(self, vehicle_class: str, _hours):
        result = await self.session.execute(
            select(MeteredTariffModel)
            .where(MeteredTariffModel.vehicle_class == vehicle_class)
            .where(MeteredTariffModel.is_active.is_(True))
            .order_by(MeteredTariffModel.version.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TariffNotFound(f"No metered tariff for vehicle class {vehicle_class}")
        tariff = MeteredTariff(
            base_fare=_d(row.base_fare),
            per_km_rate=_d(row.per_km_rate),
            base_km_included=_d(row.base_km_included),
            per_minute_rate=_d(row.per_minute_rate),
            surge_multiplier=_d(row.surge_multiplier),
            zones=await self._zones(),
        )
        return {"metered": tariff}, row.version, "metered_tariffs"

    async def _zones(self) -> Optional[DeadheadZones]:
        result = await self.session.execute(
            select(TariffZoneModel).where(TariffZoneModel.is_active.is_(True))
        )
        rings = {z.ring: z for z in result.scalars().all()}
        inner, outer = rings.get("inner"), rings.get("outer")
        if inner is None or outer is None:
            return None
        return DeadheadZones(
            center_lat=inner.center_lat,
            center_lng=inner.center_lng,
            inner_radius_km=inner.radius_km,
            outer_radius_km=outer.radius_km,
            inner_name=inner.name,
            outer_name=outer.name,
        )

    async def _rental(self, vehicle_class: str, hours: Optional[int]):
        if hours is None:
            raise TariffNotFound("Rental bookings need the package hours")
        result = await self.session.execute(
            select(RentalPackageModel)
            .where(RentalPackageModel.vehicle_class == vehicle_class)
            .where(RentalPackageModel.duration_hours == hours)
            .where(RentalPackageModel.is_active.is_(True))
            .order_by(RentalPackageModel.version.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TariffNotFound(
                f"No {hours}h rental package for vehicle class {vehicle_class}"
            )
        package = RentalPackage(
            package_name=row.package_name,
            duration_hours=row.duration_hours,
            base_fare=_d(row.base_fare),
            km_included=_d(row.km_included),
            extra_km_rate=_d(row.extra_km_rate),
            extra_minute_rate=_d(row.extra_minute_rate),
        )
        return {"rental": package}, row.version, "rental_packages"

    async def _intercity(self, vehicle_class: str, _hours):
        result = await self.session.execute(
            select(IntercityTariffModel)
            .where(IntercityTariffModel.vehicle_class == vehicle_class)
            .where(IntercityTariffModel.is_active.is_(True))
            .order_by(IntercityTariffModel.version.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TariffNotFound(
                f"No intercity tariff for vehicle class {vehicle_class}"
            )
        slabs = await self.session.execute(
            select(IntercitySlabModel)
            .where(IntercitySlabModel.vehicle_class == vehicle_class)
            .where(IntercitySlabModel.is_active.is_(True))
            .order_by(IntercitySlabModel.one_way_km)
        )
        tariff = IntercityTariff(
            base_fare_per_day=_d(row.base_fare_per_day),
            per_km_rate=_d(row.per_km_rate),
            driver_allowance_per_day=_d(row.driver_allowance_per_day),
            daily_km_limit=_d(row.daily_km_limit),
            slabs=tuple(
                DistanceSlab(one_way_km=s.one_way_km, fare=_d(s.fare))
                for s in slabs.scalars().all()
            ),
            slab_extra_km_rate=_d(row.slab_extra_km_rate),
        )
        return {"intercity": tariff}, row.version, "intercity_tariffs"

    async def _airport(self, vehicle_class: str, _hours):
        result = await self.session.execute(
            select(AirportTariffModel)
            .where(AirportTariffModel.vehicle_class == vehicle_class)
            .where(AirportTariffModel.is_active.is_(True))
            .order_by(AirportTariffModel.version.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TariffNotFound(f"No airport tariff for vehicle class {vehicle_class}")
        tariff = AirportTariff(
            to_airport_fare=_d(row.to_airport_fare),
            from_airport_fare=_d(row.from_airport_fare),
        )
        return {"airport": tariff}, row.version, "airport_tariffs"
