"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``providers``               -- provider availability flag
* ``trips``                   -- trip aggregate rows (CAS on status + version)
* ``breadcrumbs``             -- append-only GPS samples per trip
* ``fare_breakdowns``         -- one structured fare per completed trip
* ``distance_estimation_log`` -- append-only audit of estimation decisions
* tariff store: ``platform_fees``, ``metered_tariffs``, ``tariff_zones``,
  ``rental_packages``, ``intercity_tariffs``, ``intercity_slabs``,
  ``airport_tariffs``

Indexes
-------
* **Partial unique** on ``trips.provider_id`` for assigned / arrived /
  in-progress rows: a provider can hold one live trip only.
* **B-Tree** on ``(trip_id, captured_at)`` for ordered breadcrumb reads and
  on tariff keys ``(booking_type | vehicle_class[, duration_hours])``.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)

from .database import Base

_LIVE_PROVIDER_STATUSES = "status IN ('assigned', 'provider_arrived', 'in_progress')"


class ProviderModel(Base):
    __tablename__ = "providers"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False, default="")
    vehicle_class = Column(String(30), nullable=True)
    status = Column(String(20), nullable=False, default="available")
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_providers_status", "status"),)


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(String(36), primary_key=True)
    requester_id = Column(String(36), nullable=False)
    provider_id = Column(String(36), ForeignKey("providers.id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=False, default="")
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_address = Column(String(255), nullable=False, default="")

    booking_type = Column(String(20), nullable=False)
    trip_leg = Column(String(20), nullable=False, default="round_trip")
    vehicle_class = Column(String(30), nullable=False)
    rental_hours = Column(Integer, nullable=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(20), nullable=False, default="requested")
    version = Column(Integer, nullable=False, default=0)

    # state-scoped one-time code (pickup | drop)
    code_kind = Column(String(10), nullable=True)
    code_value = Column(String(10), nullable=True)
    code_issued_in = Column(String(20), nullable=True)

    fare_amount = Column(Numeric(10, 2), nullable=True)
    distance_km = Column(Float, nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    payment_method = Column(String(20), nullable=False, default="cash")
    payment_status = Column(String(20), nullable=False, default="pending")
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_requester", "requester_id"),
        Index("idx_trips_provider", "provider_id"),
        Index(
            "uq_trips_provider_live",
            "provider_id",
            unique=True,
            postgresql_where=text(_LIVE_PROVIDER_STATUSES),
            sqlite_where=text(_LIVE_PROVIDER_STATUSES),
        ),
    )


class BreadcrumbModel(Base):
    __tablename__ = "breadcrumbs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False)
    accuracy_m = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_breadcrumbs_trip_captured", "trip_id", "captured_at"),
    )


class FareBreakdownModel(Base):
    __tablename__ = "fare_breakdowns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), unique=True, nullable=False)
    booking_type = Column(String(20), nullable=False)
    vehicle_class = Column(String(30), nullable=False)
    provider_id = Column(String(36), nullable=True)
    requester_id = Column(String(36), nullable=False)

    base_fare = Column(Numeric(10, 2), nullable=False)
    distance_fare = Column(Numeric(10, 2), nullable=False)
    time_fare = Column(Numeric(10, 2), nullable=False)
    surge_charges = Column(Numeric(10, 2), nullable=False)
    deadhead_charges = Column(Numeric(10, 2), nullable=False)
    extra_km_charges = Column(Numeric(10, 2), nullable=False)
    driver_allowance = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    tax_on_charges = Column(Numeric(10, 2), nullable=False)
    tax_on_platform_fee = Column(Numeric(10, 2), nullable=False)
    total_fare = Column(Numeric(10, 2), nullable=False)
    details = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_fare_breakdowns_provider", "provider_id"),
        Index("idx_fare_breakdowns_requester", "requester_id"),
    )


class EstimationLogModel(Base):
    __tablename__ = "distance_estimation_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), nullable=False)
    tier = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False)
    reason = Column(String(255), nullable=False)
    distance_km = Column(Float, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    degraded = Column(Boolean, nullable=False, default=False)
    flagged_for_audit = Column(Boolean, nullable=False, default=False)
    doubled = Column(Boolean, nullable=False, default=False)
    attempts = Column(JSON, nullable=False, default=list)
    diagnostics = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_estimation_log_trip", "trip_id"),)


# ── Tariff store ──────────────────────────────────────────────────────


class PlatformFeeModel(Base):
    __tablename__ = "platform_fees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_type = Column(String(20), nullable=False)
    vehicle_class = Column(String(30), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    tax_rate_charges = Column(Numeric(5, 4), nullable=True)
    tax_rate_platform_fee = Column(Numeric(5, 4), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_platform_fees_key", "booking_type", "vehicle_class"),
    )


class MeteredTariffModel(Base):
    __tablename__ = "metered_tariffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_class = Column(String(30), nullable=False)
    base_fare = Column(Numeric(10, 2), nullable=False)
    base_km_included = Column(Numeric(6, 2), nullable=False, default=0)
    per_km_rate = Column(Numeric(10, 2), nullable=False)
    per_minute_rate = Column(Numeric(10, 2), nullable=False, default=0)
    surge_multiplier = Column(Numeric(4, 2), nullable=False, default=1)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_metered_tariffs_vehicle", "vehicle_class"),)


class TariffZoneModel(Base):
    __tablename__ = "tariff_zones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(60), nullable=False)
    ring = Column(String(10), nullable=False)  # inner | outer
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    radius_km = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class RentalPackageModel(Base):
    __tablename__ = "rental_packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_class = Column(String(30), nullable=False)
    package_name = Column(String(60), nullable=False)
    duration_hours = Column(Integer, nullable=False)
    base_fare = Column(Numeric(10, 2), nullable=False)
    km_included = Column(Numeric(6, 2), nullable=False)
    extra_km_rate = Column(Numeric(10, 2), nullable=False)
    extra_minute_rate = Column(Numeric(10, 2), nullable=False, default=0)
    is_popular = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_rental_packages_key", "vehicle_class", "duration_hours"),
    )


class IntercityTariffModel(Base):
    __tablename__ = "intercity_tariffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_class = Column(String(30), nullable=False)
    base_fare_per_day = Column(Numeric(10, 2), nullable=False)
    per_km_rate = Column(Numeric(10, 2), nullable=False)
    driver_allowance_per_day = Column(Numeric(10, 2), nullable=False)
    daily_km_limit = Column(Numeric(8, 2), nullable=False)
    slab_extra_km_rate = Column(Numeric(10, 2), nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_intercity_tariffs_vehicle", "vehicle_class"),)


class IntercitySlabModel(Base):
    __tablename__ = "intercity_slabs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_class = Column(String(30), nullable=False)
    one_way_km = Column(Integer, nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_intercity_slabs_vehicle", "vehicle_class"),)


class AirportTariffModel(Base):
    __tablename__ = "airport_tariffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_class = Column(String(30), nullable=False)
    to_airport_fare = Column(Numeric(10, 2), nullable=False)
    from_airport_fare = Column(Numeric(10, 2), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_airport_tariffs_vehicle", "vehicle_class"),)
