"""Initial schema: trips, providers, breadcrumbs, fares and the tariff store.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

LIVE_PROVIDER_STATUSES = "status IN ('assigned', 'provider_arrived', 'in_progress')"


def _money(name: str, nullable: bool = False, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(10, 2), nullable=nullable, **kw)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
    )


def upgrade() -> None:
    # ── providers ─────────────────────────────────────────────────────
    op.create_table(
        "providers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False, server_default=""),
        sa.Column("vehicle_class", sa.String(30), nullable=True),
        sa.Column(
            "status", sa.String(20), nullable=False, server_default="available"
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("idx_providers_status", "providers", ["status"])

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("requester_id", sa.String(36), nullable=False),
        sa.Column(
            "provider_id", sa.String(36), sa.ForeignKey("providers.id"), nullable=True
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False, server_default=""),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column(
            "destination_address", sa.String(255), nullable=False, server_default=""
        ),
        sa.Column("booking_type", sa.String(20), nullable=False),
        sa.Column("trip_leg", sa.String(20), nullable=False, server_default="round_trip"),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        sa.Column("rental_hours", sa.Integer, nullable=True),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="requested"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("code_kind", sa.String(10), nullable=True),
        sa.Column("code_value", sa.String(10), nullable=True),
        sa.Column("code_issued_in", sa.String(20), nullable=True),
        _money("fare_amount", nullable=True),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="cash"),
        sa.Column(
            "payment_status", sa.String(20), nullable=False, server_default="pending"
        ),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("cancelled_by", sa.String(36), nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("feedback", sa.Text, nullable=True),
        _created_at(),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_requester", "trips", ["requester_id"])
    op.create_index("idx_trips_provider", "trips", ["provider_id"])
    # one live trip per provider
    op.create_index(
        "uq_trips_provider_live",
        "trips",
        ["provider_id"],
        unique=True,
        postgresql_where=sa.text(LIVE_PROVIDER_STATUSES),
    )

    # ── breadcrumbs ───────────────────────────────────────────────────
    op.create_table(
        "breadcrumbs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accuracy_m", sa.Float, nullable=True),
        sa.Column("speed", sa.Float, nullable=True),
        sa.Column("heading", sa.Float, nullable=True),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index(
        "idx_breadcrumbs_trip_captured", "breadcrumbs", ["trip_id", "captured_at"]
    )

    # ── fare_breakdowns ───────────────────────────────────────────────
    op.create_table(
        "fare_breakdowns",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "trip_id",
            sa.String(36),
            sa.ForeignKey("trips.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("booking_type", sa.String(20), nullable=False),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        sa.Column("provider_id", sa.String(36), nullable=True),
        sa.Column("requester_id", sa.String(36), nullable=False),
        _money("base_fare"),
        _money("distance_fare"),
        _money("time_fare"),
        _money("surge_charges"),
        _money("deadhead_charges"),
        _money("extra_km_charges"),
        _money("driver_allowance"),
        _money("platform_fee"),
        _money("tax_on_charges"),
        _money("tax_on_platform_fee"),
        _money("total_fare"),
        sa.Column("details", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("idx_fare_breakdowns_provider", "fare_breakdowns", ["provider_id"])
    op.create_index(
        "idx_fare_breakdowns_requester", "fare_breakdowns", ["requester_id"]
    )

    # ── distance_estimation_log ───────────────────────────────────────
    op.create_table(
        "distance_estimation_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("tier", sa.Integer, nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("duration_minutes", sa.Integer, nullable=False),
        sa.Column("degraded", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "flagged_for_audit", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("doubled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.JSON, nullable=False),
        sa.Column("diagnostics", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("idx_estimation_log_trip", "distance_estimation_log", ["trip_id"])

    # ── tariff store ──────────────────────────────────────────────────
    op.create_table(
        "platform_fees",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_type", sa.String(20), nullable=False),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        _money("platform_fee"),
        sa.Column("tax_rate_charges", sa.Numeric(5, 4), nullable=True),
        sa.Column("tax_rate_platform_fee", sa.Numeric(5, 4), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "idx_platform_fees_key", "platform_fees", ["booking_type", "vehicle_class"]
    )

    op.create_table(
        "metered_tariffs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        _money("base_fare"),
        sa.Column("base_km_included", sa.Numeric(6, 2), nullable=False, server_default="0"),
        _money("per_km_rate"),
        _money("per_minute_rate", server_default="0"),
        sa.Column("surge_multiplier", sa.Numeric(4, 2), nullable=False, server_default="1"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_metered_tariffs_vehicle", "metered_tariffs", ["vehicle_class"])

    op.create_table(
        "tariff_zones",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(60), nullable=False),
        sa.Column("ring", sa.String(10), nullable=False),
        sa.Column("center_lat", sa.Float, nullable=False),
        sa.Column("center_lng", sa.Float, nullable=False),
        sa.Column("radius_km", sa.Float, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "rental_packages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        sa.Column("package_name", sa.String(60), nullable=False),
        sa.Column("duration_hours", sa.Integer, nullable=False),
        _money("base_fare"),
        sa.Column("km_included", sa.Numeric(6, 2), nullable=False),
        _money("extra_km_rate"),
        _money("extra_minute_rate", server_default="0"),
        sa.Column("is_popular", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "idx_rental_packages_key", "rental_packages", ["vehicle_class", "duration_hours"]
    )

    op.create_table(
        "intercity_tariffs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        _money("base_fare_per_day"),
        _money("per_km_rate"),
        _money("driver_allowance_per_day"),
        sa.Column("daily_km_limit", sa.Numeric(8, 2), nullable=False),
        _money("slab_extra_km_rate", server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "idx_intercity_tariffs_vehicle", "intercity_tariffs", ["vehicle_class"]
    )

    op.create_table(
        "intercity_slabs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        sa.Column("one_way_km", sa.Integer, nullable=False),
        _money("fare"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_intercity_slabs_vehicle", "intercity_slabs", ["vehicle_class"])

    op.create_table(
        "airport_tariffs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vehicle_class", sa.String(30), nullable=False),
        _money("to_airport_fare"),
        _money("from_airport_fare"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_airport_tariffs_vehicle", "airport_tariffs", ["vehicle_class"])


def downgrade() -> None:
    for table in (
        "airport_tariffs",
        "intercity_slabs",
        "intercity_tariffs",
        "rental_packages",
        "tariff_zones",
        "metered_tariffs",
        "platform_fees",
        "distance_estimation_log",
        "fare_breakdowns",
        "breadcrumbs",
        "trips",
        "providers",
    ):
        op.drop_table(table)
