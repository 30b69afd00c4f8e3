"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Trip``: enforces valid lifecycle transitions
  (requested -> assigned -> provider_arrived -> in_progress ->
  completed | cancelled).
- ``OneTimeCode`` is a tagged field on the trip aggregate, scoped to the
  status that issued it and dropped on every transition out of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .enums import (
    TRIP_TRANSITIONS,
    TERMINAL_STATUSES,
    ActorRole,
    BookingType,
    CodeKind,
    TripLeg,
    TripStatus,
)
from .errors import InvalidTransition


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Breadcrumb:
    trip_id: str
    latitude: float
    longitude: float
    captured_at: datetime
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class OneTimeCode:
    kind: CodeKind
    value: str
    issued_in: TripStatus


@dataclass(frozen=True)
class Actor:
    id: str
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", role=ActorRole.SYSTEM)


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Trip:
    id: Optional[str] = None
    requester_id: str = ""
    provider_id: Optional[str] = None
    pickup: Location = field(default_factory=lambda: Location(0, 0))
    destination: Location = field(default_factory=lambda: Location(0, 0))
    pickup_address: str = ""
    destination_address: str = ""
    booking_type: BookingType = BookingType.METERED
    trip_leg: TripLeg = TripLeg.ROUND_TRIP
    vehicle_class: str = "sedan"
    rental_hours: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    status: TripStatus = TripStatus.REQUESTED
    version: int = 0
    code: Optional[OneTimeCode] = None
    fare_amount: Optional[Decimal] = None
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    payment_method: str = "cash"
    payment_status: str = "pending"
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, new_status: TripStatus) -> bool:
        return new_status in TRIP_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: TripStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        # codes never outlive the status that issued them
        self.code = None
        self.version += 1

    def issue_code(self, kind: CodeKind, value: str) -> OneTimeCode:
        """Bind a fresh code to the current status, replacing any earlier one."""
        self.code = OneTimeCode(kind=kind, value=value, issued_in=self.status)
        self.version += 1
        return self.code

    def live_code(self, kind: CodeKind) -> Optional[OneTimeCode]:
        """The outstanding code of *kind*, if it is still scoped to now."""
        if self.code and self.code.kind == kind and self.code.issued_in == self.status:
            return self.code
        return None

    def is_party(self, actor: Actor) -> bool:
        if actor.role == ActorRole.SYSTEM:
            return True
        if actor.role == ActorRole.PROVIDER:
            return self.provider_id is not None and actor.id == self.provider_id
        return actor.id == self.requester_id

    def copy(self) -> "Trip":
        return replace(self)


@dataclass(frozen=True)
class FareBreakdown:
    """Structured fare; every line survives independently once persisted."""

    booking_type: BookingType
    vehicle_class: str
    base_fare: Decimal
    distance_fare: Decimal
    time_fare: Decimal
    surge_charges: Decimal
    deadhead_charges: Decimal
    extra_km_charges: Decimal
    driver_allowance: Decimal
    platform_fee: Decimal
    tax_on_charges: Decimal
    tax_on_platform_fee: Decimal
    total_fare: Decimal
    details: dict[str, Any] = field(default_factory=dict)

    LINE_ITEMS = (
        "base_fare",
        "distance_fare",
        "time_fare",
        "surge_charges",
        "deadhead_charges",
        "extra_km_charges",
        "driver_allowance",
        "platform_fee",
        "tax_on_charges",
        "tax_on_platform_fee",
    )

    def lines_total(self) -> Decimal:
        return sum((getattr(self, name) for name in self.LINE_ITEMS), Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "booking_type": self.booking_type.value,
            "vehicle_class": self.vehicle_class,
        }
        for name in self.LINE_ITEMS + ("total_fare",):
            data[name] = float(getattr(self, name))
        data["details"] = dict(self.details)
        return data
