"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ridecore.domain.entities import FareBreakdown, Trip
from ridecore.domain.enums import AvailabilityStatus, BookingType, TripLeg


# ── Requests ──────────────────────────────────────────────────────────


class TripCreateRequest(BaseModel):
    requester_id: str = Field(..., min_length=1, max_length=36)
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    destination_lat: float = Field(..., ge=-90, le=90)
    destination_lng: float = Field(..., ge=-180, le=180)
    pickup_address: str = Field("", max_length=255)
    destination_address: str = Field("", max_length=255)
    booking_type: BookingType
    vehicle_class: str = Field(..., min_length=1, max_length=30)
    trip_leg: TripLeg = TripLeg.ROUND_TRIP
    rental_hours: Optional[int] = Field(None, ge=1, le=24)
    scheduled_time: Optional[datetime] = None
    payment_method: str = Field("cash", max_length=20)


class AssignRequest(BaseModel):
    provider_id: str = Field(..., min_length=1, max_length=36)


class VerifyCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)


class CompleteRequest(BaseModel):
    drop_code: Optional[str] = Field(None, max_length=10)


class CancelRequest(BaseModel):
    reason: str = Field("", max_length=500)


class BreadcrumbIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    captured_at: datetime
    accuracy_m: Optional[float] = Field(None, ge=0)


class BreadcrumbBatch(BaseModel):
    points: list[BreadcrumbIn] = Field(..., min_length=1, max_length=500)


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)


class AvailabilityRequest(BaseModel):
    status: AvailabilityStatus


# ── Responses ─────────────────────────────────────────────────────────


class TripResponse(BaseModel):
    id: str
    requester_id: str
    provider_id: Optional[str] = None
    pickup_lat: float
    pickup_lng: float
    destination_lat: float
    destination_lng: float
    pickup_address: str = ""
    destination_address: str = ""
    booking_type: BookingType
    trip_leg: TripLeg
    vehicle_class: str
    rental_hours: Optional[int] = None
    scheduled_time: Optional[datetime] = None
    status: str
    version: int
    fare_amount: Optional[float] = None
    distance_km: Optional[float] = None
    duration_minutes: Optional[int] = None
    payment_method: str
    payment_status: str
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripResponse":
        return cls(
            id=trip.id,
            requester_id=trip.requester_id,
            provider_id=trip.provider_id,
            pickup_lat=trip.pickup.latitude,
            pickup_lng=trip.pickup.longitude,
            destination_lat=trip.destination.latitude,
            destination_lng=trip.destination.longitude,
            pickup_address=trip.pickup_address,
            destination_address=trip.destination_address,
            booking_type=trip.booking_type,
            trip_leg=trip.trip_leg,
            vehicle_class=trip.vehicle_class,
            rental_hours=trip.rental_hours,
            scheduled_time=trip.scheduled_time,
            status=trip.status.value,
            version=trip.version,
            fare_amount=float(trip.fare_amount) if trip.fare_amount is not None else None,
            distance_km=trip.distance_km,
            duration_minutes=trip.duration_minutes,
            payment_method=trip.payment_method,
            payment_status=trip.payment_status,
            cancellation_reason=trip.cancellation_reason,
            rating=trip.rating,
            created_at=trip.created_at,
            started_at=trip.started_at,
            completed_at=trip.completed_at,
            cancelled_at=trip.cancelled_at,
        )


class CodeResponse(BaseModel):
    trip_id: str
    kind: str
    code: str


class FareBreakdownResponse(BaseModel):
    booking_type: BookingType
    vehicle_class: str
    base_fare: float
    distance_fare: float
    time_fare: float
    surge_charges: float
    deadhead_charges: float
    extra_km_charges: float
    driver_allowance: float
    platform_fee: float
    tax_on_charges: float
    tax_on_platform_fee: float
    total_fare: float
    details: dict[str, Any] = {}

    @classmethod
    def from_fare(cls, fare: FareBreakdown) -> "FareBreakdownResponse":
        return cls(**fare.to_dict())


class BreadcrumbAck(BaseModel):
    trip_id: str
    stored: int


class AvailabilityResponse(BaseModel):
    provider_id: str
    status: AvailabilityStatus


class TotalsResponse(BaseModel):
    subject_id: str
    booking_type: Optional[BookingType] = None
    trips: int
    total: float


class EstimationLogResponse(BaseModel):
    tier: int
    source: str
    reason: str
    distance_km: float
    duration_minutes: int
    degraded: bool
    flagged_for_audit: bool
    doubled: bool
    attempts: list[dict[str, Any]] = []
    diagnostics: dict[str, Any] = {}
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    error: str
    detail: str
