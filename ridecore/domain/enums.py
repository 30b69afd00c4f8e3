"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    REQUESTED = "requested"
    ASSIGNED = "assigned"
    PROVIDER_ARRIVED = "provider_arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.REQUESTED: {TripStatus.ASSIGNED, TripStatus.CANCELLED},
    TripStatus.ASSIGNED: {TripStatus.PROVIDER_ARRIVED, TripStatus.CANCELLED},
    TripStatus.PROVIDER_ARRIVED: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
    TripStatus.IN_PROGRESS: {TripStatus.COMPLETED, TripStatus.CANCELLED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(set(TripStatus) - TERMINAL_STATUSES)


class BookingType(str, enum.Enum):
    METERED = "metered"
    RENTAL = "rental"
    INTERCITY = "intercity"
    AIRPORT_TRANSFER = "airport_transfer"


class TripLeg(str, enum.Enum):
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "available"
    ENGAGED = "engaged"
    UNAVAILABLE = "unavailable"


class CodeKind(str, enum.Enum):
    PICKUP = "pickup"
    DROP = "drop"


class EstimationTier(int, enum.Enum):
    BREADCRUMBS = 1
    ROUTING = 2
    GEOMETRIC = 3


class ActorRole(str, enum.Enum):
    REQUESTER = "requester"
    PROVIDER = "provider"
    SYSTEM = "system"
