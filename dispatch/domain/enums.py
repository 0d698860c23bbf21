"""Domain enumerations and per-kind state-transition rules."""

import enum


class TripKind(str, enum.Enum):
    RIDE = "ride"
    DELIVERY = "delivery"


class TripStatus(str, enum.Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    DRIVER_ASSIGNED = "driver_assigned"
    # ride only
    ARRIVING = "arriving"
    IN_PROGRESS = "in_progress"
    # delivery only
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RideCategory(str, enum.Enum):
    ECONOMY = "economy"
    COMFORT = "comfort"
    XL = "xl"


class PackageType(str, enum.Enum):
    DOCUMENT = "document"
    PACKAGE = "package"
    FOOD = "food"
    ELECTRONICS = "electronics"
    OTHER = "other"


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class ActorRole(str, enum.Enum):
    REQUESTER = "requester"
    DRIVER = "driver"
    ADMIN = "admin"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"


class EarningsPeriod(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


TERMINAL_STATUSES: frozenset[TripStatus] = frozenset(
    {TripStatus.COMPLETED, TripStatus.CANCELLED}
)

# State machine: kind -> current status -> set of valid next statuses
TRIP_TRANSITIONS: dict[TripKind, dict[TripStatus, set[TripStatus]]] = {
    TripKind.RIDE: {
        TripStatus.REQUESTED: {TripStatus.CONFIRMED, TripStatus.CANCELLED},
        TripStatus.CONFIRMED: {
            TripStatus.DRIVER_ASSIGNED,
            TripStatus.ARRIVING,
            TripStatus.IN_PROGRESS,
            TripStatus.CANCELLED,
        },
        TripStatus.DRIVER_ASSIGNED: {
            TripStatus.ARRIVING,
            TripStatus.IN_PROGRESS,
            TripStatus.CANCELLED,
        },
        TripStatus.ARRIVING: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
        TripStatus.IN_PROGRESS: {TripStatus.COMPLETED, TripStatus.CANCELLED},
        TripStatus.COMPLETED: set(),
        TripStatus.CANCELLED: set(),
    },
    TripKind.DELIVERY: {
        TripStatus.REQUESTED: {TripStatus.CONFIRMED, TripStatus.CANCELLED},
        TripStatus.CONFIRMED: {
            TripStatus.DRIVER_ASSIGNED,
            TripStatus.PICKED_UP,
            TripStatus.CANCELLED,
        },
        TripStatus.DRIVER_ASSIGNED: {TripStatus.PICKED_UP, TripStatus.CANCELLED},
        TripStatus.PICKED_UP: {
            TripStatus.IN_TRANSIT,
            TripStatus.COMPLETED,
            TripStatus.CANCELLED,
        },
        TripStatus.IN_TRANSIT: {TripStatus.COMPLETED, TripStatus.CANCELLED},
        TripStatus.COMPLETED: set(),
        TripStatus.CANCELLED: set(),
    },
}

# Targets reachable through ``advance``; accept/complete/cancel own the rest.
ADVANCE_TARGETS: dict[TripKind, frozenset[TripStatus]] = {
    TripKind.RIDE: frozenset(
        {TripStatus.DRIVER_ASSIGNED, TripStatus.ARRIVING, TripStatus.IN_PROGRESS}
    ),
    TripKind.DELIVERY: frozenset(
        {TripStatus.DRIVER_ASSIGNED, TripStatus.PICKED_UP, TripStatus.IN_TRANSIT}
    ),
}

# Column stamped by the transition *into* a status.
STATUS_TIMESTAMPS: dict[TripStatus, str] = {
    TripStatus.CONFIRMED: "accepted_at",
    TripStatus.IN_PROGRESS: "started_at",
    TripStatus.PICKED_UP: "picked_up_at",
    TripStatus.COMPLETED: "completed_at",
    TripStatus.CANCELLED: "cancelled_at",
}

TRIP_CATEGORIES: dict[TripKind, frozenset[str]] = {
    TripKind.RIDE: frozenset(c.value for c in RideCategory),
    TripKind.DELIVERY: frozenset(p.value for p in PackageType),
}
