"""
Domain value objects and the trip state machine.

Patterns used
-------------
- **State Pattern** over ``TRIP_TRANSITIONS``: one transition table per
  ``TripKind`` drives both rides and deliveries, so the lifecycle rules are
  written once.
- ``Actor`` is a closed tagged variant (requester / driver / admin) that
  every permission check in :mod:`dispatch.domain.access` works from.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    ADVANCE_TARGETS,
    TERMINAL_STATUSES,
    TRIP_TRANSITIONS,
    ActorRole,
    TripKind,
    TripStatus,
)
from .exceptions import ConflictError, ValidationError
from .validators import validate_coordinates


class InvalidStateTransition(ConflictError):
    """Raised when a trip status change violates the state machine."""


# ── Clock ─────────────────────────────────────────────────────────────


def utcnow() -> datetime:
    """Default server-timestamp source."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None
    place_id: Optional[str] = None

    def __post_init__(self):
        validate_coordinates(self.latitude, self.longitude)

    @property
    def display_address(self) -> str:
        return self.address or f"{self.latitude}, {self.longitude}"


@dataclass(frozen=True)
class Actor:
    id: str
    role: ActorRole

    @classmethod
    def requester(cls, actor_id: str) -> "Actor":
        return cls(actor_id, ActorRole.REQUESTER)

    @classmethod
    def driver(cls, actor_id: str) -> "Actor":
        return cls(actor_id, ActorRole.DRIVER)

    @classmethod
    def admin(cls, actor_id: str) -> "Actor":
        return cls(actor_id, ActorRole.ADMIN)


# ── State machine ─────────────────────────────────────────────────────


def can_transition(kind: TripKind, current: TripStatus, target: TripStatus) -> bool:
    return target in TRIP_TRANSITIONS[kind].get(current, set())


def ensure_transition(kind: TripKind, current: TripStatus, target: TripStatus) -> None:
    """Raise unless *current* -> *target* is a legal edge for *kind*."""
    if not can_transition(kind, current, target):
        raise InvalidStateTransition(
            f"Cannot transition {kind.value} from {current.value} to {target.value}",
            current_status=current.value,
            target_status=target.value,
        )


def ensure_advance_target(kind: TripKind, target: TripStatus) -> None:
    """``advance`` only moves through the progress states of *kind*."""
    if target not in ADVANCE_TARGETS[kind]:
        raise ValidationError(
            f"{target.value} is not a progress status for a {kind.value}",
            field="target_status",
            allowed=sorted(s.value for s in ADVANCE_TARGETS[kind]),
        )


def is_terminal(status: TripStatus) -> bool:
    return status in TERMINAL_STATUSES
