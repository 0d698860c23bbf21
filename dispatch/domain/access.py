"""
Access policy: who may do what to a trip.

Pure predicates over a trip (anything exposing ``requester_id`` and
``driver_id``) and an :class:`~dispatch.domain.entities.Actor`.  Standing
only -- status preconditions are the state machine's job, so a driver who
loses an accept race gets a conflict, not a refusal.

    ============  =========  =============  ==========
    operation     requester  driver         admin
    ============  =========  =============  ==========
    view          own trip   assigned trip  any
    accept        --         any driver(*)  --
    advance       --         assigned trip  --
    cancel        own trip   assigned trip  any
    ============  =========  =============  ==========

    (*) never a trip the driver requested themselves.
"""

from __future__ import annotations

from typing import Optional, Protocol

from .entities import Actor
from .enums import ActorRole
from .exceptions import ForbiddenError


class TripLike(Protocol):
    requester_id: str
    driver_id: Optional[str]


def _is_requester(trip: TripLike, actor: Actor) -> bool:
    return actor.role is ActorRole.REQUESTER and trip.requester_id == actor.id


def _is_assigned_driver(trip: TripLike, actor: Actor) -> bool:
    return (
        actor.role is ActorRole.DRIVER
        and trip.driver_id is not None
        and trip.driver_id == actor.id
    )


def _is_admin(actor: Actor) -> bool:
    return actor.role is ActorRole.ADMIN


def can_view(trip: TripLike, actor: Actor) -> bool:
    return _is_requester(trip, actor) or _is_assigned_driver(trip, actor) or _is_admin(actor)


def can_accept(trip: TripLike, actor: Actor) -> bool:
    return actor.role is ActorRole.DRIVER and trip.requester_id != actor.id


def can_advance(trip: TripLike, actor: Actor) -> bool:
    return _is_assigned_driver(trip, actor)


def can_cancel(trip: TripLike, actor: Actor) -> bool:
    return _is_requester(trip, actor) or _is_assigned_driver(trip, actor) or _is_admin(actor)


def require(allowed: bool, action: str, trip_id: Optional[str] = None) -> None:
    """Turn a failed predicate into :class:`ForbiddenError`."""
    if not allowed:
        raise ForbiddenError(
            f"You do not have permission to {action} this trip", trip_id=trip_id
        )
