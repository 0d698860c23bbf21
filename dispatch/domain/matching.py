"""
Filter-then-rank matching
=========================

Both matching queries have the same shape:

1. **Filter**  -- keep candidates passing the hard eligibility predicates
   (driver online / available / verified, or trip still ``requested``).
2. **Measure** -- haversine distance from the query point to the
   candidate's relevant point (driver location or trip pickup).
3. **Cut**     -- discard candidates beyond the radius.
4. **Rank**    -- sort ascending by distance.

Complexity
----------
O(N log N) for N candidates.  The candidate set is scanned in memory; there
is no spatial index, so callers should keep the SQL pre-filter tight.
Driver locations are read as a snapshot and may be a few seconds stale.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar

from .distance import haversine_km
from .enums import VerificationStatus

T = TypeVar("T")

Point = tuple[float, float]


@dataclass(frozen=True)
class Ranked(Generic[T]):
    item: T
    distance_km: float


def rank_by_distance(
    origin: Point,
    candidates: Iterable[T],
    point_of: Callable[[T], Optional[Point]],
    radius_km: float,
) -> list[Ranked[T]]:
    """Return candidates within *radius_km* of *origin*, nearest first.

    Candidates whose ``point_of`` is ``None`` (no recorded location) are
    skipped.  Ties keep their input order.
    """
    ranked: list[Ranked[T]] = []
    for candidate in candidates:
        point = point_of(candidate)
        if point is None:
            continue
        distance = haversine_km(origin[0], origin[1], point[0], point[1])
        if distance <= radius_km:
            ranked.append(Ranked(candidate, distance))
    ranked.sort(key=lambda r: r.distance_km)
    return ranked


def driver_is_matchable(driver, category: Optional[str] = None) -> bool:
    """Hard eligibility for being offered to a requester."""
    if not (driver.is_online and driver.is_available):
        return False
    if driver.verification_status != VerificationStatus.VERIFIED:
        return False
    if driver.current_trip_id is not None:
        return False
    if category is not None and driver.vehicle_category != category:
        return False
    return True


def driver_point(driver) -> Optional[Point]:
    if driver.current_lat is None or driver.current_lng is None:
        return None
    return (driver.current_lat, driver.current_lng)


def pickup_point(trip) -> Point:
    return (trip.pickup_lat, trip.pickup_lng)
