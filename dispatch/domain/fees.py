"""
Cancellation-fee policy and the rough job-duration heuristic.

Formula
-------
fee = 10 % of the quoted fare **only if** a driver had been assigned, more
than 2 minutes have passed since ``accepted_at``, and the requester is the
one cancelling.  Driver and admin cancellations are always free.  The policy
is flat and not configurable.

Complexity: O(1).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .entities import as_utc
from .enums import ActorRole

CANCELLATION_FEE_RATE = 0.10
FREE_CANCELLATION_WINDOW = timedelta(minutes=2)
MINUTES_PER_KM = 2


def cancellation_fee(
    fare: float,
    *,
    driver_id: Optional[str],
    accepted_at: Optional[datetime],
    cancelled_at: datetime,
    cancelled_by: ActorRole,
) -> float:
    """Fee owed by the cancelling party, rounded to 2 decimals."""
    if driver_id is None or accepted_at is None:
        return 0.0
    if cancelled_by is not ActorRole.REQUESTER:
        return 0.0
    elapsed = as_utc(cancelled_at) - as_utc(accepted_at)
    if elapsed <= FREE_CANCELLATION_WINDOW:
        return 0.0
    return round(fare * CANCELLATION_FEE_RATE, 2)


def estimate_duration_minutes(distance_km: float) -> int:
    """Rough estimate (2 min per km), not a routing engine."""
    return round(distance_km * MINUTES_PER_KM)
