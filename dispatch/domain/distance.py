"""
Straight-line distance between coordinates (haversine, Earth radius 6371 km).

Callers treat the result as a lower bound of travel distance: there is no
road network here.  Used to rank drivers around a pickup point and pending
jobs around a driver.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6_371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km; always ``>= 0``."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # rounding can push h a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, h)))
