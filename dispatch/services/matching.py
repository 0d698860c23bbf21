"""
Matching service
================

Read-only queries that pair requesters with drivers:

* ``find_nearby_drivers`` -- drivers a requester could be matched with.
* ``find_nearby_jobs``    -- ``requested`` trips of both kinds near a point.
* ``find_jobs_for_driver`` -- the driver-app job list, using the driver's
  own last reported location.

Driver locations are a snapshot read; no lock is held between the read and
the ranking, so a result can be a few seconds stale.  Accepting a job is
what re-checks everything atomically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .base import Clock, SessionService
from dispatch.config import settings
from dispatch.domain.entities import Location, utcnow
from dispatch.domain.enums import RideCategory, TripKind, TripStatus, VerificationStatus
from dispatch.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from dispatch.domain.fees import estimate_duration_minutes
from dispatch.domain.matching import (
    driver_is_matchable,
    driver_point,
    pickup_point,
    rank_by_distance,
)
from dispatch.domain.validators import parse_enum, validate_radius
from dispatch.infrastructure.repositories import DriverRepository, TripRepository

logger = logging.getLogger(__name__)

JOB_SEARCH_RADIUS_KM = 10.0


@dataclass(frozen=True)
class DriverMatch:
    driver_id: str
    name: str
    vehicle_category: RideCategory
    latitude: float
    longitude: float
    rating: float
    distance_km: float
    location_updated_at: Optional[datetime]


@dataclass(frozen=True)
class JobMatch:
    trip_id: str
    kind: TripKind
    category: str
    fare: float
    pickup: Location
    destination: Location
    notes: str
    requested_at: Optional[datetime]
    distance_km: float
    estimated_minutes: int
    recipient_name: Optional[str] = None
    package_description: Optional[str] = None


class MatchingService(SessionService):
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        super().__init__(session, clock)
        self.trips = TripRepository(session)
        self.drivers = DriverRepository(session)

    async def find_nearby_drivers(
        self,
        location: Optional[Location],
        radius_km: float = settings.driver_search_radius_km,
        category: Optional[RideCategory | str] = None,
    ) -> list[DriverMatch]:
        """Online, available, verified drivers within *radius_km*, nearest first."""
        self._require_location(location)
        validate_radius(radius_km)
        if category is not None:
            category = parse_enum(RideCategory, category, "category")

        async with self.unit_of_work():
            candidates = await self.drivers.get_matchable(category)

        eligible = (d for d in candidates if driver_is_matchable(d, category))
        ranked = rank_by_distance(
            (location.latitude, location.longitude), eligible, driver_point, radius_km
        )
        return [
            DriverMatch(
                driver_id=r.item.driver_id,
                name=r.item.name,
                vehicle_category=r.item.vehicle_category,
                latitude=r.item.current_lat,
                longitude=r.item.current_lng,
                rating=r.item.rating,
                distance_km=round(r.distance_km, 2),
                location_updated_at=r.item.location_updated_at,
            )
            for r in ranked
        ]

    async def find_nearby_jobs(
        self,
        location: Optional[Location],
        radius_km: float = JOB_SEARCH_RADIUS_KM,
    ) -> list[JobMatch]:
        """``requested`` rides and deliveries within *radius_km*, interleaved by distance."""
        self._require_location(location)
        validate_radius(radius_km)

        async with self.unit_of_work():
            pending = await self.trips.get_requested()

        ranked = rank_by_distance(
            (location.latitude, location.longitude),
            (t for t in pending if t.status is TripStatus.REQUESTED),
            pickup_point,
            radius_km,
        )
        return [self._to_job(r.item, r.distance_km) for r in ranked]

    async def find_jobs_for_driver(self, driver_id: str) -> list[JobMatch]:
        async with self.unit_of_work():
            driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found", driver_id=driver_id)
        if driver.verification_status is not VerificationStatus.VERIFIED:
            raise ForbiddenError(
                "Only verified drivers can view pending jobs",
                driver_id=driver_id,
                verification_status=driver.verification_status.value,
            )
        if not (driver.is_online and driver.is_available):
            raise ConflictError(
                "You must be online and available to view pending jobs",
                driver_id=driver_id,
            )
        point = driver_point(driver)
        if point is None:
            raise ValidationError(
                "Your current location is required to find nearby jobs",
                field="location",
            )

        jobs = await self.find_nearby_jobs(Location(*point), JOB_SEARCH_RADIUS_KM)
        logger.debug("Driver %s sees %d pending jobs", driver_id, len(jobs))
        return jobs

    # ── Internals ─────────────────────────────────────────────────────

    @staticmethod
    def _require_location(location: Optional[Location]) -> None:
        if location is None:
            raise ValidationError("location is required", field="location")

    @staticmethod
    def _to_job(trip, distance_km: float) -> JobMatch:
        delivery = trip.kind is TripKind.DELIVERY
        return JobMatch(
            trip_id=trip.id,
            kind=trip.kind,
            category=trip.category,
            fare=trip.fare,
            pickup=Location(trip.pickup_lat, trip.pickup_lng, trip.pickup_address),
            destination=Location(
                trip.destination_lat, trip.destination_lng, trip.destination_address
            ),
            notes=trip.notes or "",
            requested_at=trip.created_at,
            distance_km=round(distance_km, 2),
            estimated_minutes=estimate_duration_minutes(distance_km),
            recipient_name=trip.recipient_name if delivery else None,
            package_description=trip.package_description if delivery else None,
        )
