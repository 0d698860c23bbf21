"""Unit tests for distance ranking and nearby-driver / nearby-job matching."""

import math

import pytest

from dispatch.domain.distance import haversine_km
from dispatch.domain.entities import Location
from dispatch.domain.enums import RideCategory, TripKind, VerificationStatus
from dispatch.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from dispatch.domain.matching import rank_by_distance
from tests.conftest import PICKUP, add_driver, request_delivery, request_ride

KM_PER_DEGREE_LAT = 2 * math.pi * 6371.0 / 360


def north_of(origin: Location, km: float) -> tuple[float, float]:
    """Point *km* due north of *origin* (exact on a sphere)."""
    return (origin.latitude + km / KM_PER_DEGREE_LAT, origin.longitude)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(24.33, 92.01, 24.33, 92.01) == 0.0

    def test_known_distance(self):
        # Silchar centre -> eastern outskirts, ~17 km
        d = haversine_km(24.33, 92.01, 24.37, 92.17)
        assert 16.0 < d < 18.0

    def test_symmetric(self):
        d1 = haversine_km(24.0, 92.0, 25.0, 93.0)
        d2 = haversine_km(25.0, 93.0, 24.0, 92.0)
        assert abs(d1 - d2) < 1e-6

    def test_antipodal_points_do_not_overflow(self):
        d = haversine_km(0.0, 0.0, 0.0, 180.0)
        assert d == pytest.approx(math.pi * 6371.0)


class TestRankByDistance:
    def test_filters_by_radius_and_sorts(self):
        points = {name: north_of(PICKUP, km) for name, km in [("a", 1.2), ("b", 0.5), ("c", 3.0)]}
        ranked = rank_by_distance(
            (PICKUP.latitude, PICKUP.longitude), points, points.get, radius_km=2.0
        )
        assert [r.item for r in ranked] == ["b", "a"]
        assert [round(r.distance_km, 2) for r in ranked] == [0.5, 1.2]

    def test_skips_candidates_without_location(self):
        ranked = rank_by_distance((0.0, 0.0), ["x"], lambda _: None, radius_km=100)
        assert ranked == []

    def test_empty_candidates(self):
        assert rank_by_distance((0.0, 0.0), [], lambda c: c, radius_km=5) == []


class TestFindNearbyDrivers:
    @pytest.mark.asyncio
    async def test_ranks_drivers_within_radius(self, session_factory, matching):
        for driver_id, km in [("d-far", 1.2), ("d-near", 0.5), ("d-out", 3.0)]:
            await add_driver(session_factory, driver_id, *north_of(PICKUP, km))

        found = await matching.find_nearby_drivers(PICKUP, radius_km=2.0)

        assert [m.driver_id for m in found] == ["d-near", "d-far"]
        assert [m.distance_km for m in found] == [0.5, 1.2]

    @pytest.mark.asyncio
    async def test_excludes_ineligible_drivers(self, session_factory, matching):
        lat, lng = north_of(PICKUP, 0.3)
        await add_driver(session_factory, "ok", lat, lng)
        await add_driver(session_factory, "offline", lat, lng, online=False)
        await add_driver(session_factory, "busy", lat, lng, available=False, current_trip_id="t-1")
        await add_driver(session_factory, "pending", lat, lng, status=VerificationStatus.PENDING)
        await add_driver(session_factory, "no-location", None, None)

        found = await matching.find_nearby_drivers(PICKUP)

        assert [m.driver_id for m in found] == ["ok"]

    @pytest.mark.asyncio
    async def test_category_filter(self, session_factory, matching):
        lat, lng = north_of(PICKUP, 0.3)
        await add_driver(session_factory, "eco", lat, lng, category=RideCategory.ECONOMY)
        await add_driver(session_factory, "big", lat, lng, category=RideCategory.XL)

        found = await matching.find_nearby_drivers(PICKUP, category="xl")

        assert [m.driver_id for m in found] == ["big"]

    @pytest.mark.asyncio
    async def test_no_drivers_is_empty_not_error(self, matching):
        assert await matching.find_nearby_drivers(PICKUP) == []

    @pytest.mark.asyncio
    async def test_missing_location_is_validation_error(self, matching):
        with pytest.raises(ValidationError):
            await matching.find_nearby_drivers(None)

    @pytest.mark.asyncio
    async def test_unknown_category_is_validation_error(self, matching):
        with pytest.raises(ValidationError):
            await matching.find_nearby_drivers(PICKUP, category="helicopter")

    @pytest.mark.asyncio
    async def test_non_positive_radius_is_validation_error(self, matching):
        with pytest.raises(ValidationError):
            await matching.find_nearby_drivers(PICKUP, radius_km=0)


class TestFindNearbyJobs:
    @pytest.mark.asyncio
    async def test_interleaves_rides_and_deliveries_by_distance(self, trips, matching):
        near = Location(*north_of(PICKUP, 1.0))
        far = Location(*north_of(PICKUP, 4.0))
        outside = Location(*north_of(PICKUP, 12.0))
        ride = await request_ride(trips, "rider-1", pickup=far)
        delivery = await request_delivery(trips, "sender-1", pickup=near)
        await request_ride(trips, "rider-2", pickup=outside)

        jobs = await matching.find_nearby_jobs(PICKUP)

        assert [j.trip_id for j in jobs] == [delivery.id, ride.id]
        assert [j.kind for j in jobs] == [TripKind.DELIVERY, TripKind.RIDE]
        assert jobs[0].distance_km == 1.0
        assert jobs[0].estimated_minutes == 2
        assert jobs[1].estimated_minutes == 8
        assert jobs[0].recipient_name == "Meera Nair"

    @pytest.mark.asyncio
    async def test_accepted_trips_are_not_offered(self, session_factory, trips, matching):
        await add_driver(session_factory, "d1")
        trip = await request_ride(trips)
        await trips.accept_trip(trip.id, "d1")

        assert await matching.find_nearby_jobs(PICKUP) == []


class TestFindJobsForDriver:
    @pytest.mark.asyncio
    async def test_uses_driver_location(self, session_factory, trips, matching):
        await add_driver(session_factory, "d1", *north_of(PICKUP, 2.0))
        trip = await request_ride(trips)

        jobs = await matching.find_jobs_for_driver("d1")

        assert [j.trip_id for j in jobs] == [trip.id]
        assert jobs[0].distance_km == 2.0

    @pytest.mark.asyncio
    async def test_unknown_driver(self, matching):
        with pytest.raises(NotFoundError):
            await matching.find_jobs_for_driver("ghost")

    @pytest.mark.asyncio
    async def test_unverified_driver_is_forbidden(self, session_factory, matching):
        await add_driver(session_factory, "d1", status=VerificationStatus.PENDING)
        with pytest.raises(ForbiddenError):
            await matching.find_jobs_for_driver("d1")

    @pytest.mark.asyncio
    async def test_offline_driver_conflicts(self, session_factory, matching):
        await add_driver(session_factory, "d1", online=False)
        with pytest.raises(ConflictError):
            await matching.find_jobs_for_driver("d1")

    @pytest.mark.asyncio
    async def test_driver_without_location(self, session_factory, matching):
        await add_driver(session_factory, "d1", None, None)
        with pytest.raises(ValidationError):
            await matching.find_jobs_for_driver("d1")
