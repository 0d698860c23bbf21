"""Tests for driver availability, location, admin verification and earnings."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from dispatch.domain.entities import Location, as_utc
from dispatch.domain.enums import EarningsPeriod, RideCategory, VerificationStatus
from dispatch.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from dispatch.infrastructure.models import DriverModel
from dispatch.infrastructure.repositories import DriverRepository
from dispatch.services.drivers import period_start
from tests.conftest import START, add_driver, load_driver, request_delivery, request_ride


class TestRegistration:
    @pytest.mark.asyncio
    async def test_new_driver_is_pending_and_offline(self, drivers):
        driver = await drivers.register_driver("d1", "Anil Das", "comfort")
        assert driver.verification_status is VerificationStatus.PENDING
        assert driver.vehicle_category is RideCategory.COMFORT
        assert driver.is_online is False

    @pytest.mark.asyncio
    async def test_duplicate_registration_conflicts(self, drivers):
        await drivers.register_driver("d1", "Anil Das")
        with pytest.raises(ConflictError):
            await drivers.register_driver("d1", "Anil Again")

    @pytest.mark.asyncio
    async def test_unknown_vehicle_category(self, drivers):
        with pytest.raises(ValidationError):
            await drivers.register_driver("d1", "Anil Das", "rickshaw")

    @pytest.mark.asyncio
    async def test_get_unknown_driver(self, drivers):
        with pytest.raises(NotFoundError):
            await drivers.get_driver("ghost")


class TestAvailability:
    @pytest.mark.asyncio
    async def test_go_online_and_offline(self, session_factory, drivers):
        await add_driver(session_factory, "d1", online=False)
        assert (await drivers.update_driver_availability("d1", True)).is_online is True
        assert (await drivers.update_driver_availability("d1", False)).is_online is False

    @pytest.mark.asyncio
    async def test_unverified_driver_cannot_go_online(self, session_factory, drivers):
        await add_driver(session_factory, "d1", online=False, status=VerificationStatus.PENDING)
        with pytest.raises(ForbiddenError):
            await drivers.update_driver_availability("d1", True)

    @pytest.mark.asyncio
    async def test_cannot_go_offline_with_active_trip(self, session_factory, trips, drivers):
        await add_driver(session_factory, "d1")
        trip = await request_ride(trips)
        await trips.accept_trip(trip.id, "d1")

        with pytest.raises(ConflictError) as exc_info:
            await drivers.update_driver_availability("d1", False)

        assert exc_info.value.context["current_trip_id"] == trip.id
        assert (await load_driver(session_factory, "d1")).is_online is True

    @pytest.mark.asyncio
    async def test_going_online_with_active_trip_is_fine(self, session_factory, trips, drivers):
        await add_driver(session_factory, "d1")
        trip = await request_ride(trips)
        await trips.accept_trip(trip.id, "d1")
        assert (await drivers.update_driver_availability("d1", True)).is_online is True

    @pytest.mark.asyncio
    async def test_suspended_between_read_and_write_is_forbidden(
        self, session_factory, drivers, monkeypatch
    ):
        await add_driver(session_factory, "d1", online=False)
        set_online = DriverRepository.set_online

        async def suspend_then_set_online(self, driver_id, is_online, now):
            # an admin suspension lands after the service has read the driver
            await self.session.execute(
                update(DriverModel)
                .where(DriverModel.driver_id == driver_id)
                .values(verification_status=VerificationStatus.SUSPENDED)
                .execution_options(synchronize_session=False)
            )
            return await set_online(self, driver_id, is_online, now)

        monkeypatch.setattr(DriverRepository, "set_online", suspend_then_set_online)

        with pytest.raises(ForbiddenError) as exc_info:
            await drivers.update_driver_availability("d1", True)

        assert exc_info.value.context["verification_status"] == "suspended"
        assert (await load_driver(session_factory, "d1")).is_online is False


class TestLocation:
    @pytest.mark.asyncio
    async def test_update_bumps_version(self, session_factory, drivers, clock):
        await add_driver(session_factory, "d1")
        now = clock.advance(seconds=5)

        first = await drivers.update_driver_location("d1", Location(24.34, 92.02))
        second = await drivers.update_driver_location("d1", Location(24.35, 92.03))

        assert first.location_version == 1
        assert second.location_version == 2
        assert (second.current_lat, second.current_lng) == (24.35, 92.03)
        assert as_utc(second.location_updated_at) == now

    @pytest.mark.asyncio
    async def test_missing_location(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        with pytest.raises(ValidationError):
            await drivers.update_driver_location("d1", None)

    @pytest.mark.asyncio
    async def test_unknown_driver(self, drivers):
        with pytest.raises(NotFoundError):
            await drivers.update_driver_location("ghost", Location(24.34, 92.02))


class TestVerification:
    @pytest.mark.asyncio
    async def test_approve_pending_driver(self, drivers):
        await drivers.register_driver("d1", "Anil Das")
        driver = await drivers.verify_driver("d1", True)
        assert driver.verification_status is VerificationStatus.VERIFIED
        assert driver.verified_at is not None

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, drivers):
        await drivers.register_driver("d1", "Anil Das")
        with pytest.raises(ValidationError):
            await drivers.verify_driver("d1", False)
        driver = await drivers.verify_driver("d1", False, "Blurry licence")
        assert driver.verification_status is VerificationStatus.REJECTED
        assert driver.rejection_reason == "Blurry licence"

    @pytest.mark.asyncio
    async def test_only_pending_drivers_are_reviewed(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        with pytest.raises(ConflictError):
            await drivers.verify_driver("d1", True)

    @pytest.mark.asyncio
    async def test_list_by_status(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        await add_driver(session_factory, "d2", status=VerificationStatus.PENDING)
        pending = await drivers.list_drivers("pending")
        assert [d.driver_id for d in pending] == ["d2"]
        assert len(await drivers.list_drivers()) == 2


class TestSuspension:
    @pytest.mark.asyncio
    async def test_suspension_forces_offline_and_hides_driver(
        self, session_factory, drivers, matching
    ):
        await add_driver(session_factory, "d1")
        driver = await drivers.suspend_driver("d1", True)

        assert driver.verification_status is VerificationStatus.SUSPENDED
        assert driver.is_online is False
        assert driver.suspension_reason == "Administrative action"
        assert await matching.find_nearby_drivers(Location(24.33, 92.01)) == []

    @pytest.mark.asyncio
    async def test_lifting_restores_verified(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        await drivers.suspend_driver("d1", True, "Complaints")
        driver = await drivers.suspend_driver("d1", False)
        assert driver.verification_status is VerificationStatus.VERIFIED
        assert driver.suspension_reason is None

    @pytest.mark.asyncio
    async def test_cannot_suspend_during_active_trip(self, session_factory, trips, drivers):
        await add_driver(session_factory, "d1")
        trip = await request_ride(trips)
        await trips.accept_trip(trip.id, "d1")
        with pytest.raises(ConflictError):
            await drivers.suspend_driver("d1", True)

    @pytest.mark.asyncio
    async def test_cannot_suspend_pending_driver(self, session_factory, drivers):
        await add_driver(session_factory, "d1", status=VerificationStatus.PENDING)
        with pytest.raises(ConflictError):
            await drivers.suspend_driver("d1", True)


class TestEarnings:
    def test_period_boundaries(self):
        now = datetime(2026, 3, 18, 15, 30, tzinfo=timezone.utc)
        assert period_start(EarningsPeriod.DAY, now) == datetime(2026, 3, 18, tzinfo=timezone.utc)
        assert period_start(EarningsPeriod.WEEK, now) == now - timedelta(days=7)
        assert period_start(EarningsPeriod.MONTH, now) == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert period_start(EarningsPeriod.YEAR, now) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_totals_and_daily_breakdown(self, session_factory, trips, drivers, clock):
        await add_driver(session_factory, "d1")

        ride = await request_ride(trips, "rider-1", fare=164.0)
        await trips.accept_trip(ride.id, "d1")
        await trips.advance_trip(ride.id, "d1", "in_progress")
        await trips.complete_trip(ride.id, "d1")

        clock.advance(days=1)
        parcel = await request_delivery(trips, "sender-1", fare=60.5)
        await trips.accept_trip(parcel.id, "d1")
        await trips.advance_trip(parcel.id, "d1", "picked_up")
        await trips.complete_trip(parcel.id, "d1")

        summary = await drivers.driver_earnings("d1", "month")

        assert summary.total_earnings == 224.5
        assert summary.ride_earnings == 164.0
        assert summary.delivery_earnings == 60.5
        assert summary.completed_rides == 1
        assert summary.completed_deliveries == 1
        assert summary.total_trips == 2
        assert summary.daily_earnings["2026-03-01"] == 0.0
        assert summary.daily_earnings["2026-03-02"] == 164.0
        assert summary.daily_earnings["2026-03-03"] == 60.5
        assert list(summary.daily_earnings)[-1] == "2026-03-03"

    @pytest.mark.asyncio
    async def test_day_period_excludes_yesterday(self, session_factory, trips, drivers, clock):
        await add_driver(session_factory, "d1")
        ride = await request_ride(trips)
        await trips.accept_trip(ride.id, "d1")
        await trips.advance_trip(ride.id, "d1", "in_progress")
        await trips.complete_trip(ride.id, "d1")

        clock.advance(days=1)
        summary = await drivers.driver_earnings("d1", "day")

        assert summary.total_earnings == 0.0
        assert summary.daily_earnings == {"2026-03-03": 0.0}

    @pytest.mark.asyncio
    async def test_invalid_period(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        with pytest.raises(ValidationError):
            await drivers.driver_earnings("d1", "decade")

    @pytest.mark.asyncio
    async def test_new_driver_has_no_earnings(self, session_factory, drivers):
        await add_driver(session_factory, "d1")
        summary = await drivers.driver_earnings("d1", EarningsPeriod.WEEK)
        assert summary.total_trips == 0
        assert len(summary.daily_earnings) == 8
        assert START.date().isoformat() in summary.daily_earnings
