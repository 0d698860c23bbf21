"""
Concurrency safety tests.

Demonstrates:
1. N drivers racing to accept one trip: exactly one wins, the rest conflict.
2. One driver racing to accept two trips: never holds both.
3. Racing creates cannot give a requester two active trips of one kind.
4. Going offline cannot slip past a concurrent accept.

Each racer runs in its own session, so the units of work overlap for real.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from dispatch.domain.entities import Actor
from dispatch.domain.enums import TripKind, TripStatus
from dispatch.domain.exceptions import ConflictError
from dispatch.infrastructure.models import DriverModel, TripModel
from tests.conftest import add_driver, load_driver, request_ride


def split_outcomes(results):
    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    return winners, losers


class TestAcceptRace:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("racers", [2, 5, 10])
    async def test_exactly_one_driver_wins(self, session_factory, trips, racers):
        driver_ids = [f"d{i}" for i in range(racers)]
        for driver_id in driver_ids:
            await add_driver(session_factory, driver_id)
        trip = await request_ride(trips)

        results = await asyncio.gather(
            *(trips.accept_trip(trip.id, d) for d in driver_ids),
            return_exceptions=True,
        )

        winners, losers = split_outcomes(results)
        assert len(winners) == 1
        assert len(losers) == racers - 1
        assert all(isinstance(e, ConflictError) for e in losers)

        final = await trips.get_trip(trip.id, Actor.admin("ops"))
        assert final.status is TripStatus.CONFIRMED
        assert final.driver_id == winners[0].driver_id

        async with session_factory() as session:
            busy = (
                await session.execute(
                    select(DriverModel.driver_id).where(DriverModel.current_trip_id == trip.id)
                )
            ).scalars().all()
        assert busy == [final.driver_id]

    @pytest.mark.asyncio
    async def test_losing_drivers_stay_available(self, session_factory, trips):
        for driver_id in ("d1", "d2", "d3"):
            await add_driver(session_factory, driver_id)
        trip = await request_ride(trips)

        results = await asyncio.gather(
            *(trips.accept_trip(trip.id, d) for d in ("d1", "d2", "d3")),
            return_exceptions=True,
        )
        winners, _ = split_outcomes(results)
        winner = winners[0].driver_id

        for driver_id in ("d1", "d2", "d3"):
            driver = await load_driver(session_factory, driver_id)
            if driver_id == winner:
                assert driver.is_available is False
            else:
                assert driver.is_available is True
                assert driver.current_trip_id is None


class TestDriverHoldsOneTrip:
    @pytest.mark.asyncio
    async def test_one_driver_two_trips(self, session_factory, trips):
        await add_driver(session_factory, "d1")
        first = await request_ride(trips, "rider-1")
        second = await request_ride(trips, "rider-2")

        results = await asyncio.gather(
            trips.accept_trip(first.id, "d1"),
            trips.accept_trip(second.id, "d1"),
            return_exceptions=True,
        )

        winners, losers = split_outcomes(results)
        assert len(winners) == 1
        assert isinstance(losers[0], ConflictError)

        async with session_factory() as session:
            assigned = (
                await session.execute(
                    select(func.count()).select_from(TripModel).where(TripModel.driver_id == "d1")
                )
            ).scalar()
        assert assigned == 1
        driver = await load_driver(session_factory, "d1")
        assert driver.current_trip_id == winners[0].id

    @pytest.mark.asyncio
    async def test_free_again_after_completion(self, session_factory, trips):
        await add_driver(session_factory, "d1")
        first = await request_ride(trips, "rider-1")
        second = await request_ride(trips, "rider-2")

        await trips.accept_trip(first.id, "d1")
        with pytest.raises(ConflictError):
            await trips.accept_trip(second.id, "d1")

        await trips.advance_trip(first.id, "d1", "in_progress")
        await trips.complete_trip(first.id, "d1")
        accepted = await trips.accept_trip(second.id, "d1")
        assert accepted.driver_id == "d1"


class TestCreateRace:
    @pytest.mark.asyncio
    async def test_racing_creates_yield_one_active_trip(self, trips):
        results = await asyncio.gather(
            *(request_ride(trips, "rider-1") for _ in range(4)),
            return_exceptions=True,
        )

        winners, losers = split_outcomes(results)
        assert len(winners) == 1
        assert all(isinstance(e, ConflictError) for e in losers)
        active = [
            t for t in await trips.list_trips(kind=TripKind.RIDE)
            if t.status is TripStatus.REQUESTED
        ]
        assert len(active) == 1


class TestOfflineRace:
    @pytest.mark.asyncio
    async def test_offline_and_accept_never_both_win(self, session_factory, trips, drivers):
        await add_driver(session_factory, "d1")
        trip = await request_ride(trips)

        accept, offline = await asyncio.gather(
            trips.accept_trip(trip.id, "d1"),
            drivers.update_driver_availability("d1", False),
            return_exceptions=True,
        )

        driver = await load_driver(session_factory, "d1")
        if isinstance(accept, BaseException):
            # offline landed first; the accept must have been refused
            assert isinstance(accept, ConflictError)
            assert driver.is_online is False
            assert driver.current_trip_id is None
        else:
            # accept landed first; going offline must have been refused
            assert isinstance(offline, ConflictError)
            assert driver.is_online is True
            assert driver.current_trip_id == trip.id
