"""
Driver availability service
===========================

Owns the driver record: registration, online/offline, live location,
admin verification / suspension, and the earnings summary.

The online flag and the reservation made by ``accept`` touch the same row,
so every write here is a conditional ``UPDATE``.  Going offline is guarded by
``current_trip_id IS NULL`` in the statement itself; a concurrent accept that
lands first makes the offline request fail instead of being overwritten.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base import Clock, SessionService
from dispatch.domain.entities import Location, as_utc, utcnow
from dispatch.domain.enums import (
    EarningsPeriod,
    RideCategory,
    TripKind,
    VerificationStatus,
)
from dispatch.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from dispatch.domain.validators import parse_enum, require_text
from dispatch.infrastructure.models import DriverModel
from dispatch.infrastructure.repositories import DriverRepository, TripRepository

logger = logging.getLogger(__name__)

DEFAULT_SUSPENSION_REASON = "Administrative action"


@dataclass
class EarningsSummary:
    period: EarningsPeriod
    since: datetime
    total_earnings: float = 0.0
    ride_earnings: float = 0.0
    delivery_earnings: float = 0.0
    completed_rides: int = 0
    completed_deliveries: int = 0
    daily_earnings: dict[str, float] = field(default_factory=dict)

    @property
    def total_trips(self) -> int:
        return self.completed_rides + self.completed_deliveries


def period_start(period: EarningsPeriod, now: datetime) -> datetime:
    """Start of the earnings window (UTC calendar boundaries, rolling week)."""
    now = as_utc(now)
    if period is EarningsPeriod.DAY:
        return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    if period is EarningsPeriod.WEEK:
        return now - timedelta(days=7)
    if period is EarningsPeriod.MONTH:
        return datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    return datetime(now.year, 1, 1, tzinfo=timezone.utc)


def days_between(start: date, end: date) -> list[str]:
    return [
        (start + timedelta(days=i)).isoformat()
        for i in range((end - start).days + 1)
    ]


class DriverAvailabilityService(SessionService):
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        super().__init__(session, clock)
        self.drivers = DriverRepository(session)
        self.trips = TripRepository(session)

    # ── Registration & lookup ─────────────────────────────────────────

    async def register_driver(
        self,
        driver_id: str,
        name: str,
        vehicle_category: RideCategory | str = RideCategory.ECONOMY,
    ) -> DriverModel:
        """Create a ``pending`` driver record awaiting admin verification."""
        driver_id = require_text(driver_id, "driver_id")
        name = require_text(name, "name")
        category = parse_enum(RideCategory, vehicle_category, "vehicle_category")

        async with self.unit_of_work():
            if await self.drivers.get_by_id(driver_id) is not None:
                raise ConflictError("Driver profile already exists", driver_id=driver_id)
            now = self.clock()
            driver = DriverModel(
                driver_id=driver_id,
                name=name,
                vehicle_category=category,
                verification_status=VerificationStatus.PENDING,
                is_online=False,
                is_available=True,
                location_version=0,
                total_rides=0,
                total_deliveries=0,
                rating=0.0,
                total_earnings=0.0,
                created_at=now,
                updated_at=now,
            )
            try:
                await self.drivers.create(driver)
            except IntegrityError as exc:
                raise ConflictError(
                    "Driver profile already exists", driver_id=driver_id
                ) from exc

        logger.info("Driver %s registered (%s), pending verification", driver_id, category.value)
        return driver

    async def get_driver(self, driver_id: str) -> DriverModel:
        async with self.unit_of_work():
            return await self._load(driver_id)

    async def list_drivers(
        self, status: Optional[VerificationStatus | str] = None
    ) -> list[DriverModel]:
        if status is not None:
            status = parse_enum(VerificationStatus, status, "status")
        async with self.unit_of_work():
            return await self.drivers.list_drivers(status)

    # ── Availability & location ───────────────────────────────────────

    async def update_driver_availability(
        self, driver_id: str, is_online: bool
    ) -> DriverModel:
        if not isinstance(is_online, bool):
            raise ValidationError("is_online must be a boolean", field="is_online")

        async with self.unit_of_work():
            driver = await self._load(driver_id)
            self._require_verified(driver)
            if not await self.drivers.set_online(driver_id, is_online, self.clock()):
                # lost to a suspension or an accept; the fresh row says which
                await self.drivers.refresh(driver)
                self._require_verified(driver)
                raise ConflictError(
                    "Cannot go offline while holding an active trip",
                    driver_id=driver_id,
                    current_trip_id=driver.current_trip_id,
                )
            await self.drivers.refresh(driver)

        logger.info("Driver %s is now %s", driver_id, "online" if is_online else "offline")
        return driver

    async def update_driver_location(
        self, driver_id: str, location: Optional[Location]
    ) -> DriverModel:
        if location is None:
            raise ValidationError("location is required", field="location")

        async with self.unit_of_work():
            driver = await self._load(driver_id)
            await self.drivers.update_location(
                driver_id, location.latitude, location.longitude, self.clock()
            )
            await self.drivers.refresh(driver)

        logger.debug(
            "Driver %s location v%d: %s, %s",
            driver_id, driver.location_version, location.latitude, location.longitude,
        )
        return driver

    # ── Admin ─────────────────────────────────────────────────────────

    async def verify_driver(
        self,
        driver_id: str,
        approve: bool,
        rejection_reason: Optional[str] = None,
    ) -> DriverModel:
        """Approve or reject a ``pending`` driver."""
        if not approve and not (rejection_reason or "").strip():
            raise ValidationError(
                "Rejection reason is required when rejecting a driver",
                field="rejection_reason",
            )

        async with self.unit_of_work():
            driver = await self._load(driver_id)
            now = self.clock()
            if approve:
                values = {
                    "verification_status": VerificationStatus.VERIFIED,
                    "verified_at": now,
                    "rejection_reason": None,
                    "updated_at": now,
                }
            else:
                values = {
                    "verification_status": VerificationStatus.REJECTED,
                    "rejection_reason": rejection_reason.strip(),
                    "is_online": False,
                    "updated_at": now,
                }
            changed = await self.drivers.set_verification(
                driver_id, [VerificationStatus.PENDING], values
            )
            if not changed:
                raise ConflictError(
                    f"Driver is {driver.verification_status.value}, not pending verification",
                    driver_id=driver_id,
                    verification_status=driver.verification_status.value,
                )
            await self.drivers.refresh(driver)

        logger.info(
            "Driver %s %s by admin", driver_id, "verified" if approve else "rejected"
        )
        return driver

    async def suspend_driver(
        self,
        driver_id: str,
        suspended: bool,
        reason: Optional[str] = None,
    ) -> DriverModel:
        """Suspend a verified driver (forcing them offline) or lift a suspension."""
        if not isinstance(suspended, bool):
            raise ValidationError("suspended must be a boolean value", field="suspended")

        async with self.unit_of_work():
            driver = await self._load(driver_id)
            now = self.clock()
            if suspended:
                changed = await self.drivers.set_verification(
                    driver_id,
                    [VerificationStatus.VERIFIED],
                    {
                        "verification_status": VerificationStatus.SUSPENDED,
                        "suspension_reason": (reason or "").strip()
                        or DEFAULT_SUSPENSION_REASON,
                        "is_online": False,
                        "updated_at": now,
                    },
                    require_idle=True,
                )
                if not changed:
                    await self.drivers.refresh(driver)
                    if driver.current_trip_id is not None:
                        raise ConflictError(
                            "Cannot suspend a driver during an active trip",
                            driver_id=driver_id,
                            current_trip_id=driver.current_trip_id,
                        )
                    raise ConflictError(
                        f"Only verified drivers can be suspended; driver is "
                        f"{driver.verification_status.value}",
                        driver_id=driver_id,
                        verification_status=driver.verification_status.value,
                    )
            else:
                changed = await self.drivers.set_verification(
                    driver_id,
                    [VerificationStatus.SUSPENDED],
                    {
                        "verification_status": VerificationStatus.VERIFIED,
                        "suspension_reason": None,
                        "updated_at": now,
                    },
                )
                if not changed:
                    raise ConflictError(
                        "Driver is not suspended",
                        driver_id=driver_id,
                        verification_status=driver.verification_status.value,
                    )
            await self.drivers.refresh(driver)

        logger.info("Driver %s %s by admin", driver_id, "suspended" if suspended else "unsuspended")
        return driver

    # ── Earnings ──────────────────────────────────────────────────────

    async def driver_earnings(
        self, driver_id: str, period: EarningsPeriod | str = EarningsPeriod.MONTH
    ) -> EarningsSummary:
        """Fares of completed trips in *period*, with a per-day breakdown."""
        period = parse_enum(EarningsPeriod, period, "period")
        now = as_utc(self.clock())
        since = period_start(period, now)

        async with self.unit_of_work():
            await self._load(driver_id)
            completed = await self.trips.get_completed_for_driver(driver_id, since)

        summary = EarningsSummary(period=period, since=since)
        daily: dict[str, float] = defaultdict(float)
        for day in days_between(since.date(), now.date()):
            daily[day] = 0.0
        for trip in completed:
            fare = trip.fare or 0.0
            if trip.kind is TripKind.RIDE:
                summary.completed_rides += 1
                summary.ride_earnings += fare
            else:
                summary.completed_deliveries += 1
                summary.delivery_earnings += fare
            summary.total_earnings += fare
            daily[as_utc(trip.completed_at).date().isoformat()] += fare

        summary.total_earnings = round(summary.total_earnings, 2)
        summary.ride_earnings = round(summary.ride_earnings, 2)
        summary.delivery_earnings = round(summary.delivery_earnings, 2)
        summary.daily_earnings = {day: round(amount, 2) for day, amount in sorted(daily.items())}
        return summary

    # ── Internals ─────────────────────────────────────────────────────

    async def _load(self, driver_id: str) -> DriverModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found", driver_id=driver_id)
        return driver

    @staticmethod
    def _require_verified(driver: DriverModel) -> None:
        if driver.verification_status is not VerificationStatus.VERIFIED:
            raise ForbiddenError(
                "Only verified drivers can change availability",
                driver_id=driver.driver_id,
                verification_status=driver.verification_status.value,
            )
