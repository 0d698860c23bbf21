"""
Trip lifecycle service
======================

create -> accept -> advance* -> complete, with cancel from any non-terminal
state.  Rides and deliveries go through the same code; only the transition
table (see :data:`dispatch.domain.enums.TRIP_TRANSITIONS`) differs.

Concurrency safety
------------------
* Every status write is a conditional ``UPDATE`` guarded by the status that
  was read, so a stale reader fails with :class:`ConflictError` instead of
  overwriting a newer state.
* ``accept`` reserves the driver (free -> busy) and claims the trip
  (``requested`` -> ``confirmed``, ``driver_id`` still null) in one unit of
  work.  Either condition failing rolls back both writes.
* ``complete`` / ``cancel`` release the driver only while the driver still
  holds this trip, inside the same unit of work as the trip write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .base import Clock, SessionService
from .drivers import days_between, period_start
from dispatch.domain.access import (
    can_accept,
    can_advance,
    can_cancel,
    can_view,
    require,
)
from dispatch.domain.entities import (
    Actor,
    Location,
    as_utc,
    ensure_advance_target,
    ensure_transition,
    is_terminal,
    utcnow,
)
from dispatch.domain.enums import (
    STATUS_TIMESTAMPS,
    ActorRole,
    EarningsPeriod,
    PaymentStatus,
    TripKind,
    TripStatus,
    VerificationStatus,
)
from dispatch.domain.exceptions import ConflictError, NotFoundError, ValidationError
from dispatch.domain.fees import cancellation_fee
from dispatch.domain.validators import (
    parse_enum,
    require_text,
    validate_category,
    validate_fare,
    validate_phone,
)
from dispatch.infrastructure.models import (
    CancellationModel,
    DriverModel,
    PaymentModel,
    TripModel,
)
from dispatch.infrastructure.repositories import (
    CancellationRepository,
    DriverRepository,
    PaymentRepository,
    TripRepository,
)

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "No reason provided"


@dataclass
class KindTotals:
    total: int = 0
    completed: int = 0
    cancelled: int = 0


@dataclass
class DailyActivity:
    rides: int = 0
    deliveries: int = 0
    revenue: float = 0.0
    cancellations: int = 0


@dataclass
class PlatformAnalytics:
    """Admin dashboard figures for one reporting window.

    ``rides`` / ``deliveries`` count trips created in the window, plus those
    completed or cancelled in it.  ``daily`` buckets trips by creation day.
    """

    period: EarningsPeriod
    since: datetime
    verified_drivers: int = 0
    pending_drivers: int = 0
    rides: KindTotals = field(default_factory=KindTotals)
    deliveries: KindTotals = field(default_factory=KindTotals)
    revenue: float = 0.0
    daily: dict[str, DailyActivity] = field(default_factory=dict)


class TripLifecycleService(SessionService):
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        super().__init__(session, clock)
        self.trips = TripRepository(session)
        self.drivers = DriverRepository(session)
        self.payments = PaymentRepository(session)
        self.cancellations = CancellationRepository(session)

    # ── Queries ───────────────────────────────────────────────────────

    async def get_trip(self, trip_id: str, actor: Actor) -> TripModel:
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_view(trip, actor), "view", trip_id)
        return trip

    async def trip_history(
        self, requester_id: str, kind: Optional[TripKind | str] = None
    ) -> list[TripModel]:
        """Completed and cancelled trips of *requester_id*, newest first."""
        if kind is not None:
            kind = parse_enum(TripKind, kind, "kind")
        async with self.unit_of_work():
            return await self.trips.get_history(requester_id, kind)

    async def list_trips(
        self,
        kind: Optional[TripKind | str] = None,
        status: Optional[TripStatus | str] = None,
        limit: int = 50,
    ) -> list[TripModel]:
        """Admin listing, newest first."""
        if kind is not None:
            kind = parse_enum(TripKind, kind, "kind")
        if status is not None:
            status = parse_enum(TripStatus, status, "status")
        async with self.unit_of_work():
            return await self.trips.list_trips(kind, status, limit)

    async def analytics(
        self, period: EarningsPeriod | str = EarningsPeriod.MONTH
    ) -> PlatformAnalytics:
        """Driver counts, trip volumes and revenue since the start of *period*."""
        period = parse_enum(EarningsPeriod, period, "period")
        now = as_utc(self.clock())
        since = period_start(period, now)

        async with self.unit_of_work():
            verified = await self.drivers.count_by_status(VerificationStatus.VERIFIED)
            pending = await self.drivers.count_by_status(VerificationStatus.PENDING)
            created = await self.trips.get_created_since(since)
            completed = await self.trips.get_finished_since(TripStatus.COMPLETED, since)
            cancelled = await self.trips.get_finished_since(TripStatus.CANCELLED, since)

        report = PlatformAnalytics(
            period=period, since=since, verified_drivers=verified, pending_drivers=pending
        )
        totals = {TripKind.RIDE: report.rides, TripKind.DELIVERY: report.deliveries}
        for trip in completed:
            totals[trip.kind].completed += 1
            report.revenue += trip.fare or 0.0
        for trip in cancelled:
            totals[trip.kind].cancelled += 1

        daily = {day: DailyActivity() for day in days_between(since.date(), now.date())}
        for trip in created:
            totals[trip.kind].total += 1
            bucket = daily.setdefault(
                as_utc(trip.created_at).date().isoformat(), DailyActivity()
            )
            if trip.kind is TripKind.RIDE:
                bucket.rides += 1
            else:
                bucket.deliveries += 1
            if trip.status is TripStatus.COMPLETED:
                bucket.revenue += trip.fare or 0.0
            elif trip.status is TripStatus.CANCELLED:
                bucket.cancellations += 1

        for bucket in daily.values():
            bucket.revenue = round(bucket.revenue, 2)
        report.revenue = round(report.revenue, 2)
        report.daily = daily
        return report

    # ── Create ────────────────────────────────────────────────────────

    async def create_trip(
        self,
        kind: TripKind | str,
        requester_id: str,
        pickup: Optional[Location],
        destination: Optional[Location],
        category: str,
        fare: float,
        *,
        notes: Optional[str] = None,
        recipient_name: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        package_description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> TripModel:
        kind = parse_enum(TripKind, kind, "kind")
        requester_id = require_text(requester_id, "requester_id")
        if pickup is None or destination is None:
            raise ValidationError(
                "pickup and destination are required", field="location"
            )
        validate_category(kind, category)
        validate_fare(fare)
        if kind is TripKind.DELIVERY:
            recipient_name = require_text(recipient_name, "recipient_name")
            validate_phone(recipient_phone)

        async with self.unit_of_work():
            if idempotency_key:
                existing = await self._replay(idempotency_key, requester_id, kind)
                if existing is not None:
                    return existing

            if await self.trips.has_active_trip(requester_id, kind):
                raise ConflictError(
                    f"You already have an active {kind.value}. "
                    "Complete or cancel it before booking a new one.",
                    kind=kind.value,
                    requester_id=requester_id,
                )

            now = self.clock()
            trip = TripModel(
                kind=kind,
                requester_id=requester_id,
                pickup_lat=pickup.latitude,
                pickup_lng=pickup.longitude,
                pickup_address=pickup.display_address,
                pickup_place_id=pickup.place_id,
                destination_lat=destination.latitude,
                destination_lng=destination.longitude,
                destination_address=destination.display_address,
                destination_place_id=destination.place_id,
                category=category,
                fare=float(fare),
                status=TripStatus.REQUESTED,
                notes=notes or "",
                idempotency_key=idempotency_key,
                recipient_name=recipient_name if kind is TripKind.DELIVERY else None,
                recipient_phone=recipient_phone if kind is TripKind.DELIVERY else None,
                package_description=(
                    package_description if kind is TripKind.DELIVERY else None
                ),
                created_at=now,
                updated_at=now,
            )
            try:
                async with self.session.begin_nested():
                    await self.trips.create(trip)
            except IntegrityError as exc:
                # a concurrent create committed first, on this key or this requester
                if idempotency_key:
                    existing = await self._replay(idempotency_key, requester_id, kind)
                    if existing is not None:
                        return existing
                raise ConflictError(
                    f"You already have an active {kind.value}",
                    kind=kind.value,
                    requester_id=requester_id,
                ) from exc

        logger.info("%s %s created by %s", kind.value.capitalize(), trip.id, requester_id)
        return trip

    # ── Accept ────────────────────────────────────────────────────────

    async def accept_trip(self, trip_id: str, driver_id: str) -> TripModel:
        actor = Actor.driver(driver_id)
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_accept(trip, actor), "accept", trip_id)
            if trip.status is not TripStatus.REQUESTED:
                raise ConflictError(
                    f"Trip is {trip.status.value} and cannot be accepted",
                    trip_id=trip_id,
                    current_status=trip.status.value,
                )

            driver = await self._load_driver(driver_id)
            self._ensure_can_take_trip(driver)

            now = self.clock()
            if not await self.drivers.reserve(driver_id, trip_id, now):
                raise ConflictError(
                    "Driver is no longer available to take a trip",
                    driver_id=driver_id,
                )
            claimed = await self.trips.transition(
                trip_id,
                [TripStatus.REQUESTED],
                self._stamp(TripStatus.CONFIRMED, now, driver_id=driver_id),
                unassigned=True,
            )
            if not claimed:
                logger.info("Driver %s lost the accept race for trip %s", driver_id, trip_id)
                raise ConflictError(
                    "Trip was already accepted by another driver",
                    trip_id=trip_id,
                )
            await self.trips.refresh(trip)

        logger.info("%s %s accepted by driver %s", trip.kind.value.capitalize(), trip_id, driver_id)
        return trip

    # ── Advance ───────────────────────────────────────────────────────

    async def advance_trip(
        self, trip_id: str, driver_id: str, target_status: TripStatus | str
    ) -> TripModel:
        target = parse_enum(TripStatus, target_status, "target_status")
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_advance(trip, Actor.driver(driver_id)), "update", trip_id)
            ensure_advance_target(trip.kind, target)
            ensure_transition(trip.kind, trip.status, target)

            now = self.clock()
            await self._guarded_transition(trip, self._stamp(target, now), driver_id)
            await self.trips.refresh(trip)

        logger.info("Trip %s moved to %s by driver %s", trip_id, target.value, driver_id)
        return trip

    # ── Complete ──────────────────────────────────────────────────────

    async def complete_trip(
        self,
        trip_id: str,
        driver_id: str,
        proof_photo_url: Optional[str] = None,
    ) -> tuple[TripModel, PaymentModel]:
        """Finish the trip, free the driver and emit a pending payment."""
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_advance(trip, Actor.driver(driver_id)), "complete", trip_id)
            ensure_transition(trip.kind, trip.status, TripStatus.COMPLETED)
            if proof_photo_url and trip.kind is not TripKind.DELIVERY:
                raise ValidationError(
                    "Proof photos only apply to deliveries", field="proof_photo_url"
                )

            now = self.clock()
            values = self._stamp(TripStatus.COMPLETED, now)
            if proof_photo_url:
                values["proof_photo_url"] = proof_photo_url
            kind, fare = trip.kind, trip.fare
            await self._guarded_transition(trip, values, driver_id)

            released = await self.drivers.release(
                driver_id, trip_id, now, completed_kind=kind, earnings=fare
            )
            if not released:
                raise ConflictError(
                    "Driver no longer holds this trip", trip_id=trip_id, driver_id=driver_id
                )

            payment = await self.payments.create(
                PaymentModel(
                    trip_id=trip_id,
                    kind=kind,
                    requester_id=trip.requester_id,
                    driver_id=driver_id,
                    amount=fare,
                    status=PaymentStatus.PENDING,
                    created_at=now,
                )
            )
            await self.trips.refresh(trip)

        logger.info(
            "%s %s completed by driver %s (payment %s pending, amount %.2f)",
            kind.value.capitalize(), trip_id, driver_id, payment.id, fare,
        )
        return trip, payment

    async def attach_proof(
        self, trip_id: str, driver_id: str, proof_photo_url: str
    ) -> TripModel:
        """Store a delivery proof URL supplied by the storage collaborator."""
        proof_photo_url = require_text(proof_photo_url, "proof_photo_url")
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_advance(trip, Actor.driver(driver_id)), "attach proof to", trip_id)
            if trip.kind is not TripKind.DELIVERY:
                raise ValidationError(
                    "Proof photos only apply to deliveries", field="proof_photo_url"
                )
            if trip.status is not TripStatus.COMPLETED:
                raise ConflictError(
                    f"Delivery is {trip.status.value}; proof is attached after completion",
                    trip_id=trip_id,
                    current_status=trip.status.value,
                )
            if not await self.trips.set_proof(trip_id, driver_id, proof_photo_url, self.clock()):
                raise ConflictError("Delivery changed concurrently", trip_id=trip_id)
            await self.trips.refresh(trip)

        logger.info("Proof photo attached to delivery %s by driver %s", trip_id, driver_id)
        return trip

    # ── Cancel ────────────────────────────────────────────────────────

    async def cancel_trip(
        self,
        trip_id: str,
        actor_id: str,
        actor_role: ActorRole | str,
        reason: Optional[str] = None,
    ) -> TripModel:
        actor = Actor(actor_id, parse_enum(ActorRole, actor_role, "actor_role"))
        async with self.unit_of_work():
            trip = await self._load_trip(trip_id)
            require(can_cancel(trip, actor), "cancel", trip_id)
            if is_terminal(trip.status):
                raise ConflictError(
                    f"Trip is {trip.status.value} and cannot be cancelled",
                    trip_id=trip_id,
                    current_status=trip.status.value,
                )
            ensure_transition(trip.kind, trip.status, TripStatus.CANCELLED)

            now = self.clock()
            fee = cancellation_fee(
                trip.fare,
                driver_id=trip.driver_id,
                accepted_at=trip.accepted_at,
                cancelled_at=now,
                cancelled_by=actor.role,
            )
            reason = (reason or "").strip() or DEFAULT_CANCELLATION_REASON
            values = self._stamp(TripStatus.CANCELLED, now)
            values.update(
                cancelled_by=actor.role,
                cancellation_reason=reason,
                cancellation_fee=fee,
            )
            assigned_driver = trip.driver_id
            await self._guarded_transition(trip, values)

            if assigned_driver is not None:
                if not await self.drivers.release(assigned_driver, trip_id, now):
                    raise ConflictError(
                        "Assigned driver no longer holds this trip",
                        trip_id=trip_id,
                        driver_id=assigned_driver,
                    )

            await self.cancellations.create(
                CancellationModel(
                    trip_id=trip_id,
                    kind=trip.kind,
                    requester_id=trip.requester_id,
                    driver_id=assigned_driver,
                    cancelled_by=actor.role,
                    reason=reason,
                    fee=fee,
                    created_at=now,
                )
            )
            await self.trips.refresh(trip)

        logger.info("Trip %s cancelled by %s (fee %.2f)", trip_id, actor.role.value, fee)
        return trip

    # ── Internals ─────────────────────────────────────────────────────

    async def _replay(
        self, idempotency_key: str, requester_id: str, kind: TripKind
    ) -> Optional[TripModel]:
        """The trip already created under *idempotency_key*, if any."""
        existing = await self.trips.get_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if existing.requester_id != requester_id or existing.kind is not kind:
            raise ConflictError(
                "Idempotency key already used for another request",
                idempotency_key=idempotency_key,
            )
        logger.info("Replaying %s %s for key %s", kind.value, existing.id, idempotency_key)
        return existing

    async def _load_trip(self, trip_id: str) -> TripModel:
        trip = await self.trips.get_by_id(trip_id)
        if trip is None:
            raise NotFoundError("Trip not found", trip_id=trip_id)
        return trip

    async def _load_driver(self, driver_id: str) -> DriverModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFoundError("Driver not found", driver_id=driver_id)
        return driver

    @staticmethod
    def _ensure_can_take_trip(driver: DriverModel) -> None:
        if driver.verification_status is not VerificationStatus.VERIFIED:
            raise ConflictError(
                "Only verified drivers can accept trips",
                driver_id=driver.driver_id,
                verification_status=driver.verification_status.value,
            )
        if not driver.is_online:
            raise ConflictError("Driver must be online to accept trips", driver_id=driver.driver_id)
        if driver.current_trip_id is not None or not driver.is_available:
            raise ConflictError(
                "Driver already has an active trip",
                driver_id=driver.driver_id,
                current_trip_id=driver.current_trip_id,
            )

    @staticmethod
    def _stamp(target: TripStatus, now: datetime, **extra: Any) -> dict[str, Any]:
        values: dict[str, Any] = {"status": target, "updated_at": now, **extra}
        column = STATUS_TIMESTAMPS.get(target)
        if column is not None:
            values[column] = now
        return values

    async def _guarded_transition(
        self,
        trip: TripModel,
        values: dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> None:
        """Write *values* only if the trip is still in the status we read."""
        observed = trip.status
        if not await self.trips.transition(trip.id, [observed], values, driver_id=driver_id):
            raise ConflictError(
                "Trip changed concurrently; reload and retry",
                trip_id=trip.id,
                expected_status=observed.value,
            )
