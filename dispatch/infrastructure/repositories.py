"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.

Conditional updates
-------------------
Every write to a contended row is a single ``UPDATE … WHERE <expected
state>`` and reports success through ``rowcount``.  The check and the write
are one statement, so two drivers racing for the same trip cannot both see
``requested``: the loser's ``WHERE`` no longer matches and it gets ``False``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CancellationModel, DriverModel, PaymentModel, TripModel
from dispatch.domain.enums import (
    TERMINAL_STATUSES,
    TripKind,
    TripStatus,
    VerificationStatus,
)


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get_by_id(self, trip_id: str) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def refresh(self, trip: TripModel) -> TripModel:
        await self.session.refresh(trip)
        return trip

    async def get_by_idempotency_key(self, key: str) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def has_active_trip(self, requester_id: str, kind: TripKind) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    TripModel.requester_id == requester_id,
                    TripModel.kind == kind,
                    TripModel.status.not_in(list(TERMINAL_STATUSES)),
                )
            )
        )
        return bool(result.scalar())

    async def get_requested(self) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.status == TripStatus.REQUESTED)
            .order_by(TripModel.created_at)
        )
        return list(result.scalars().all())

    async def get_history(
        self, requester_id: str, kind: Optional[TripKind] = None
    ) -> list[TripModel]:
        query = select(TripModel).where(
            TripModel.requester_id == requester_id,
            TripModel.status.in_(list(TERMINAL_STATUSES)),
        )
        if kind is not None:
            query = query.where(TripModel.kind == kind)
        result = await self.session.execute(
            query.order_by(TripModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_trips(
        self,
        kind: Optional[TripKind] = None,
        status: Optional[TripStatus] = None,
        limit: int = 50,
    ) -> list[TripModel]:
        query = select(TripModel)
        if kind is not None:
            query = query.where(TripModel.kind == kind)
        if status is not None:
            query = query.where(TripModel.status == status)
        result = await self.session.execute(
            query.order_by(TripModel.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_completed_for_driver(
        self, driver_id: str, since: datetime
    ) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(
                TripModel.driver_id == driver_id,
                TripModel.status == TripStatus.COMPLETED,
                TripModel.completed_at >= since,
            )
            .order_by(TripModel.completed_at)
        )
        return list(result.scalars().all())

    async def get_created_since(self, since: datetime) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.created_at >= since)
            .order_by(TripModel.created_at)
        )
        return list(result.scalars().all())

    async def get_finished_since(
        self, status: TripStatus, since: datetime
    ) -> list[TripModel]:
        """Trips that became *status* (completed or cancelled) at or after *since*."""
        stamped_at = (
            TripModel.completed_at
            if status is TripStatus.COMPLETED
            else TripModel.cancelled_at
        )
        result = await self.session.execute(
            select(TripModel).where(TripModel.status == status, stamped_at >= since)
        )
        return list(result.scalars().all())

    async def transition(
        self,
        trip_id: str,
        from_statuses: Iterable[TripStatus],
        values: dict[str, Any],
        *,
        driver_id: Optional[str] = None,
        unassigned: bool = False,
    ) -> bool:
        """Atomic check-then-set on ``status`` (and optionally ``driver_id``)."""
        stmt = update(TripModel).where(
            TripModel.id == trip_id,
            TripModel.status.in_(list(from_statuses)),
        )
        if unassigned:
            stmt = stmt.where(TripModel.driver_id.is_(None))
        if driver_id is not None:
            stmt = stmt.where(TripModel.driver_id == driver_id)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_proof(
        self, trip_id: str, driver_id: str, proof_photo_url: str, now: datetime
    ) -> bool:
        result = await self.session.execute(
            update(TripModel)
            .where(
                TripModel.id == trip_id,
                TripModel.driver_id == driver_id,
                TripModel.kind == TripKind.DELIVERY,
                TripModel.status == TripStatus.COMPLETED,
            )
            .values(proof_photo_url=proof_photo_url, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, driver: DriverModel) -> DriverModel:
        self.session.add(driver)
        await self.session.flush()
        return driver

    async def get_by_id(self, driver_id: str) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def refresh(self, driver: DriverModel) -> DriverModel:
        await self.session.refresh(driver)
        return driver

    async def list_drivers(
        self, status: Optional[VerificationStatus] = None
    ) -> list[DriverModel]:
        query = select(DriverModel)
        if status is not None:
            query = query.where(DriverModel.verification_status == status)
        result = await self.session.execute(
            query.order_by(DriverModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_by_status(self, status: VerificationStatus) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverModel)
            .where(DriverModel.verification_status == status)
        )
        return result.scalar_one()

    async def get_matchable(self, category: Optional[str] = None) -> list[DriverModel]:
        """SQL pre-filter for nearby-driver matching (distance is done in memory)."""
        query = select(DriverModel).where(
            DriverModel.is_online.is_(True),
            DriverModel.is_available.is_(True),
            DriverModel.verification_status == VerificationStatus.VERIFIED,
            DriverModel.current_trip_id.is_(None),
            DriverModel.current_lat.is_not(None),
            DriverModel.current_lng.is_not(None),
        )
        if category is not None:
            query = query.where(DriverModel.vehicle_category == category)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def reserve(self, driver_id: str, trip_id: str, now: datetime) -> bool:
        """Flip a free, online, verified driver to busy on *trip_id*."""
        result = await self.session.execute(
            update(DriverModel)
            .where(
                DriverModel.driver_id == driver_id,
                DriverModel.is_online.is_(True),
                DriverModel.is_available.is_(True),
                DriverModel.current_trip_id.is_(None),
                DriverModel.verification_status == VerificationStatus.VERIFIED,
            )
            .values(is_available=False, current_trip_id=trip_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release(
        self,
        driver_id: str,
        trip_id: str,
        now: datetime,
        *,
        completed_kind: Optional[TripKind] = None,
        earnings: float = 0.0,
    ) -> bool:
        """Free the driver, but only if they still hold *trip_id*."""
        values: dict[str, Any] = {
            "is_available": True,
            "current_trip_id": None,
            "updated_at": now,
        }
        if completed_kind is TripKind.RIDE:
            values["total_rides"] = DriverModel.total_rides + 1
        elif completed_kind is TripKind.DELIVERY:
            values["total_deliveries"] = DriverModel.total_deliveries + 1
        if earnings:
            values["total_earnings"] = DriverModel.total_earnings + earnings

        result = await self.session.execute(
            update(DriverModel)
            .where(
                DriverModel.driver_id == driver_id,
                DriverModel.current_trip_id == trip_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_online(self, driver_id: str, is_online: bool, now: datetime) -> bool:
        """Toggle online; going offline only succeeds without an active trip."""
        stmt = update(DriverModel).where(
            DriverModel.driver_id == driver_id,
            DriverModel.verification_status == VerificationStatus.VERIFIED,
        )
        if not is_online:
            stmt = stmt.where(DriverModel.current_trip_id.is_(None))
        result = await self.session.execute(
            stmt.values(is_online=is_online, updated_at=now).execution_options(
                synchronize_session=False
            )
        )
        return result.rowcount == 1

    async def update_location(
        self, driver_id: str, lat: float, lng: float, now: datetime
    ) -> bool:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.driver_id == driver_id)
            .values(
                current_lat=lat,
                current_lng=lng,
                location_updated_at=now,
                location_version=DriverModel.location_version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_verification(
        self,
        driver_id: str,
        from_statuses: Iterable[VerificationStatus],
        values: dict[str, Any],
        *,
        require_idle: bool = False,
    ) -> bool:
        stmt = update(DriverModel).where(
            DriverModel.driver_id == driver_id,
            DriverModel.verification_status.in_(list(from_statuses)),
        )
        if require_idle:
            stmt = stmt.where(DriverModel.current_trip_id.is_(None))
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, payment: PaymentModel) -> PaymentModel:
        self.session.add(payment)
        await self.session.flush()
        return payment


class CancellationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: CancellationModel) -> CancellationModel:
        self.session.add(record)
        await self.session.flush()
        return record
