"""
SQLAlchemy ORM models  (PostgreSQL in production, SQLite in tests).

Tables
------
* ``drivers``        -- per-driver availability, verification and live location
* ``trips``          -- rides and deliveries, one table keyed by ``kind``
* ``payments``       -- pending payment records appended on completion
* ``cancellations``  -- audit trail appended on cancellation

Indexes
-------
* **Partial unique** on ``trips (requester_id, kind)`` over non-terminal
  statuses: at most one active trip of each kind per requester, even when
  two creates race.
* **B-Tree** on ``status``, ``driver_id`` and the driver flags scanned by
  the matching queries.
"""

import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)

from .database import Base
from dispatch.domain.enums import (
    ActorRole,
    PaymentStatus,
    RideCategory,
    TripKind,
    TripStatus,
    VerificationStatus,
)

_NON_TERMINAL = text("status NOT IN ('completed', 'cancelled')")


def _enum(enum_cls: type[enum.Enum]) -> Enum:
    """Persist enum *values* (lower-case labels) rather than member names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


def _new_id() -> str:
    return str(uuid.uuid4())


class DriverModel(Base):
    __tablename__ = "drivers"

    driver_id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False, default="Driver")
    vehicle_category = Column(_enum(RideCategory), nullable=False, default=RideCategory.ECONOMY)

    verification_status = Column(
        _enum(VerificationStatus), nullable=False, default=VerificationStatus.PENDING
    )
    rejection_reason = Column(Text, nullable=True)
    suspension_reason = Column(Text, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    is_online = Column(Boolean, nullable=False, default=False)
    is_available = Column(Boolean, nullable=False, default=True)
    current_trip_id = Column(String(36), nullable=True)

    # Live location, written by periodic driver pushes
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)
    location_version = Column(Integer, nullable=False, default=0)

    total_rides = Column(Integer, nullable=False, default=0)
    total_deliveries = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0.0)
    total_earnings = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_drivers_matchable", "is_online", "is_available", "verification_status"),
    )


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(String(36), primary_key=True, default=_new_id)
    kind = Column(_enum(TripKind), nullable=False)
    requester_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), ForeignKey("drivers.driver_id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_address = Column(Text, nullable=False)
    pickup_place_id = Column(String(255), nullable=True)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    destination_address = Column(Text, nullable=False)
    destination_place_id = Column(String(255), nullable=True)

    # Vehicle tier for rides, package type for deliveries
    category = Column(String(20), nullable=False)
    fare = Column(Float, nullable=False)
    status = Column(_enum(TripStatus), nullable=False, default=TripStatus.REQUESTED)
    notes = Column(Text, nullable=False, default="")
    idempotency_key = Column(String(64), unique=True, nullable=True)

    # Delivery only
    recipient_name = Column(String(120), nullable=True)
    recipient_phone = Column(String(20), nullable=True)
    package_description = Column(Text, nullable=True)
    proof_photo_url = Column(Text, nullable=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_by = Column(_enum(ActorRole), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancellation_fee = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "uq_trips_active_requester",
            "requester_id",
            "kind",
            unique=True,
            postgresql_where=_NON_TERMINAL,
            sqlite_where=_NON_TERMINAL,
        ),
        Index("idx_trips_status", "status"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_requester", "requester_id"),
    )


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), nullable=False)
    kind = Column(_enum(TripKind), nullable=False)
    requester_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(_enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_payments_trip", "trip_id"),)


class CancellationModel(Base):
    __tablename__ = "cancellations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(36), ForeignKey("trips.id"), nullable=False)
    kind = Column(_enum(TripKind), nullable=False)
    requester_id = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=True)
    cancelled_by = Column(_enum(ActorRole), nullable=False)
    reason = Column(Text, nullable=False)
    fee = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_cancellations_trip", "trip_id"),)
