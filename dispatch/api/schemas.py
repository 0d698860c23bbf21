"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from dispatch.domain.entities import Location
from dispatch.domain.enums import (
    ActorRole,
    EarningsPeriod,
    PaymentStatus,
    RideCategory,
    TripKind,
    TripStatus,
    VerificationStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)
    place_id: Optional[str] = Field(None, max_length=255)

    def to_location(self) -> Location:
        return Location(self.latitude, self.longitude, self.address, self.place_id)


class TripCreateRequest(BaseModel):
    kind: TripKind
    pickup: LocationIn
    destination: LocationIn
    category: str = Field(..., description="Vehicle tier for rides, package type for deliveries.")
    fare: float = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)
    recipient_name: Optional[str] = Field(None, max_length=120)
    recipient_phone: Optional[str] = Field(None, description="+91XXXXXXXXXX")
    package_description: Optional[str] = Field(None, max_length=1000)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class TripAdvanceRequest(BaseModel):
    status: str = Field(..., description="Target status, e.g. in_progress or picked_up.")


class TripCompleteRequest(BaseModel):
    proof_photo_url: Optional[str] = None


class TripCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ProofRequest(BaseModel):
    proof_photo_url: str = Field(..., min_length=1)


class DriverRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    vehicle_category: RideCategory = RideCategory.ECONOMY


class AvailabilityRequest(BaseModel):
    is_online: bool


class VerifyRequest(BaseModel):
    approve: bool
    rejection_reason: Optional[str] = Field(None, max_length=500)


class SuspendRequest(BaseModel):
    suspended: bool
    reason: Optional[str] = Field(None, max_length=500)


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None
    place_id: Optional[str] = None

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: str
    kind: TripKind
    requester_id: str
    driver_id: Optional[str] = None
    pickup_lat: float
    pickup_lng: float
    pickup_address: str
    destination_lat: float
    destination_lng: float
    destination_address: str
    category: str
    fare: float
    status: TripStatus
    notes: str = ""
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    package_description: Optional[str] = None
    proof_photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[ActorRole] = None
    cancellation_reason: Optional[str] = None
    cancellation_fee: Optional[float] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    trip_id: str
    kind: TripKind
    requester_id: str
    driver_id: str
    amount: float
    status: PaymentStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TripCompletionResponse(BaseModel):
    trip: TripResponse
    payment: PaymentResponse


class DriverResponse(BaseModel):
    driver_id: str
    name: str
    vehicle_category: RideCategory
    verification_status: VerificationStatus
    rejection_reason: Optional[str] = None
    suspension_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    is_online: bool
    is_available: bool
    current_trip_id: Optional[str] = None
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    location_updated_at: Optional[datetime] = None
    location_version: int
    total_rides: int
    total_deliveries: int
    rating: float
    total_earnings: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverMatchResponse(BaseModel):
    driver_id: str
    name: str
    vehicle_category: RideCategory
    latitude: float
    longitude: float
    rating: float
    distance_km: float
    location_updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class JobMatchResponse(BaseModel):
    trip_id: str
    kind: TripKind
    category: str
    fare: float
    pickup: LocationOut
    destination: LocationOut
    notes: str = ""
    requested_at: Optional[datetime] = None
    distance_km: float
    estimated_minutes: int
    recipient_name: Optional[str] = None
    package_description: Optional[str] = None

    model_config = {"from_attributes": True}


class EarningsResponse(BaseModel):
    period: EarningsPeriod
    since: datetime
    total_earnings: float
    ride_earnings: float
    delivery_earnings: float
    completed_rides: int
    completed_deliveries: int
    total_trips: int
    daily_earnings: dict[str, float]

    model_config = {"from_attributes": True}


class KindTotalsResponse(BaseModel):
    total: int
    completed: int
    cancelled: int

    model_config = {"from_attributes": True}


class DailyActivityResponse(BaseModel):
    rides: int
    deliveries: int
    revenue: float
    cancellations: int

    model_config = {"from_attributes": True}


class AnalyticsResponse(BaseModel):
    period: EarningsPeriod
    since: datetime
    verified_drivers: int
    pending_drivers: int
    rides: KindTotalsResponse
    deliveries: KindTotalsResponse
    revenue: float
    daily: dict[str, DailyActivityResponse]

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    context: dict[str, Any] = {}
