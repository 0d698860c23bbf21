"""
Trip endpoints (rides and deliveries)
=====================================

POST  /api/v1/trips                   -- request a ride or a delivery
GET   /api/v1/trips/history           -- requester's finished trips
GET   /api/v1/trips/nearby-drivers    -- drivers around a point
GET   /api/v1/trips/{trip_id}         -- poll trip status
PATCH /api/v1/trips/{trip_id}/accept  -- driver claims a requested trip
PATCH /api/v1/trips/{trip_id}/advance -- driver moves the trip forward
PATCH /api/v1/trips/{trip_id}/complete
PATCH /api/v1/trips/{trip_id}/cancel
PUT   /api/v1/trips/{trip_id}/proof   -- delivery proof photo URL
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.dependencies import get_actor, get_db, get_driver, get_requester
from dispatch.api.middleware import limiter
from dispatch.api.schemas import (
    DriverMatchResponse,
    ErrorResponse,
    LocationIn,
    PaymentResponse,
    ProofRequest,
    TripAdvanceRequest,
    TripCancelRequest,
    TripCompleteRequest,
    TripCompletionResponse,
    TripCreateRequest,
    TripResponse,
)
from dispatch.config import settings
from dispatch.domain.entities import Actor
from dispatch.services.matching import MatchingService
from dispatch.services.trips import TripLifecycleService

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Request a ride or a delivery",
    responses={
        409: {"model": ErrorResponse, "description": "Requester already has an active trip of this kind."}
    },
)
@limiter.limit(settings.rate_limit)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    actor: Actor = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).create_trip(
        body.kind,
        actor.id,
        body.pickup.to_location(),
        body.destination.to_location(),
        body.category,
        body.fare,
        notes=body.notes,
        recipient_name=body.recipient_name,
        recipient_phone=body.recipient_phone,
        package_description=body.package_description,
        idempotency_key=body.idempotency_key,
    )


@router.get(
    "/history",
    response_model=list[TripResponse],
    summary="Completed and cancelled trips of the caller",
)
@limiter.limit(settings.rate_limit)
async def trip_history(
    request: Request,
    kind: Optional[str] = Query(None, description="ride or delivery"),
    actor: Actor = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).trip_history(actor.id, kind)


@router.get(
    "/nearby-drivers",
    response_model=list[DriverMatchResponse],
    summary="Available drivers around a point, nearest first",
)
@limiter.limit(settings.rate_limit)
async def nearby_drivers(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.driver_search_radius_km, gt=0),
    category: Optional[str] = Query(None, description="economy, comfort or xl"),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    location = LocationIn(latitude=latitude, longitude=longitude).to_location()
    return await MatchingService(db).find_nearby_drivers(location, radius_km, category)


@router.get(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Get trip status",
)
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).get_trip(trip_id, actor)


@router.patch(
    "/{trip_id}/accept",
    response_model=TripResponse,
    summary="Accept a requested trip",
    description=(
        "Atomically assigns the calling driver.  When several drivers race "
        "for the same trip exactly one wins; the others receive 409."
    ),
)
@limiter.limit(settings.rate_limit)
async def accept_trip(
    request: Request,
    trip_id: str,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).accept_trip(trip_id, actor.id)


@router.patch(
    "/{trip_id}/advance",
    response_model=TripResponse,
    summary="Move an accepted trip to its next status",
)
@limiter.limit(settings.rate_limit)
async def advance_trip(
    request: Request,
    trip_id: str,
    body: TripAdvanceRequest,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).advance_trip(trip_id, actor.id, body.status)


@router.patch(
    "/{trip_id}/complete",
    response_model=TripCompletionResponse,
    summary="Complete a trip and record a pending payment",
)
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    trip_id: str,
    body: Optional[TripCompleteRequest] = None,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    proof = body.proof_photo_url if body else None
    trip, payment = await TripLifecycleService(db).complete_trip(trip_id, actor.id, proof)
    return TripCompletionResponse(
        trip=TripResponse.model_validate(trip),
        payment=PaymentResponse.model_validate(payment),
    )


@router.patch(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel a trip",
    description=(
        "Allowed for the requester, the assigned driver or an admin from any "
        "non-terminal status.  A requester cancelling more than two minutes "
        "after acceptance pays 10% of the fare."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: str,
    body: Optional[TripCancelRequest] = None,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    reason = body.reason if body else None
    return await TripLifecycleService(db).cancel_trip(trip_id, actor.id, actor.role, reason)


@router.put(
    "/{trip_id}/proof",
    response_model=TripResponse,
    summary="Attach a proof-of-delivery photo URL",
)
@limiter.limit(settings.rate_limit)
async def attach_proof(
    request: Request,
    trip_id: str,
    body: ProofRequest,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).attach_proof(trip_id, actor.id, body.proof_photo_url)
