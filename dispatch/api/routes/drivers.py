"""
Driver endpoints
================

POST /api/v1/drivers                  -- register the calling driver (pending)
GET  /api/v1/drivers/me               -- own profile and availability
PUT  /api/v1/drivers/me/location      -- periodic location push
PUT  /api/v1/drivers/me/availability  -- go online / offline
GET  /api/v1/drivers/me/jobs          -- requested trips within 10 km
GET  /api/v1/drivers/me/earnings      -- earnings for day/week/month/year
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.dependencies import get_db, get_driver
from dispatch.api.middleware import limiter
from dispatch.api.schemas import (
    AvailabilityRequest,
    DriverRegisterRequest,
    DriverResponse,
    EarningsResponse,
    ErrorResponse,
    JobMatchResponse,
    LocationIn,
)
from dispatch.config import settings
from dispatch.domain.entities import Actor
from dispatch.services.drivers import DriverAvailabilityService
from dispatch.services.matching import MatchingService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "",
    status_code=201,
    response_model=DriverResponse,
    summary="Register as a driver (awaits admin verification)",
)
@limiter.limit(settings.rate_limit)
async def register_driver(
    request: Request,
    body: DriverRegisterRequest,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).register_driver(
        actor.id, body.name, body.vehicle_category
    )


@router.get("/me", response_model=DriverResponse, summary="Own driver profile")
@limiter.limit(settings.rate_limit)
async def get_me(
    request: Request,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).get_driver(actor.id)


@router.put(
    "/me/location",
    response_model=DriverResponse,
    summary="Update current location",
)
@limiter.limit(settings.rate_limit)
async def update_location(
    request: Request,
    body: LocationIn,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).update_driver_location(
        actor.id, body.to_location()
    )


@router.put(
    "/me/availability",
    response_model=DriverResponse,
    summary="Go online or offline",
    responses={
        409: {"model": ErrorResponse, "description": "Cannot go offline while holding an active trip."}
    },
)
@limiter.limit(settings.rate_limit)
async def update_availability(
    request: Request,
    body: AvailabilityRequest,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).update_driver_availability(
        actor.id, body.is_online
    )


@router.get(
    "/me/jobs",
    response_model=list[JobMatchResponse],
    summary="Requested rides and deliveries near the driver",
)
@limiter.limit(settings.rate_limit)
async def pending_jobs(
    request: Request,
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    return await MatchingService(db).find_jobs_for_driver(actor.id)


@router.get(
    "/me/earnings",
    response_model=EarningsResponse,
    summary="Earnings summary with daily breakdown",
)
@limiter.limit(settings.rate_limit)
async def earnings(
    request: Request,
    period: str = Query("month", description="day, week, month or year"),
    actor: Actor = Depends(get_driver),
    db: AsyncSession = Depends(get_db),
):
    summary = await DriverAvailabilityService(db).driver_earnings(actor.id, period)
    return EarningsResponse.model_validate(summary)
