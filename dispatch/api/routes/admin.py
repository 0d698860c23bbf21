"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health                     -- simple health check
GET /api/v1/admin/drivers                    -- list drivers, optional status
PUT /api/v1/admin/drivers/{driver_id}/verify  -- approve / reject a pending driver
PUT /api/v1/admin/drivers/{driver_id}/suspend -- suspend / reinstate a driver
GET /api/v1/admin/trips                      -- recent trips, filterable
GET /api/v1/admin/analytics                  -- driver counts, trip volumes, revenue per period
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.api.dependencies import get_admin, get_db
from dispatch.api.middleware import limiter
from dispatch.api.schemas import (
    AnalyticsResponse,
    DriverResponse,
    HealthResponse,
    SuspendRequest,
    TripResponse,
    VerifyRequest,
)
from dispatch.config import settings
from dispatch.domain.entities import Actor
from dispatch.services.drivers import DriverAvailabilityService
from dispatch.services.trips import TripLifecycleService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/drivers",
    response_model=list[DriverResponse],
    summary="List drivers, optionally by verification status",
)
@limiter.limit(settings.rate_limit)
async def list_drivers(
    request: Request,
    status: Optional[str] = Query(None, description="pending, verified, rejected or suspended"),
    actor: Actor = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).list_drivers(status)


@router.put(
    "/drivers/{driver_id}/verify",
    response_model=DriverResponse,
    summary="Approve or reject a pending driver",
)
@limiter.limit(settings.rate_limit)
async def verify_driver(
    request: Request,
    driver_id: str,
    body: VerifyRequest,
    actor: Actor = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).verify_driver(
        driver_id, body.approve, body.rejection_reason
    )


@router.put(
    "/drivers/{driver_id}/suspend",
    response_model=DriverResponse,
    summary="Suspend or reinstate a driver",
)
@limiter.limit(settings.rate_limit)
async def suspend_driver(
    request: Request,
    driver_id: str,
    body: SuspendRequest,
    actor: Actor = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    return await DriverAvailabilityService(db).suspend_driver(
        driver_id, body.suspended, body.reason
    )


@router.get(
    "/trips",
    response_model=list[TripResponse],
    summary="Recent rides and deliveries",
)
@limiter.limit(settings.rate_limit)
async def list_trips(
    request: Request,
    kind: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    return await TripLifecycleService(db).list_trips(kind, status, limit)


@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    summary="Driver counts, trip volumes and revenue with a daily breakdown",
)
@limiter.limit(settings.rate_limit)
async def analytics(
    request: Request,
    period: str = Query("month", description="day, week, month or year"),
    actor: Actor = Depends(get_admin),
    db: AsyncSession = Depends(get_db),
):
    report = await TripLifecycleService(db).analytics(period)
    return AnalyticsResponse.model_validate(report)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
