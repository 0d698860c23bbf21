"""
FastAPI application factory.

* Registers routes for trips, drivers and admin.
* Maps domain errors onto HTTP status codes in one handler.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from dispatch.api.middleware import limiter
from dispatch.api.routes import admin, drivers, trips
from dispatch.api.schemas import ErrorResponse
from dispatch.config import settings
from dispatch.domain.exceptions import (
    ConflictError,
    DispatchError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 422,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
}

# Documented on every route; 422 keeps FastAPI's own request-validation schema.
ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse}
    for status_code in (403, 404, 409)
}


def status_for(exc: DispatchError) -> int:
    for exc_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "%s %s -> %d %s: %s",
        request.method, request.url.path, status_code, type(exc).__name__, exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "context": jsonable_encoder(exc.context)},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride & Delivery Dispatch API",
        description=(
            "Matches requesters with nearby drivers and drives rides and "
            "parcel deliveries through their lifecycle.  Accepting a job is "
            "atomic, so two drivers can never win the same trip."
        ),
        version="1.0.0",
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(DispatchError, dispatch_error_handler)

    # Routers
    app.include_router(trips.router, prefix=settings.api_prefix, responses=ERROR_RESPONSES)
    app.include_router(drivers.router, prefix=settings.api_prefix, responses=ERROR_RESPONSES)
    app.include_router(admin.router, prefix=settings.api_prefix, responses=ERROR_RESPONSES)

    return app
