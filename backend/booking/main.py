import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.booking.core.config import settings
from backend.booking.core.errors import (
    CapacityExceededError,
    RateLimitedError,
    ReservationError,
    ReservationNotFoundError,
    ReservationValidationError,
    SlotBusyError,
)
from backend.booking.core.logging import setup_logging
from backend.booking.core.redis_client import close_redis, init_redis
import backend.booking.routers.admin as admin
import backend.booking.routers.availability as availability
import backend.booking.routers.health as health
import backend.booking.routers.opening_hours as opening_hours
import backend.booking.routers.reservations as reservations


logger = logging.getLogger(__name__)

RETRY_LATER_MESSAGE = "Service temporarily unavailable, please try again later"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_redis()
    logger.info("%s starting (env=%s)", settings.APP_NAME, settings.APP_ENV)
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="Restaurant Reservations API",
    lifespan=lifespan,
)


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    if isinstance(exc, CapacityExceededError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.message, "remaining": exc.remaining},
        )
    if isinstance(exc, ReservationValidationError):
        content = {"error": exc.message}
        if exc.issues:
            content["issues"] = exc.issues
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Too many reservation requests, please try again later"},
            headers=headers,
        )
    if isinstance(exc, SlotBusyError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": "This time slot is being booked right now, please try again"},
        )
    if isinstance(exc, ReservationNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Reservation not found"})

    # StoreUnavailableError, ConfigUnavailableError, CryptoError
    logger.error("Request to %s failed: %s", request.url.path, exc.message, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": RETRY_LATER_MESSAGE},
    )


app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(opening_hours.router, prefix=settings.API_PREFIX)
app.include_router(admin.router, prefix=settings.API_PREFIX)
