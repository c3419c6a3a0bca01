"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fleetbook.api.v1.bookings import router as bookings_router
from fleetbook.api.v1.organizations import router as organizations_router
from fleetbook.booking.sweeper import ExpirySweeper
from fleetbook.config import settings
from fleetbook.database import async_session_maker
from fleetbook.errors import BookingError
from fleetbook.notifications.bots import bots

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if settings.environment == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.log_level.upper(), logging.INFO)
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("app_starting", environment=settings.environment)

    app.state.redis = redis.from_url(settings.redis_url, decode_responses=True)
    sweeper_task = None
    if settings.sweeper_enabled:
        sweeper = ExpirySweeper(async_session_maker, app.state.redis)
        sweeper_task = asyncio.create_task(
            sweeper.run_forever(settings.sweeper_interval_seconds)
        )

    yield

    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
    await bots.close()
    await app.state.redis.aclose()
    logger.info("app_shutting_down")


app = FastAPI(
    title="Fleetbook API",
    description="Booking pricing and reservation engine for vehicle rental organizations",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": "Invalid request",
            "fields": [
                {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg")}
                for err in exc.errors()
            ],
        },
    )


# Include routers
app.include_router(organizations_router)
app.include_router(bookings_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Fleetbook API",
        "version": "0.1.0",
        "status": "running",
    }
