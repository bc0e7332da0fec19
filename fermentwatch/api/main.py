"""
FermentWatch API - Main Entry Point

FastAPI application hosting the fermentation temperature control loop,
the project command API and the periodic system health checks.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from fermentwatch.api.routes import api_router
from fermentwatch.config import get_settings
from fermentwatch.core.actuators import OutletDriver
from fermentwatch.core.control_loop import ControlLoop
from fermentwatch.core.errors import (
    ConfigurationError,
    DeviceUnavailable,
    FermentWatchError,
    HubUnavailable,
    PersistenceError,
    ProjectNotFound,
)
from fermentwatch.integrations.ha_client import HAClient
from fermentwatch.integrations.shelly_client import ShellyClient
from fermentwatch.integrations.timeseries import InfluxRecorder
from fermentwatch.models.database import close_db, get_session_maker, init_db
from fermentwatch.services.health_service import HealthService
from fermentwatch.services.outlet_service import OutletService
from fermentwatch.services.project_store import SQLProjectStore

__version__ = "0.1.0"

# Configure logging
settings_instance = get_settings()
logging.basicConfig(
    level=logging.DEBUG if settings_instance.debug else settings_instance.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

HEALTH_FIRST_RUN_DELAY = timedelta(minutes=1)


# ============================================================================
# Background Tasks
# ============================================================================


async def run_health_checks(health: HealthService) -> None:
    """Scheduled wrapper around the full health check."""
    try:
        await health.run_all_checks()
    except Exception as e:
        logger.error("Error running health checks: %s", e, exc_info=True)


def init_scheduler(health: HealthService) -> AsyncIOScheduler:
    """Initialize the background task scheduler."""
    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )

    # System health - hourly by default, first run shortly after startup
    scheduler.add_job(
        run_health_checks,
        IntervalTrigger(seconds=settings_instance.health_check_interval_s),
        args=[health],
        id="system_health",
        name="System Health Check",
        next_run_time=datetime.now(UTC) + HEALTH_FIRST_RUN_DELAY,
        replace_existing=True,
    )

    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager for startup and shutdown.
    """
    logger.info("Starting FermentWatch API...")
    settings = settings_instance

    db_url = settings.database_url
    masked = db_url.replace(settings.db_password, "***") if settings.db_password else db_url
    logger.info("Connecting to database: %s", masked)
    await init_db()

    if not settings.home_assistant_token:
        logger.warning("No Home Assistant token configured; requests will be unauthenticated")
    hub = HAClient(
        url=str(settings.home_assistant_url),
        token=settings.home_assistant_token,
        timeout=settings.hub_timeout_s,
    )
    await hub.connect()
    shelly = ShellyClient(timeout=settings.device_timeout_s)
    recorder = InfluxRecorder(
        settings.influx_url,
        settings.influx_token,
        settings.influx_org,
        settings.influx_bucket,
        timeout_ms=settings.influx_timeout_ms,
    )

    store = SQLProjectStore(get_session_maker())
    outlets = OutletDriver(hub, shelly)
    loop = ControlLoop(
        store=store,
        hub=hub,
        outlets=outlets,
        recorder=recorder,
        interval_s=settings.poll_interval_s,
        call_timeout_s=max(settings.hub_timeout_s, settings.device_timeout_s),
    )
    health = HealthService(store=store, hub=hub, shelly=shelly, recorder=recorder, loop=loop)

    app.state.project_store = store
    app.state.outlet_service = OutletService(store, outlets, recorder)
    app.state.health_service = health
    app.state.control_loop = loop
    app.state.startup_time = datetime.now(UTC)

    loop.start()
    scheduler = init_scheduler(health)
    scheduler.start()
    logger.info("FermentWatch API startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down FermentWatch API...")
        await loop.stop()
        scheduler.shutdown(wait=False)
        await hub.disconnect()
        await shelly.close()
        recorder.close()
        await close_db()
        logger.info("FermentWatch API shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================

settings = settings_instance

app = FastAPI(
    title="FermentWatch API",
    description="Fermentation temperature monitoring and heating control.",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_logging_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Log all requests with timing and correlation IDs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    start_time = time.perf_counter()

    request.state.request_id = request_id

    response = await call_next(request)
    process_time = time.perf_counter() - start_time

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{process_time:.4f}"

    logger.info(
        "%s %s status=%d duration=%.4fs",
        request.method,
        request.url.path,
        response.status_code,
        process_time,
    )
    return response


# ============================================================================
# Route Registration
# ============================================================================

app.include_router(api_router)


# ============================================================================
# Exception Handlers
# ============================================================================

_ERROR_STATUS: dict[type[FermentWatchError], int] = {
    ProjectNotFound: status.HTTP_404_NOT_FOUND,
    ConfigurationError: status.HTTP_400_BAD_REQUEST,
    HubUnavailable: status.HTTP_502_BAD_GATEWAY,
    DeviceUnavailable: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _error_response(request: Request, code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content={
            "error": {
                "code": code,
                "message": message,
                "request_id": getattr(request.state, "request_id", None),
            },
        },
    )


@app.exception_handler(FermentWatchError)
async def fermentwatch_exception_handler(request: Request, exc: FermentWatchError) -> JSONResponse:
    code = next(
        (c for kind, c in _ERROR_STATUS.items() if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(request, code, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred" if not settings.debug else str(exc),
    )


# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fermentwatch.api.main:app",
        host=settings.host,
        port=settings.port,
        loop="asyncio",
        reload=settings.debug,
        log_level="debug" if settings.debug else settings.log_level,
        access_log=True,
    )
