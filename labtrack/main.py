# labtrack/main.py
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, Request, status as fastapi_status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from labtrack import __version__
from labtrack.api.deps import get_storage
from labtrack.api.v1.api import api_router_v1
from labtrack.core import config
from labtrack.core.config import setup_logging
from labtrack.core.errors import HTTP_STATUS_BY_KIND, LabTrackError
from labtrack.core.notifications import LogNotificationSink
from labtrack.core.rate_limiter import get_rate_limiter, rate_limit_exception_handler
from labtrack.db.database import init_storage
from labtrack.middleware.logging import RequestLoggingMiddleware
from labtrack.scheduler.jobs import scheduled_daily_maintenance, scheduled_sweep

# --- Scheduler Instance ---
scheduler = AsyncIOScheduler(timezone=config.SCHEDULER_TIMEZONE)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application startup...")
    app.state.storage = await init_storage()
    app.state.notification_sink = LogNotificationSink()
    logger.info("Storage initialized.")

    if config.SCHEDULER_ENABLED:
        logger.info("Adding scheduler jobs...")
        scheduler.add_job(
            scheduled_sweep,
            trigger=IntervalTrigger(minutes=config.SWEEP_INTERVAL_MINUTES),
            args=[app.state.storage],
            id="reconciliation_sweep_job",
            name="Reconcile Transaction Status and Fines",
            replace_existing=True,
            misfire_grace_time=60 * config.SWEEP_INTERVAL_MINUTES,
        )
        scheduler.add_job(
            scheduled_daily_maintenance,
            trigger=CronTrigger(hour=0, minute=0),
            args=[app.state.storage, app.state.notification_sink],
            id="daily_maintenance_job",
            name="Daily Reminders and Overdue Notices",
            replace_existing=True,
            misfire_grace_time=60 * 60,
        )
        scheduler.start()
        logger.info(f"Scheduler started with timezone: {scheduler.timezone}")
        # Catch up on anything that aged while the process was down
        await scheduled_sweep(app.state.storage)
    else:
        logger.warning("Scheduler disabled by SCHEDULER_ENABLED.")

    yield

    logger.info("Application shutdown...")
    if scheduler.running:
        scheduler.shutdown()
    await app.state.storage.close()


app = FastAPI(
    title="LabTrack API",
    description="Laboratory equipment borrowing: transactions, inventory ledger, fines and archive.",
    version=__version__,
    lifespan=lifespan,
)

# --- Error Handling ---
app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)


@app.exception_handler(LabTrackError)
async def labtrack_exception_handler(request: Request, exc: LabTrackError):
    status_code = HTTP_STATUS_BY_KIND.get(exc.kind, fastapi_status.HTTP_400_BAD_REQUEST)
    logger.warning(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "kind": exc.kind.value})


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    logger.error(f"Validation Error: {exc.errors()}")
    return JSONResponse(
        status_code=fastapi_status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation Error", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc) -> list:
    # ctx may hold exception instances that JSONResponse cannot encode
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP Exception: Status={exc.status_code}, Detail={exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled Exception: {exc}", exc_info=True)
    return JSONResponse(status_code=fastapi_status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "An internal server error occurred."})


# --- Middleware ---
app.add_middleware(RequestLoggingMiddleware)
app.state.limiter = get_rate_limiter()
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(api_router_v1)


@app.get("/")
async def read_root():
    return {"message": "Welcome to LabTrack!", "version": __version__}


@app.get("/health")
async def health(request: Request):
    storage = get_storage(request)
    return {"status": "ok", "storage": type(storage).__name__}
