"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timetrack.config import settings
from timetrack.database import database
from timetrack.errors import (
    AlreadyStopped,
    ConflictError,
    ConsistencyViolation,
    NoActiveTimer,
    NoPausedTimer,
    NotFoundOrForbidden,
    TimerAlreadyRunning,
    TimeTrackingError,
    ValidationError,
)
from timetrack.routers import reports, time_entries, timers

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await database.connect()
    yield
    # Shutdown
    await database.disconnect()


app = FastAPI(
    title="Time Tracking API",
    description="Timers, time entries and time reports",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(timers.router)
app.include_router(time_entries.router)
app.include_router(reports.router)


def error_status(error: TimeTrackingError) -> int:
    """HTTP status for a time tracking error."""
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, (NotFoundOrForbidden, NoActiveTimer, NoPausedTimer)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (ConflictError, AlreadyStopped)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(TimeTrackingError)
async def time_tracking_error_handler(request: Request, exc: TimeTrackingError):
    """Translate typed errors into JSON error responses."""
    content = {"detail": str(exc)}
    if isinstance(exc, (TimerAlreadyRunning, AlreadyStopped)) and exc.entry_id:
        content["entry_id"] = exc.entry_id
    return JSONResponse(status_code=error_status(exc), content=content)


@app.exception_handler(ConsistencyViolation)
async def consistency_violation_handler(request: Request, exc: ConsistencyViolation):
    """Report broken storage invariants as internal errors."""
    logger.error("Consistency violation on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal consistency error"},
    )


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "message": "Time Tracking API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
