# pyright: reportMissingTypeStubs=false
"""
Property Viewing Booking API

A FastAPI application exposing the property viewing booking core: slot
booking with per-slot waiting queues, role-gated status changes, and
automatic promotion of the next queued customer when a slot frees up.

Features:
- Slot-scoped transactional booking and queue promotion
- Bearer-token actor context (customer, agent/staff, admin)
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments
from api.responses import ErrorResponse
from core.config import LOG_LEVEL
from core.constants import CORS_ORIGINS
from core.exceptions import (
    BookingError, ConcurrencyConflictError, DuplicateActiveBookingError,
    InvalidStatusError, InvalidTransitionError, NotFoundError, SlotBlockedError
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏠 Property Viewing Booking API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Property Viewing Booking API")
    # Schema is managed by Alembic: run `alembic upgrade head` from backend/ before starting

    yield

    logger.info("🛑 Shutting down Property Viewing Booking API")


# Create FastAPI application
app = FastAPI(
    title="Property Viewing Booking",
    description="Viewing slot booking with per-slot queues and promotion",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Property Viewing Booking API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


def booking_error_status(exc: BookingError) -> int:
    """HTTP status code for a booking error."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidStatusError):
        return 400
    if isinstance(exc, InvalidTransitionError):
        return 403
    if isinstance(exc, (SlotBlockedError, DuplicateActiveBookingError, ConcurrencyConflictError)):
        return 409
    return 400


# Global exception handlers
@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Turn booking errors into typed JSON responses."""
    status_code = booking_error_status(exc)
    logger.warning(f"Booking request {request.method} {request.url.path} failed ({status_code}): {exc.code}: {exc.message}")
    body = ErrorResponse(error=exc.message, code=exc.code, retryable=exc.retryable)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )
