# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the SportsBnB API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import (
    SportsBnBException,
    sportsbnb_exception_handler,
    validation_exception_handler,
)
from app.routers import availability, bookings, connect, games, health, webhooks
from app.auth import routes as auth_routes

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs the runtime mode on startup; the providers are connected lazily
    on first use.
    """
    logger.info(f"Starting SportsBnB API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if not settings.stripe_enabled:
        logger.warning("STRIPE_SECRET_KEY not set: paid bookings will be created in demo mode")

    yield

    logger.info("Shutting down SportsBnB API")


# Create FastAPI application
app = FastAPI(
    title="SportsBnB API",
    description="""
## Sports Venue Booking API

Book sports venues by the hour and join pickup games.

### Booking Flow

1. **Check availability** - `POST /api/v1/availability` lists the venue's slots for a date
2. **Checkout** - `POST /api/v1/bookings/checkout` returns a Stripe URL
3. **Verify** - after payment, `POST /api/v1/bookings/verify` with the session id creates the booking

Verification is idempotent. If someone else took the slot while you were
paying, you get a `409 SLOT_CONFLICT` and your payment is refunded.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Authentication endpoints for verifying JWT tokens",
        },
        {
            "name": "Availability",
            "description": "Bookable slots per venue and date",
        },
        {
            "name": "Bookings",
            "description": "Checkout, payment verification and cancellation",
        },
        {
            "name": "Games",
            "description": "Join free and paid pickup games",
        },
        {
            "name": "Payouts",
            "description": "Stripe Connect onboarding for venue owners",
        },
        {
            "name": "Webhooks",
            "description": "Inbound Stripe events",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(SportsBnBException)
async def handle_sportsbnb_exception(request: Request, exc: SportsBnBException):
    """Handle custom SportsBnB exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.details}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.details}")
    return await sportsbnb_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError):
    """Handle malformed request bodies and parameters."""
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Authentication endpoints
app.include_router(
    auth_routes.router,
    prefix="/api/v1/auth",
    tags=["Auth"]
)

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# Availability endpoints
app.include_router(
    availability.router,
    prefix="/api/v1",
    tags=["Availability"]
)

# Booking endpoints
app.include_router(
    bookings.router,
    prefix="/api/v1/bookings",
    tags=["Bookings"]
)

# Game endpoints
app.include_router(
    games.router,
    prefix="/api/v1/games",
    tags=["Games"]
)

# Owner payout endpoints
app.include_router(
    connect.router,
    prefix="/api/v1/connect",
    tags=["Payouts"]
)

# Webhook endpoints
app.include_router(
    webhooks.router,
    prefix="/api/v1/webhooks",
    tags=["Webhooks"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "SportsBnB API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
