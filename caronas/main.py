"""
Caronas Backend - FastAPI Application

Main application entry point with middleware, routers, and OpenAPI
documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from caronas.config import settings
from caronas.database import close_db, get_db, get_redis, init_db
from caronas.routers import admin, ratings, rides, users, websocket
from caronas.utils.exceptions import CaronasError


logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def start_scheduler() -> AsyncIOScheduler:
    from caronas.scheduler import rating_expiry_job

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        rating_expiry_job.execute,
        "interval",
        minutes=settings.rating_expiry_sweep_minutes,
        id="rating_expiry",
        name="Rating Expiry Job",
        max_instances=1,  # Skip if previous run is still executing
        coalesce=True,  # Collapse missed runs into one
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: Rating Expiry ({settings.rating_expiry_sweep_minutes}m)"
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Configure logging
    - Initialize database connections and indexes
    - Start the background scheduler
    - Cleanup on shutdown
    """
    configure_logging()
    await init_db()

    # Verify connections
    try:
        await get_db().client.admin.command("ping")
        logger.info("Connected to MongoDB")
    except PyMongoError as e:
        logger.error(f"FAILED to connect to MongoDB: {e}")

    try:
        await get_redis().ping()
        logger.info("Connected to Redis")
    except RedisError as e:
        logger.error(f"FAILED to connect to Redis: {e}")

    scheduler = start_scheduler() if settings.scheduler_enabled else None

    yield

    # Shutdown
    if scheduler:
        scheduler.shutdown()
        logger.info("Scheduler stopped")

    await close_db()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ICEA Caronas API",
    description="""
    ICEA Caronas - Ride sharing for the ICEA/UFVJM campus

    ## Features
    - Ride offers with seat requests, driver approval and a waiting list
    - Ride completion and mutual driver/passenger ratings
    - Real-time ride feed over WebSocket

    ## Authentication
    All authenticated endpoints require a valid Firebase ID token in the
    Authorization header: `Authorization: Bearer <firebase_id_token>`
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(CaronasError)
async def caronas_exception_handler(request: Request, exc: CaronasError):
    """Map domain errors to {"detail": {"error", "message"}} with their status."""
    if exc.retryable:
        logger.warning(f"{request.method} {request.url.path}: {exc.code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_dict()},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    SECURITY: Do not leak internal error details.
    """
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Something went wrong. Please try again later."},
    )


# =============================================================================
# Routers
# =============================================================================

# User routes
app.include_router(users.router, prefix=f"{settings.api_v1_str}/users", tags=["Users"])

# Ride routes
app.include_router(rides.router, prefix=f"{settings.api_v1_str}/rides", tags=["Rides"])

# Ratings routes
app.include_router(ratings.router, prefix=f"{settings.api_v1_str}/ratings", tags=["Ratings"])

# Admin routes
app.include_router(admin.router, prefix=f"{settings.api_v1_str}/admin", tags=["Admin"])

# WebSocket routes
app.include_router(websocket.router, prefix="/ws", tags=["WebSocket"])


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "version": "1.0.0"}
