"""
Caronas Database Module

MongoDB and Redis connection management.
"""

import logging
from contextlib import contextmanager
from typing import Optional

import redis.asyncio as redis
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ExecutionTimeout

from caronas.config import settings
from caronas.utils.exceptions import StoreUnavailableError


logger = logging.getLogger(__name__)


# =============================================================================
# MongoDB Connection
# =============================================================================

class MongoDB:
    """MongoDB connection manager."""

    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None


mongo = MongoDB()


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes every collection relies on."""
    # Users
    await db.users.create_index("user_id", unique=True)
    await db.users.create_index("email")

    # Rides: listing by status, history by participant
    await db.rides.create_index("ride_id", unique=True)
    await db.rides.create_index([("status", 1), ("departure_time", 1)])
    await db.rides.create_index([("driver_id", 1), ("status", 1)])
    await db.rides.create_index([("passengers.passenger_id", 1), ("status", 1)])

    # Rating requests: one per (ride, rater, ratee), deterministic id
    await db.rating_requests.create_index("request_id", unique=True)
    await db.rating_requests.create_index([("from_user_id", 1), ("status", 1)])
    await db.rating_requests.create_index([("status", 1), ("expires_at", 1)])
    await db.rating_requests.create_index("ride_id")

    # Ratings: written exactly once per request
    await db.ratings.create_index("rating_id", unique=True)
    await db.ratings.create_index("request_id", unique=True)
    await db.ratings.create_index([("to_user_id", 1), ("to_user_role", 1), ("created_at", -1)])

    # Aggregates
    await db.user_ratings.create_index("user_id", unique=True)

    # Admin log
    await db.admin_logs.create_index("log_id", unique=True)
    await db.admin_logs.create_index([("timestamp", -1)])
    await db.admin_logs.create_index([("target_id", 1), ("timestamp", -1)])
    await db.admin_logs.create_index([("actor_id", 1), ("timestamp", -1)])


async def init_mongodb():
    """Initialize MongoDB connection and create indexes."""
    mongo.client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
    mongo.db = mongo.client[settings.mongodb_database]
    await create_indexes(mongo.db)


async def close_mongodb():
    """Close MongoDB connection."""
    if mongo.client:
        mongo.client.close()


def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    if mongo.db is None:
        raise RuntimeError("Database not initialized")
    return mongo.db


@contextmanager
def store_guard(operation: str = "store operation"):
    """Translate connectivity failures of the document store into StoreUnavailableError."""
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout) as e:
        logger.warning(f"{operation} failed, store unavailable: {e}")
        raise StoreUnavailableError() from e


# =============================================================================
# Redis Connection
# =============================================================================

class RedisClient:
    """Redis connection manager."""

    client: Optional[redis.Redis] = None


redis_client = RedisClient()


async def init_redis():
    """Initialize Redis connection."""
    redis_client.client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        socket_keepalive=True
    )


async def close_redis():
    """Close Redis connection."""
    if redis_client.client:
        await redis_client.client.aclose()


def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if redis_client.client is None:
        raise RuntimeError("Redis not initialized")
    return redis_client.client


# =============================================================================
# Combined Initialization
# =============================================================================

async def init_db():
    """Initialize all database connections."""
    await init_mongodb()
    await init_redis()


async def close_db():
    """Close all database connections."""
    await close_mongodb()
    await close_redis()
