"""
Database Index Creation Script

Creates the MongoDB indexes the engine relies on (unique ride, rating
request and rating ids; listing and history lookups).
Run this script after deployment or when setting up a new database.

Usage:
    python scripts/create_indexes.py
"""

import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from caronas.config import settings
from caronas.database import create_indexes as create_all_indexes

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_indexes():
    """Create all necessary indexes for optimal query performance."""
    client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
    db = client[settings.mongodb_database]

    logger.info(f"Creating indexes on {settings.mongodb_database}...")
    await create_all_indexes(db)

    for name in await db.list_collection_names():
        info = await db[name].index_information()
        logger.info(f"{name}: {', '.join(sorted(info))}")

    logger.info("All indexes created successfully!")
    client.close()


if __name__ == "__main__":
    asyncio.run(create_indexes())
