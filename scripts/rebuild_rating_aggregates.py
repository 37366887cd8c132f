"""
Rating Aggregate Rebuild Script

Recomputes user_ratings from the ratings collection. Also re-derives the
rating requests of completed rides, repairing completions that were
interrupted before their requests were written.

Usage:
    python scripts/rebuild_rating_aggregates.py              # every rated user
    python scripts/rebuild_rating_aggregates.py <user_id>... # selected users
"""

import argparse
import asyncio
import logging

from caronas.database import close_db, get_db, init_db
from caronas.models.ride import RideStatus
from caronas.services.completion_service import CompletionService
from caronas.services.rating_service import RatingService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def rebuild(user_ids):
    await init_db()
    db = get_db()
    completion = CompletionService()
    ratings = RatingService()

    try:
        repaired = 0
        async for doc in db.rides.find({"status": RideStatus.COMPLETED.value}, {"ride_id": 1}):
            await completion.ensure_rating_requests(doc["ride_id"])
            repaired += 1
        logger.info(f"Checked rating requests of {repaired} completed rides")

        if not user_ids:
            user_ids = await db.ratings.distinct("to_user_id")

        for user_id in user_ids:
            aggregate = await ratings.rebuild_aggregate(user_id)
            logger.info(
                f"{user_id}: driver {aggregate.as_driver.average} ({aggregate.as_driver.count}), "
                f"passenger {aggregate.as_passenger.average} ({aggregate.as_passenger.count})"
            )
        logger.info(f"Rebuilt {len(user_ids)} aggregates")
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("user_ids", nargs="*", help="Users to rebuild (default: all)")
    args = parser.parse_args()
    asyncio.run(rebuild(args.user_ids))


if __name__ == "__main__":
    main()
