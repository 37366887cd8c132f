"""
Completion Service

Completes rides and emits the rating requests for their participants.
"""

import hashlib
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pymongo import UpdateOne

from caronas.config import settings
from caronas.database import get_db, store_guard
from caronas.models.rating import ParticipantRole, RatingRequest, RideSnapshot
from caronas.models.ride import Ride, RideStatus
from caronas.services import reservation_rules as rules
from caronas.services.feed_service import FeedService
from caronas.services.ride_store import RideStore
from caronas.utils.exceptions import RideNotAvailableError
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


def rating_request_id(ride_id: str, from_user_id: str, to_user_id: str) -> str:
    """Stable id of the request for `from_user_id` to rate `to_user_id` on a ride."""
    digest = hashlib.sha1(f"{ride_id}:{from_user_id}:{to_user_id}".encode()).hexdigest()
    return f"rr_{digest[:24]}"


def build_rating_requests(ride: Ride, now: datetime, ttl_days: int) -> List[RatingRequest]:
    """
    Two requests per confirmed passenger: driver rates passenger and
    passenger rates driver.
    """
    snapshot = RideSnapshot(
        origin=ride.origin,
        destination=ride.destination,
        departure_time=ride.departure_time,
    )
    expires_at = now + timedelta(days=ttl_days)

    requests = []
    for passenger in ride.passengers:
        requests.append(
            RatingRequest(
                request_id=rating_request_id(ride.ride_id, ride.driver_id, passenger.passenger_id),
                ride_id=ride.ride_id,
                from_user_id=ride.driver_id,
                from_user_role=ParticipantRole.DRIVER,
                to_user_id=passenger.passenger_id,
                to_user_role=ParticipantRole.PASSENGER,
                to_user_name=passenger.passenger_name,
                ride_info=snapshot,
                created_at=now,
                expires_at=expires_at,
            )
        )
        requests.append(
            RatingRequest(
                request_id=rating_request_id(ride.ride_id, passenger.passenger_id, ride.driver_id),
                ride_id=ride.ride_id,
                from_user_id=passenger.passenger_id,
                from_user_role=ParticipantRole.PASSENGER,
                to_user_id=ride.driver_id,
                to_user_role=ParticipantRole.DRIVER,
                to_user_name=ride.driver_name,
                ride_info=snapshot,
                created_at=now,
                expires_at=expires_at,
            )
        )
    return requests


class CompletionService:
    """Ride completion and the rating-request trigger."""

    def __init__(
        self,
        store: Optional[RideStore] = None,
        feed: Optional[FeedService] = None,
        ttl_days: Optional[int] = None,
    ):
        self.store = store or RideStore()
        self.feed = feed or FeedService()
        self.ttl_days = ttl_days or settings.rating_request_ttl_days

    async def complete_ride(self, ride_id: str, driver_id: str) -> List[RatingRequest]:
        """
        Freeze the ride and create the rating requests of its participants.

        A second call fails with RideNotAvailableError before anything is
        written, so requests are created once.

        Raises:
            NotDriverError, RideNotAvailableError
        """
        now = utc_now()

        def transition(ride: Ride):
            return rules.complete(ride, driver_id, now), None

        ride, _ = await self.store.transact(ride_id, transition, label="complete_ride")
        logger.info(
            f"Ride {ride_id} completed by driver {driver_id} "
            f"with {len(ride.passengers)} passengers"
        )
        await self.feed.publish_ride(ride)

        return await self._emit(ride, ride.completed_at or now)

    async def ensure_rating_requests(self, ride_id: str) -> List[RatingRequest]:
        """
        Re-derive the rating requests of a completed ride.

        Upserts by deterministic id, so existing requests (including ones
        already submitted or expired) are left untouched.
        """
        ride = await self.store.get(ride_id)
        if ride.status != RideStatus.COMPLETED:
            raise RideNotAvailableError("Ride is not completed.")
        return await self._emit(ride, ride.completed_at or utc_now())

    async def _emit(self, ride: Ride, now: datetime) -> List[RatingRequest]:
        requests = build_rating_requests(ride, now, self.ttl_days)
        if not requests:
            return []

        db = get_db()
        operations = [
            UpdateOne(
                {"request_id": r.request_id},
                {"$setOnInsert": r.model_dump()},
                upsert=True,
            )
            for r in requests
        ]
        with store_guard("rating request upsert"):
            result = await db.rating_requests.bulk_write(operations, ordered=False)

        logger.info(
            f"Ride {ride.ride_id}: {result.upserted_count} new rating requests "
            f"of {len(requests)}"
        )

        by_rater: Dict[str, List[RatingRequest]] = defaultdict(list)
        for r in requests:
            by_rater[r.from_user_id].append(r)
        for user_id, user_requests in by_rater.items():
            await self.feed.publish_rating_requests(user_id, user_requests)

        return requests
