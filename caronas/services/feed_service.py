"""Feed Service - Redis pub/sub change feed for ride and rating-request updates."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List

from redis.exceptions import RedisError

from caronas.database import get_redis
from caronas.models.rating import RatingRequest
from caronas.models.ride import Ride


logger = logging.getLogger(__name__)


# =============================================================================
# Redis Channel Naming Convention
# =============================================================================
#
# All channels are namespaced under "caronas:" prefix.
#
# - caronas:feed:rides              - every committed ride change
# - caronas:feed:ratings:{user_id}  - rating requests addressed to a rater
#
# Events are JSON objects: {"type": ..., "data": ...}
#
# =============================================================================


class FeedChannels:
    """Channel name builders."""

    @staticmethod
    def rides() -> str:
        return "caronas:feed:rides"

    @staticmethod
    def user_ratings(user_id: str) -> str:
        return f"caronas:feed:ratings:{user_id}"


class FeedService:
    """
    Publishes committed state to subscribers.

    Publishing happens after the store commit. A publish failure is logged
    and swallowed: observers are eventually consistent and the committed
    operation already succeeded.
    """

    async def _publish(self, channel: str, event: Dict[str, Any]) -> None:
        try:
            await get_redis().publish(channel, json.dumps(event, default=str))
        except (RedisError, RuntimeError) as e:
            logger.warning(f"Feed publish to {channel} failed: {e}")

    async def publish_ride(self, ride: Ride) -> None:
        """Announce a committed ride change."""
        await self._publish(
            FeedChannels.rides(),
            {"type": "ride_changed", "data": ride.model_dump(mode="json")},
        )

    async def publish_rating_requests(
        self, user_id: str, requests: List[RatingRequest]
    ) -> None:
        """Announce new pending rating requests to their rater."""
        if not requests:
            return
        await self._publish(
            FeedChannels.user_ratings(user_id),
            {
                "type": "rating_requests",
                "data": [r.model_dump(mode="json") for r in requests],
            },
        )

    async def publish_rating_resolved(self, user_id: str, request_id: str, status: str) -> None:
        """Announce that a rating request left the pending state."""
        await self._publish(
            FeedChannels.user_ratings(user_id),
            {"type": "rating_request_resolved", "data": {"request_id": request_id, "status": status}},
        )

    async def subscribe(self, channels: List[str]) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield decoded events from the given channels.

        Closing the generator (aclose) unsubscribes and releases the
        connection.
        """
        pubsub = get_redis().pubsub()
        await pubsub.subscribe(*channels)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning(f"Dropped malformed feed message on {message.get('channel')}")
        finally:
            await pubsub.unsubscribe(*channels)
            await pubsub.aclose()
