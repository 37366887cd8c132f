"""
Tests for the Feed Service and Scheduled Jobs
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from caronas.routers.websocket import stop_relay
from caronas.scheduler.jobs import RatingExpiryJob
from caronas.services.feed_service import FeedChannels, FeedService
from caronas.services.rating_service import RatingService

from conftest import make_ride


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribe = AsyncMock()
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        for message in self.messages:
            yield message


class TestFeedService:
    """Tests for Redis pub/sub publishing and subscriptions."""

    @pytest.fixture
    def redis(self):
        with patch("caronas.services.feed_service.get_redis") as mock_get_redis:
            client = MagicMock()
            client.publish = AsyncMock()
            mock_get_redis.return_value = client
            yield client

    def test_channel_names(self):
        assert FeedChannels.rides() == "caronas:feed:rides"
        assert FeedChannels.user_ratings("u1") == "caronas:feed:ratings:u1"

    @pytest.mark.asyncio
    async def test_publish_ride(self, redis):
        await FeedService().publish_ride(make_ride())

        channel, payload = redis.publish.await_args[0]
        event = json.loads(payload)
        assert channel == "caronas:feed:rides"
        assert event["type"] == "ride_changed"
        assert event["data"]["ride_id"] == "ride_1"

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, redis):
        redis.publish.side_effect = RedisConnectionError("down")

        await FeedService().publish_ride(make_ride())

    @pytest.mark.asyncio
    async def test_no_event_for_empty_request_list(self, redis):
        await FeedService().publish_rating_requests("u1", [])
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subscribe_decodes_and_closes(self, redis):
        pubsub = FakePubSub([
            {"type": "subscribe", "channel": "caronas:feed:rides", "data": 1},
            {"type": "message", "channel": "caronas:feed:rides", "data": '{"type": "ride_changed"}'},
            {"type": "message", "channel": "caronas:feed:rides", "data": "not json"},
            {"type": "message", "channel": "caronas:feed:rides", "data": '{"type": "other"}'},
        ])
        redis.pubsub.return_value = pubsub

        events = FeedService().subscribe([FeedChannels.rides()])
        received = [event async for event in events]

        assert received == [{"type": "ride_changed"}, {"type": "other"}]
        pubsub.subscribe.assert_awaited_once_with("caronas:feed:rides")
        pubsub.unsubscribe.assert_awaited_once_with("caronas:feed:rides")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closing_subscription_releases_connection(self, redis):
        pubsub = FakePubSub([
            {"type": "message", "channel": "c", "data": '{"n": 1}'},
            {"type": "message", "channel": "c", "data": '{"n": 2}'},
        ])
        redis.pubsub.return_value = pubsub

        events = FeedService().subscribe(["c"])
        assert await events.__anext__() == {"n": 1}
        await events.aclose()

        pubsub.aclose.assert_awaited_once()


class TestRatingExpiryJob:
    """Tests for the scheduled expiry sweep."""

    @pytest.mark.asyncio
    async def test_sweep_counts_execution(self):
        rating_service = AsyncMock(spec=RatingService)
        rating_service.expire_overdue.return_value = 4
        job = RatingExpiryJob(rating_service=rating_service)

        await job.execute()

        rating_service.expire_overdue.assert_awaited_once()
        assert job.execution_count == 1
        assert job.failure_count == 0
        assert job.last_execution is not None

    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self):
        rating_service = AsyncMock(spec=RatingService)
        rating_service.expire_overdue.side_effect = RuntimeError("Database not initialized")
        job = RatingExpiryJob(rating_service=rating_service)

        await job.execute()
        await job.execute()

        assert job.execution_count == 2
        assert job.failure_count == 2
        assert job.last_error == "Database not initialized"

    @pytest.mark.asyncio
    async def test_success_resets_failure_streak(self):
        rating_service = AsyncMock(spec=RatingService)
        rating_service.expire_overdue.side_effect = [
            RuntimeError("down"), RuntimeError("down"), 0, RuntimeError("down"), RuntimeError("down"),
        ]
        job = RatingExpiryJob(rating_service=rating_service)

        with patch("caronas.scheduler.jobs.logger") as mock_logger:
            for _ in range(5):
                await job.execute()

        assert job.failure_count == 4
        assert job.consecutive_failures == 2
        mock_logger.critical.assert_not_called()

    @pytest.mark.asyncio
    async def test_third_failure_in_a_row_is_critical(self):
        rating_service = AsyncMock(spec=RatingService)
        rating_service.expire_overdue.side_effect = RuntimeError("down")
        job = RatingExpiryJob(rating_service=rating_service)

        with patch("caronas.scheduler.jobs.logger") as mock_logger:
            for _ in range(3):
                await job.execute()

        mock_logger.critical.assert_called_once()


class TestRelayShutdown:
    """Tests for stopping the websocket feed relay."""

    @pytest.mark.asyncio
    async def test_dead_relay_error_is_logged(self):
        async def relay():
            raise RedisConnectionError("Connection reset by peer")

        task = asyncio.create_task(relay())
        await asyncio.sleep(0)

        with patch("caronas.routers.websocket.logger") as mock_logger:
            await stop_relay(task, "pass_a")

        mock_logger.warning.assert_called_once()
        assert task.done()

    @pytest.mark.asyncio
    async def test_running_relay_is_cancelled(self):
        task = asyncio.create_task(asyncio.sleep(60))

        await stop_relay(task, "pass_a")

        assert task.cancelled()
