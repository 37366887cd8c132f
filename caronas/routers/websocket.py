"""
WebSocket Router

Real-time ride and rating-request updates relayed from the Redis feed.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from redis.exceptions import RedisError

from caronas.dependencies import (
    authenticate_token,
    get_auth_service,
    get_rating_service,
    get_ride_service,
    get_user_service,
)
from caronas.services.auth_service import AuthService
from caronas.services.feed_service import FeedChannels, FeedService
from caronas.services.rating_service import RatingService
from caronas.services.ride_service import RideService
from caronas.services.user_service import UserService
from caronas.utils.timezone_utils import utc_now


logger = logging.getLogger(__name__)

router = APIRouter()
feed_service = FeedService()


async def relay_feed(websocket: WebSocket, user_id: str) -> None:
    """Forward feed events for the user until the socket or the feed closes."""
    events = feed_service.subscribe(
        [FeedChannels.rides(), FeedChannels.user_ratings(user_id)]
    )
    try:
        async for event in events:
            await websocket.send_json(event)
    finally:
        await events.aclose()


async def stop_relay(relay: asyncio.Task, user_id: str) -> None:
    """Cancel the relay task; a relay that already died is logged, not raised."""
    relay.cancel()
    try:
        await relay
    except asyncio.CancelledError:
        pass
    except (RedisError, RuntimeError, WebSocketDisconnect) as e:
        logger.warning(f"Feed relay for {user_id} ended with error: {e!r}")


@router.websocket("")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    auth_service: AuthService = Depends(get_auth_service),
    user_service: UserService = Depends(get_user_service),
    ride_service: RideService = Depends(get_ride_service),
    rating_service: RatingService = Depends(get_rating_service),
):
    """
    WebSocket endpoint for real-time updates.

    Connect with: ws://host/ws?token=<firebase_id_token>

    Messages sent to client:
    - snapshot: Available rides and pending rating requests, on connect
    - ride_changed: A ride was published or its queues/status changed
    - rating_requests: New rating requests for this user
    - rating_request_resolved: A rating request was submitted or expired
    - pong: Reply to {"type": "ping"}
    """
    user = await authenticate_token(token, auth_service, user_service)
    if not user:
        await websocket.close(code=4001, reason="Invalid token")
        return

    await websocket.accept()
    user_id = user.user_id

    rides = await ride_service.list_available_rides()
    pending = await rating_service.list_pending_requests(user_id)
    await websocket.send_json(
        {
            "type": "snapshot",
            "data": {
                "rides": [r.model_dump(mode="json") for r in rides],
                "rating_requests": [r.model_dump(mode="json") for r in pending.requests],
            },
            "timestamp": utc_now().isoformat(),
        }
    )

    relay = asyncio.create_task(relay_feed(websocket, user_id))
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json(
                    {"type": "pong", "timestamp": utc_now().isoformat()}
                )
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed for {user_id}")
    finally:
        await stop_relay(relay, user_id)
