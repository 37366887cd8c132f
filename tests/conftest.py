"""
Shared fixtures: ride builders and an in-memory versioned ride store.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import AsyncMock

import pytest

from caronas.models.ride import Ride
from caronas.services.feed_service import FeedService
from caronas.services.permission_service import PermissionService
from caronas.services.ride_store import RideStore
from caronas.utils.exceptions import ConflictError, RideNotFoundError
from caronas.utils.timezone_utils import utc_now


BASE_TIME = datetime(2024, 3, 4, 7, 0, tzinfo=timezone.utc)


def make_ride(**overrides) -> Ride:
    """Ride owned by "driver" with two seats and empty queues."""
    data = {
        "ride_id": "ride_1",
        "driver_id": "driver",
        "driver_name": "Dora Driver",
        "origin": "Centro, Diamantina",
        "destination": "ICEA - UFVJM",
        "departure_time": "07:30",
        "available_seats": 2,
        "price": 5.0,
    }
    data.update(overrides)
    return Ride(**data)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


class InMemoryRideStore(RideStore):
    """
    RideStore double with the same versioned commit semantics as MongoDB.

    `commit` yields to the event loop before checking the version, so
    transactions gathered concurrently interleave between read and write.
    """

    def __init__(self):
        self.rides: Dict[str, Ride] = {}
        self.commits = 0
        self.conflicts = 0

    async def get(self, ride_id: str) -> Ride:
        ride = self.rides.get(ride_id)
        if ride is None:
            raise RideNotFoundError()
        return ride.model_copy(deep=True)

    async def insert(self, ride: Ride) -> Ride:
        self.rides[ride.ride_id] = ride.model_copy(deep=True)
        return ride

    async def commit(self, ride: Ride, expected_version: int) -> Ride:
        await asyncio.sleep(0)
        stored = self.rides.get(ride.ride_id)
        if stored is None or stored.version != expected_version:
            self.conflicts += 1
            raise ConflictError()
        committed = ride.model_copy(
            update={"version": expected_version + 1, "updated_at": utc_now()}
        )
        self.rides[ride.ride_id] = committed.model_copy(deep=True)
        self.commits += 1
        return committed

    async def find(self, query, sort=None, limit=0):
        return [r.model_copy(deep=True) for r in self.rides.values()]


@pytest.fixture
def store():
    return InMemoryRideStore()


@pytest.fixture
def feed():
    return AsyncMock(spec=FeedService)


@pytest.fixture
def permissions():
    checker = AsyncMock(spec=PermissionService)
    checker.can_delete_ride.return_value = False
    checker.can_manage_passengers.return_value = False
    checker.is_banned.return_value = False
    return checker
