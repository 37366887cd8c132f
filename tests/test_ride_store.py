"""
Tests for the MongoDB Ride Store
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from caronas.config import settings
from caronas.services.ride_store import RideStore
from caronas.utils.exceptions import ConflictError, RideNotFoundError, StoreUnavailableError

from conftest import make_ride


class TestRideStore:
    """Tests for versioned commits and error translation."""

    @pytest.fixture
    def rides(self):
        with patch("caronas.services.ride_store.get_db") as mock_db:
            collection = MagicMock()
            collection.find_one = AsyncMock(return_value=None)
            collection.replace_one = AsyncMock(return_value=MagicMock(matched_count=1))
            mock_db.return_value.rides = collection
            yield collection

    @pytest.mark.asyncio
    async def test_get_missing_ride(self, rides):
        with pytest.raises(RideNotFoundError):
            await RideStore().get("nope")

    @pytest.mark.asyncio
    async def test_commit_filters_on_version(self, rides):
        committed = await RideStore().commit(make_ride(version=3), expected_version=3)

        query, document = rides.replace_one.await_args[0]
        assert query == {"ride_id": "ride_1", "version": 3}
        assert document["version"] == 4
        assert committed.version == 4

    @pytest.mark.asyncio
    async def test_commit_lost_race(self, rides):
        rides.replace_one.return_value = MagicMock(matched_count=0)

        with pytest.raises(ConflictError):
            await RideStore().commit(make_ride(version=3), expected_version=3)

    @pytest.mark.asyncio
    async def test_unreachable_store(self, rides):
        rides.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StoreUnavailableError) as exc_info:
            await RideStore().get("ride_1")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_transact_rereads_after_conflict(self, rides):
        rides.find_one.side_effect = [
            make_ride(version=0).model_dump(),
            make_ride(version=1).model_dump(),
        ]
        rides.replace_one.side_effect = [MagicMock(matched_count=0), MagicMock(matched_count=1)]
        seen = []

        def transition(ride):
            seen.append(ride.version)
            return ride, "ok"

        with patch.object(settings, "transaction_retry_base_delay_seconds", 0):
            committed, extra = await RideStore().transact("ride_1", transition)

        assert seen == [0, 1]
        assert committed.version == 2
        assert extra == "ok"
