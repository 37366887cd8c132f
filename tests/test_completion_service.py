"""
Tests for Ride Completion

Unit tests for completing rides and emitting rating requests.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo import UpdateOne

from caronas.models.ride import ConfirmedPassenger, RideStatus
from caronas.services.completion_service import (
    CompletionService,
    build_rating_requests,
    rating_request_id,
)
from caronas.utils.exceptions import NotDriverError, RideNotAvailableError

from conftest import at, make_ride


def ride_with_passengers(*ids, **overrides):
    return make_ride(
        passengers=[ConfirmedPassenger(passenger_id=p, passenger_name=p.upper()) for p in ids],
        **overrides,
    )


class TestBuildRatingRequests:
    """Tests for the pure request builder."""

    def test_two_requests_per_passenger(self):
        requests = build_rating_requests(ride_with_passengers("a", "b"), at(0), 7)

        pairs = {(r.from_user_id, r.to_user_id) for r in requests}
        assert len(requests) == 4
        assert pairs == {("driver", "a"), ("a", "driver"), ("driver", "b"), ("b", "driver")}

    def test_roles_snapshot_and_expiry(self):
        requests = build_rating_requests(ride_with_passengers("a"), at(0), 7)
        by_rater = {r.from_user_id: r for r in requests}

        driver_rates = by_rater["driver"]
        assert driver_rates.from_user_role == "driver"
        assert driver_rates.to_user_role == "passenger"
        assert driver_rates.to_user_name == "A"

        passenger_rates = by_rater["a"]
        assert passenger_rates.to_user_role == "driver"
        assert passenger_rates.to_user_name == "Dora Driver"

        for r in requests:
            assert r.status == "pending"
            assert r.expires_at == at(7 * 24 * 60)
            assert r.ride_info.origin == "Centro, Diamantina"
            assert r.ride_info.departure_time == "07:30"

    def test_no_passengers_no_requests(self):
        assert build_rating_requests(make_ride(), at(0), 7) == []

    def test_request_ids_are_stable_and_directional(self):
        assert rating_request_id("r", "x", "y") == rating_request_id("r", "x", "y")
        assert rating_request_id("r", "x", "y") != rating_request_id("r", "y", "x")
        assert rating_request_id("r", "x", "y") != rating_request_id("other", "x", "y")


class TestCompletionService:
    """Tests for CompletionService."""

    @pytest.fixture
    def service(self, store, feed):
        return CompletionService(store=store, feed=feed, ttl_days=7)

    @pytest.fixture
    def mock_db(self):
        with patch("caronas.services.completion_service.get_db") as mock_get_db:
            collection = MagicMock()
            collection.bulk_write = AsyncMock(return_value=MagicMock(upserted_count=2))
            mock_get_db.return_value.rating_requests = collection
            yield collection

    @pytest.mark.asyncio
    async def test_complete_ride_emits_requests(self, service, store, feed, mock_db):
        store.rides["ride_1"] = ride_with_passengers("a")

        requests = await service.complete_ride("ride_1", "driver")

        assert len(requests) == 2
        assert store.rides["ride_1"].status == RideStatus.COMPLETED
        assert store.rides["ride_1"].completed_at is not None

        operations = mock_db.bulk_write.await_args[0][0]
        assert len(operations) == 2
        assert all(isinstance(op, UpdateOne) for op in operations)
        assert mock_db.bulk_write.await_args[1]["ordered"] is False

        feed.publish_ride.assert_awaited_once()
        notified = {c[0][0] for c in feed.publish_rating_requests.await_args_list}
        assert notified == {"driver", "a"}

    @pytest.mark.asyncio
    async def test_second_completion_creates_nothing(self, service, store, mock_db):
        store.rides["ride_1"] = ride_with_passengers("a", "b")

        first = await service.complete_ride("ride_1", "driver")
        assert len(first) == 4

        with pytest.raises(RideNotAvailableError):
            await service.complete_ride("ride_1", "driver")

        assert mock_db.bulk_write.await_count == 1

    @pytest.mark.asyncio
    async def test_only_driver_completes(self, service, store, mock_db):
        store.rides["ride_1"] = ride_with_passengers("a")

        with pytest.raises(NotDriverError):
            await service.complete_ride("ride_1", "a")

        assert store.rides["ride_1"].status == RideStatus.AVAILABLE
        mock_db.bulk_write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ride_without_passengers(self, service, store, mock_db):
        store.rides["ride_1"] = make_ride()

        assert await service.complete_ride("ride_1", "driver") == []
        mock_db.bulk_write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ensure_requests_reuses_ids(self, service, store, mock_db):
        store.rides["ride_1"] = ride_with_passengers("a")
        first = await service.complete_ride("ride_1", "driver")

        again = await service.ensure_rating_requests("ride_1")

        assert [r.request_id for r in again] == [r.request_id for r in first]
        assert [r.expires_at for r in again] == [r.expires_at for r in first]
        upsert = mock_db.bulk_write.await_args[0][0][0]._doc
        assert set(upsert) == {"$setOnInsert"}

    @pytest.mark.asyncio
    async def test_ensure_requests_on_open_ride(self, service, store, mock_db):
        store.rides["ride_1"] = ride_with_passengers("a")

        with pytest.raises(RideNotAvailableError):
            await service.ensure_rating_requests("ride_1")
