"""
Tests for the Ride Catalog

Unit tests for publishing, search filters and ride history.
"""

import re

import pytest
from pydantic import ValidationError

from caronas.models.ride import ConfirmedPassenger, RideCreate, RideFilters
from caronas.models.user import User
from caronas.services.ride_service import (
    RideService,
    apply_seat_filter,
    build_listing_query,
    summarize_history,
)
from caronas.utils.exceptions import AccountBannedError

from conftest import make_ride


def driver_user() -> User:
    return User(user_id="driver", email="dora@ufvjm.edu.br", display_name="Dora Driver")


def confirmed(*ids):
    return [ConfirmedPassenger(passenger_id=p, passenger_name=p) for p in ids]


class TestListingQuery:
    """Tests for the search filter query."""

    def test_defaults_only_available(self):
        assert build_listing_query(RideFilters()) == {"status": "available"}

    def test_search_is_escaped_and_case_insensitive(self):
        query = build_listing_query(RideFilters(search="  centro (sul) "))

        fields = [list(clause)[0] for clause in query["$or"]]
        assert fields == ["origin", "destination", "driver_name"]
        pattern = query["$or"][0]["origin"]
        assert pattern["$options"] == "i"
        assert pattern["$regex"] == re.escape("centro (sul)")

    def test_price_ranges(self):
        assert build_listing_query(RideFilters(price_range="free"))["price"] == 0
        assert build_listing_query(RideFilters(price_range="paid"))["price"] == {"$gt": 0}
        assert "price" not in build_listing_query(RideFilters(price_range="all"))

    @pytest.mark.parametrize("time_range,window", [
        ("morning", {"$gte": "00:00", "$lt": "12:00"}),
        ("afternoon", {"$gte": "12:00", "$lt": "18:00"}),
        ("evening", {"$gte": "18:00", "$lt": "24:00"}),
    ])
    def test_time_ranges(self, time_range, window):
        query = build_listing_query(RideFilters(time_range=time_range))
        assert query["departure_time"] == window

    def test_min_seats_uses_remaining_seats(self):
        rides = [
            make_ride(ride_id="full", available_seats=2, passengers=confirmed("a", "b")),
            make_ride(ride_id="one_left", available_seats=3, passengers=confirmed("a", "b")),
            make_ride(ride_id="empty", available_seats=4),
        ]

        assert [r.ride_id for r in apply_seat_filter(rides, 2)] == ["empty"]
        assert [r.ride_id for r in apply_seat_filter(rides, 1)] == ["one_left", "empty"]
        assert apply_seat_filter(rides, None) == rides


class TestHistory:
    """Tests for history roles and totals."""

    def test_driver_and_passenger_totals(self):
        rides = [
            make_ride(ride_id="drove", price=6.0, passengers=confirmed("a", "b")),
            make_ride(ride_id="rode", driver_id="other", price=4.5, passengers=confirmed("driver")),
            make_ride(ride_id="free", driver_id="other", price=0, passengers=confirmed("driver")),
        ]

        history = summarize_history("driver", rides)

        assert [(e.ride.ride_id, e.role) for e in history.rides] == [
            ("drove", "driver"),
            ("rode", "passenger"),
            ("free", "passenger"),
        ]
        assert history.total_as_driver == 1
        assert history.total_as_passenger == 2
        assert history.amount_collected == 12.0
        assert history.amount_paid == 4.5

    def test_unrelated_rides_are_skipped(self):
        history = summarize_history("nobody", [make_ride(passengers=confirmed("a"))])
        assert history.rides == []
        assert history.amount_collected == 0


class TestRideService:
    """Tests for RideService with the in-memory store."""

    @pytest.fixture
    def service(self, store, feed):
        return RideService(store=store, feed=feed)

    @pytest.mark.asyncio
    async def test_publish_ride(self, service, store, feed):
        data = RideCreate(origin=" Centro ", departure_time="06:45", available_seats=3, price=0)

        ride = await service.publish_ride(driver_user(), data)

        assert ride.driver_id == "driver"
        assert ride.driver_name == "Dora Driver"
        assert ride.origin == "Centro"
        assert ride.destination == "ICEA - UFVJM"
        assert ride.status == "available"
        assert ride.version == 0
        assert ride.passengers == [] and ride.pending_requests == [] and ride.waiting_list == []
        assert store.rides[ride.ride_id].ride_id == ride.ride_id
        feed.publish_ride.assert_awaited_once_with(ride)

    @pytest.mark.asyncio
    async def test_banned_driver_cannot_publish(self, service, store, feed):
        driver = driver_user().model_copy(update={"banned": True, "ban_reason": "spam"})
        data = RideCreate(origin="Centro", departure_time="06:45", available_seats=3)

        with pytest.raises(AccountBannedError):
            await service.publish_ride(driver, data)

        assert store.rides == {}
        feed.publish_ride.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_long_profile_name_fits_ride(self, service):
        driver = User(user_id="driver", display_name="D" * 150)
        data = RideCreate(origin="Centro", departure_time="06:45", available_seats=3)

        ride = await service.publish_ride(driver, data)

        assert len(ride.driver_name) == 100

    @pytest.mark.parametrize("payload", [
        {"available_seats": 0},
        {"available_seats": 9},
        {"price": -1},
        {"departure_time": "7:30"},
        {"departure_time": "24:00"},
    ])
    def test_invalid_offers(self, payload):
        data = {"origin": "Centro", "departure_time": "07:30", "available_seats": 2}
        data.update(payload)
        with pytest.raises(ValidationError):
            RideCreate(**data)

    @pytest.mark.asyncio
    async def test_list_applies_seat_filter(self, service, store):
        store.rides["a"] = make_ride(ride_id="a", available_seats=1, passengers=confirmed("x"))
        store.rides["b"] = make_ride(ride_id="b", available_seats=3)

        rides = await service.list_available_rides(RideFilters(min_seats=1))

        assert [r.ride_id for r in rides] == ["b"]
