"""
Tests for the Reservation Service

Service-level tests over the in-memory versioned store: permissions,
feed publication, conflict retries and concurrent seat requests.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from caronas.config import settings
from caronas.models.ride import ConfirmedPassenger, PassengerInfo, RideStatus
from caronas.services import reservation_rules as rules
from caronas.services.reservation_service import ReservationService
from caronas.utils.exceptions import (
    AccountBannedError,
    ConflictError,
    PermissionDeniedError,
    RideNotAvailableError,
    RideNotFoundError,
    SelfBookingError,
)

from conftest import make_ride


def info(name: str) -> PassengerInfo:
    return PassengerInfo(passenger_name=name)


class TestReservationService:
    """Tests for ReservationService operations."""

    @pytest.fixture
    def service(self, store, permissions, feed):
        return ReservationService(store=store, permissions=permissions, feed=feed)

    @pytest.fixture
    def ride(self, store):
        store.rides["ride_1"] = make_ride(available_seats=2)
        return store.rides["ride_1"]

    # =========================================================================
    # Seat Requests
    # =========================================================================

    @pytest.mark.asyncio
    async def test_request_seat_commits_and_publishes(self, service, store, feed, ride):
        result = await service.request_seat("ride_1", "a", info("A"))

        assert result.placement == "pending"
        assert result.position == 1
        stored = store.rides["ride_1"]
        assert stored.pending_ids() == ["a"]
        assert stored.version == 1
        feed.publish_ride.assert_awaited_once()
        assert feed.publish_ride.await_args[0][0].version == 1

    @pytest.mark.asyncio
    async def test_waiting_list_is_a_success(self, service, ride):
        await service.request_seat("ride_1", "a", info("A"))
        await service.request_seat("ride_1", "b", info("B"))

        result = await service.request_seat("ride_1", "c", info("C"))

        assert result.placement == "waiting"
        assert result.position == 1

    @pytest.mark.asyncio
    async def test_unknown_ride(self, service):
        with pytest.raises(RideNotFoundError):
            await service.request_seat("missing", "a", info("A"))

    @pytest.mark.asyncio
    async def test_unknown_ride_is_not_available(self, service):
        with pytest.raises(RideNotAvailableError):
            await service.approve_request("missing", "driver", "a")

    @pytest.mark.asyncio
    async def test_failed_transition_writes_nothing(self, service, store, feed, ride):
        with pytest.raises(SelfBookingError):
            await service.request_seat("ride_1", "driver", info("D"))

        assert store.commits == 0
        feed.publish_ride.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_banned_passenger_is_refused(self, service, store, permissions, feed, ride):
        permissions.is_banned.return_value = True

        with pytest.raises(AccountBannedError):
            await service.request_seat("ride_1", "a", info("A"))

        permissions.is_banned.assert_awaited_once_with("a")
        assert store.rides["ride_1"].pending_requests == []
        assert store.commits == 0
        feed.publish_ride.assert_not_awaited()

    # =========================================================================
    # Cancellation Permissions
    # =========================================================================

    @pytest.mark.asyncio
    async def test_passenger_cancels_own_seat(self, service, store, permissions, ride):
        await service.request_seat("ride_1", "a", info("A"))
        await service.approve_request("ride_1", "driver", "a")

        await service.cancel_confirmed_seat("ride_1", "a")

        assert store.rides["ride_1"].passengers == []
        permissions.can_manage_passengers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_driver_removes_passenger(self, service, store, ride):
        await service.request_seat("ride_1", "a", info("A"))
        await service.approve_request("ride_1", "driver", "a")

        await service.cancel_confirmed_seat("ride_1", "a", acting_user_id="driver")

        assert store.rides["ride_1"].passengers == []

    @pytest.mark.asyncio
    async def test_stranger_cannot_remove_passenger(self, service, store, ride):
        await service.request_seat("ride_1", "a", info("A"))
        await service.approve_request("ride_1", "driver", "a")

        with pytest.raises(PermissionDeniedError):
            await service.cancel_confirmed_seat("ride_1", "a", acting_user_id="b")

        assert store.rides["ride_1"].passenger_ids() == ["a"]

    @pytest.mark.asyncio
    async def test_moderator_removes_passenger(self, service, store, permissions, ride):
        permissions.can_manage_passengers.return_value = True
        await service.request_seat("ride_1", "a", info("A"))
        await service.approve_request("ride_1", "driver", "a")

        await service.cancel_confirmed_seat("ride_1", "a", acting_user_id="mod")

        permissions.can_manage_passengers.assert_awaited_once_with("mod")
        assert store.rides["ride_1"].passengers == []

    # =========================================================================
    # Deletion
    # =========================================================================

    @pytest.mark.asyncio
    async def test_driver_deletes_ride(self, service, store, permissions, ride):
        deleted = await service.delete_ride("ride_1", "driver")

        assert deleted.status == RideStatus.DELETED
        assert deleted.deleted_by == "driver"
        permissions.can_delete_ride.assert_not_awaited()

        with pytest.raises(RideNotAvailableError):
            await service.request_seat("ride_1", "a", info("A"))

    @pytest.mark.asyncio
    async def test_privileged_user_deletes_ride(self, service, permissions, ride):
        permissions.can_delete_ride.return_value = True
        deleted = await service.delete_ride("ride_1", "admin")
        assert deleted.deleted_by == "admin"

    @pytest.mark.asyncio
    async def test_other_user_cannot_delete(self, service, store, ride):
        with pytest.raises(PermissionDeniedError):
            await service.delete_ride("ride_1", "a")
        assert store.rides["ride_1"].status == RideStatus.AVAILABLE


class TestConcurrency:
    """Racing transactions on the same ride."""

    @pytest.fixture
    def service(self, store, permissions, feed):
        return ReservationService(store=store, permissions=permissions, feed=feed)

    @pytest.mark.asyncio
    async def test_race_for_last_pending_slot(self, service, store):
        await store.insert(make_ride(available_seats=1))

        results = await asyncio.gather(
            service.request_seat("ride_1", "a", info("A")),
            service.request_seat("ride_1", "b", info("B")),
        )

        placements = sorted(r.placement for r in results)
        assert placements == ["pending", "waiting"]

        ride = store.rides["ride_1"]
        assert len(ride.pending_requests) == 1
        assert len(ride.waiting_list) == 1
        assert ride.version == 2
        assert store.conflicts >= 1
        assert rules.invariant_violations(ride) == []

    @pytest.mark.asyncio
    async def test_many_passengers_never_overbook(self, service, store):
        await store.insert(make_ride(available_seats=3))
        passengers = [f"p{i}" for i in range(8)]

        # Every round of a race commits one writer, so allow one attempt per passenger
        with patch.object(settings, "transaction_max_attempts", len(passengers)), \
             patch.object(settings, "transaction_retry_base_delay_seconds", 0):
            await asyncio.gather(
                *(service.request_seat("ride_1", p, info(p)) for p in passengers)
            )
            pending = list(store.rides["ride_1"].pending_ids())
            await asyncio.gather(
                *(service.approve_request("ride_1", "driver", p) for p in pending)
            )

        ride = store.rides["ride_1"]
        assert len(ride.passengers) == 3
        assert len(ride.waiting_list) == 5
        assert sorted(ride.passenger_ids() + ride.waiting_ids()) == sorted(passengers)
        assert rules.invariant_violations(ride) == []

    @pytest.mark.asyncio
    async def test_duplicate_concurrent_requests(self, service, store):
        await store.insert(make_ride(available_seats=2))

        results = await asyncio.gather(
            service.request_seat("ride_1", "a", info("A")),
            service.request_seat("ride_1", "a", info("A")),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert errors[0].code == "duplicate_request"
        assert store.rides["ride_1"].pending_ids() == ["a"]

    @pytest.mark.asyncio
    async def test_conflict_surfaces_after_bounded_retries(self, service, store):
        await store.insert(make_ride())

        with patch.object(store, "commit", AsyncMock(side_effect=ConflictError())) as commit, \
             patch.object(settings, "transaction_retry_base_delay_seconds", 0):
            with pytest.raises(ConflictError):
                await service.request_seat("ride_1", "a", info("A"))

        assert commit.await_count == 5
        assert store.rides["ride_1"].pending_requests == []

    @pytest.mark.asyncio
    async def test_disjoint_rides_do_not_conflict(self, service, store):
        await store.insert(make_ride(ride_id="r1"))
        await store.insert(make_ride(ride_id="r2"))

        await asyncio.gather(
            service.request_seat("r1", "a", info("A")),
            service.request_seat("r2", "b", info("B")),
        )

        assert store.conflicts == 0
        assert store.rides["r1"].pending_ids() == ["a"]
        assert store.rides["r2"].pending_ids() == ["b"]

    @pytest.mark.asyncio
    async def test_cancel_races_with_request(self, service, store):
        await store.insert(
            make_ride(
                available_seats=1,
                passengers=[ConfirmedPassenger(passenger_id="a", passenger_name="A")],
            )
        )

        await asyncio.gather(
            service.cancel_confirmed_seat("ride_1", "a"),
            service.request_seat("ride_1", "b", info("B")),
        )

        ride = store.rides["ride_1"]
        assert ride.passengers == []
        assert ride.pending_ids() == ["b"]
        assert ride.waiting_list == []
