"""
Reservation Service

Seat requests, driver decisions, cancellations and ride deletion. Every
operation is one atomic transaction on one ride record; the queue rules
live in reservation_rules.
"""

import logging
from typing import Optional

from caronas.models.ride import PassengerInfo, Ride, SeatRequestResult
from caronas.services import reservation_rules as rules
from caronas.services.feed_service import FeedService
from caronas.services.permission_service import PermissionService
from caronas.services.ride_store import RideStore
from caronas.utils.exceptions import AccountBannedError, PermissionDeniedError
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


class ReservationService:
    """
    Reservation engine.

    Collaborators are injected; defaults resolve to the MongoDB store, the
    role-based permission checker and the Redis feed.

    Concurrency: operations on the same ride are serialized by the store's
    versioned commit, so two passengers racing for the last pending slot
    cannot both land in pending_requests. Operations on different rides
    never touch each other's records.
    """

    def __init__(
        self,
        store: Optional[RideStore] = None,
        permissions: Optional[PermissionService] = None,
        feed: Optional[FeedService] = None,
    ):
        self.store = store or RideStore()
        self.permissions = permissions or PermissionService()
        self.feed = feed or FeedService()

    async def request_seat(
        self, ride_id: str, passenger_id: str, info: PassengerInfo
    ) -> SeatRequestResult:
        """
        Request a seat for a passenger.

        Lands in pending_requests while pending + confirmed are below the
        ride's seats, otherwise in the waiting list. Both are successes; the
        placement tells the client which message to show.

        Raises:
            AccountBannedError, SelfBookingError, DuplicateRequestError,
            RideNotAvailableError
        """
        if await self.permissions.is_banned(passenger_id):
            raise AccountBannedError()

        def transition(ride: Ride):
            updated, placement, position = rules.request_seat(
                ride, passenger_id, info, utc_now()
            )
            return updated, (placement, position)

        ride, (placement, position) = await self.store.transact(
            ride_id, transition, label="request_seat"
        )
        logger.info(
            f"Passenger {passenger_id} placed in {placement} #{position} on ride {ride_id}"
        )
        await self.feed.publish_ride(ride)

        return SeatRequestResult(ride_id=ride_id, placement=placement, position=position)

    async def approve_request(self, ride_id: str, driver_id: str, passenger_id: str) -> Ride:
        """
        Confirm a pending passenger. Approval does not free a seat, so the
        waiting list is untouched.

        Raises:
            NotDriverError, RequestNotFoundError, SeatsFullError,
            RideNotAvailableError
        """

        def transition(ride: Ride):
            return rules.approve_request(ride, driver_id, passenger_id, utc_now()), None

        ride, _ = await self.store.transact(ride_id, transition, label="approve_request")
        logger.info(f"Driver {driver_id} approved {passenger_id} on ride {ride_id}")
        await self.feed.publish_ride(ride)
        return ride

    async def reject_request(self, ride_id: str, driver_id: str, passenger_id: str) -> Ride:
        """Drop a pending request. The waiting list is untouched."""

        def transition(ride: Ride):
            return rules.reject_request(ride, driver_id, passenger_id), None

        ride, _ = await self.store.transact(ride_id, transition, label="reject_request")
        logger.info(f"Driver {driver_id} rejected {passenger_id} on ride {ride_id}")
        await self.feed.publish_ride(ride)
        return ride

    async def cancel_confirmed_seat(
        self,
        ride_id: str,
        passenger_id: str,
        acting_user_id: Optional[str] = None,
    ) -> Ride:
        """
        Remove a confirmed passenger and promote the waiting-list head into
        pending_requests.

        The passenger may cancel their own seat; the driver or a privileged
        user may remove them.

        Raises:
            PermissionDeniedError, RequestNotFoundError, RideNotAvailableError
        """
        acting_user_id = acting_user_id or passenger_id
        if acting_user_id != passenger_id:
            current = await self.store.get(ride_id)
            if acting_user_id != current.driver_id and not await self.permissions.can_manage_passengers(acting_user_id):
                raise PermissionDeniedError("Only the passenger or the driver can cancel this seat.")

        def transition(ride: Ride):
            return rules.cancel_confirmed_seat(ride, passenger_id)

        ride, promoted = await self.store.transact(ride_id, transition, label="cancel_seat")
        logger.info(
            f"Seat of {passenger_id} on ride {ride_id} cancelled by {acting_user_id}"
            + (f", promoted {promoted}" if promoted else "")
        )
        await self.feed.publish_ride(ride)
        return ride

    async def withdraw_request(self, ride_id: str, passenger_id: str) -> Ride:
        """Passenger leaves the pending requests or the waiting list."""

        def transition(ride: Ride):
            return rules.withdraw_request(ride, passenger_id)

        ride, promoted = await self.store.transact(ride_id, transition, label="withdraw_request")
        logger.info(
            f"Passenger {passenger_id} withdrew from ride {ride_id}"
            + (f", promoted {promoted}" if promoted else "")
        )
        await self.feed.publish_ride(ride)
        return ride

    async def delete_ride(self, ride_id: str, acting_user_id: str) -> Ride:
        """
        Mark a ride deleted. Allowed for the driver and for users with the
        ride-deletion privilege.

        Raises:
            PermissionDeniedError, RideNotAvailableError
        """
        # driver_id never changes, so checking it before the transaction is safe
        current = await self.store.get(ride_id)
        if acting_user_id != current.driver_id and not await self.permissions.can_delete_ride(acting_user_id):
            raise PermissionDeniedError("Only the driver or a moderator can delete this ride.")

        def transition(ride: Ride):
            return rules.delete(ride, acting_user_id, utc_now()), None

        ride, _ = await self.store.transact(ride_id, transition, label="delete_ride")
        logger.info(f"Ride {ride_id} deleted by {acting_user_id}")
        await self.feed.publish_ride(ride)
        return ride
