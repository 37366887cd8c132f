"""
Ride Service

Ride publication, search and history.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

from caronas.config import settings
from caronas.models.ride import (
    PriceRange,
    Ride,
    RideCreate,
    RideFilters,
    RideHistory,
    RideHistoryEntry,
    RideStatus,
    TimeRange,
)
from caronas.models.user import User
from caronas.services.feed_service import FeedService
from caronas.services.ride_store import RideStore
from caronas.utils.exceptions import AccountBannedError

logger = logging.getLogger(__name__)

# Departure windows on HH:MM strings, [start, end)
TIME_WINDOWS = {
    TimeRange.MORNING.value: ("00:00", "12:00"),
    TimeRange.AFTERNOON.value: ("12:00", "18:00"),
    TimeRange.EVENING.value: ("18:00", "24:00"),
}


def build_listing_query(filters: RideFilters) -> Dict[str, Any]:
    """
    MongoDB query for the ride search screen.

    HH:MM strings are zero padded, so lexical comparison orders them by time.
    Remaining seats depend on the passenger list and are filtered after the
    query (see `apply_seat_filter`).
    """
    query: Dict[str, Any] = {"status": RideStatus.AVAILABLE.value}

    search = filters.search.strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"origin": pattern},
            {"destination": pattern},
            {"driver_name": pattern},
        ]

    if filters.price_range == PriceRange.FREE:
        query["price"] = 0
    elif filters.price_range == PriceRange.PAID:
        query["price"] = {"$gt": 0}

    if filters.time_range in TIME_WINDOWS:
        start, end = TIME_WINDOWS[filters.time_range]
        query["departure_time"] = {"$gte": start, "$lt": end}

    return query


def apply_seat_filter(rides: List[Ride], min_seats: Optional[int]) -> List[Ride]:
    if not min_seats:
        return rides
    return [r for r in rides if r.remaining_seats >= min_seats]


def summarize_history(user_id: str, rides: List[Ride]) -> RideHistory:
    """Tag each completed ride with the user's role and total the money moved."""
    entries = []
    as_driver = 0
    as_passenger = 0
    collected = 0.0
    paid = 0.0

    for ride in rides:
        if ride.driver_id == user_id:
            as_driver += 1
            collected += ride.price * len(ride.passengers)
            entries.append(RideHistoryEntry(ride=ride, role="driver"))
        elif user_id in ride.passenger_ids():
            as_passenger += 1
            paid += ride.price
            entries.append(RideHistoryEntry(ride=ride, role="passenger"))

    return RideHistory(
        rides=entries,
        total_as_driver=as_driver,
        total_as_passenger=as_passenger,
        amount_collected=round(collected, 2),
        amount_paid=round(paid, 2),
    )


class RideService:
    """
    Ride catalog service.

    Queue mutations go through ReservationService; this service only
    creates rides and reads them.
    """

    def __init__(
        self,
        store: Optional[RideStore] = None,
        feed: Optional[FeedService] = None,
    ):
        self.store = store or RideStore()
        self.feed = feed or FeedService()

    async def publish_ride(self, driver: User, data: RideCreate) -> Ride:
        """Publish a new ride offer with empty queues."""
        if driver.banned:
            raise AccountBannedError()

        ride = Ride(
            ride_id=str(uuid.uuid4()),
            driver_id=driver.user_id,
            driver_name=driver.display_name,
            origin=data.origin.strip(),
            destination=(data.destination or settings.default_destination).strip(),
            departure_time=data.departure_time,
            available_seats=data.available_seats,
            price=data.price,
            car_info=data.car_info,
        )
        await self.store.insert(ride)

        logger.info(
            f"Ride {ride.ride_id} published by {driver.user_id}: "
            f"{ride.origin} -> {ride.destination} at {ride.departure_time}"
        )
        await self.feed.publish_ride(ride)
        return ride

    async def get_ride(self, ride_id: str) -> Ride:
        return await self.store.get(ride_id)

    async def list_available_rides(self, filters: Optional[RideFilters] = None) -> List[Ride]:
        """Open rides matching the search filters, earliest departure first."""
        filters = filters or RideFilters()
        rides = await self.store.find(
            build_listing_query(filters),
            sort=[("departure_time", 1)],
        )
        return apply_seat_filter(rides, filters.min_seats)

    async def list_driver_rides(self, driver_id: str) -> List[Ride]:
        """A driver's open rides, for managing passengers."""
        return await self.store.find(
            {"driver_id": driver_id, "status": RideStatus.AVAILABLE.value},
            sort=[("departure_time", 1)],
        )

    async def get_ride_history(self, user_id: str) -> RideHistory:
        """Completed rides the user drove or rode in, newest first."""
        rides = await self.store.find(
            {
                "status": RideStatus.COMPLETED.value,
                "$or": [
                    {"driver_id": user_id},
                    {"passengers.passenger_id": user_id},
                ],
            },
            sort=[("completed_at", -1)],
        )
        return summarize_history(user_id, rides)
