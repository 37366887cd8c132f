"""
Rides Router

Ride publication, search, seat requests and driver decisions.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from caronas.dependencies import (
    get_completion_service,
    get_current_user,
    get_reservation_service,
    get_ride_service,
)
from caronas.models.rating import RatingRequest
from caronas.models.ride import (
    PassengerInfo,
    PriceRange,
    Ride,
    RideCreate,
    RideFilters,
    RideHistory,
    SeatRequestResult,
    TimeRange,
)
from caronas.models.user import User
from caronas.services.completion_service import CompletionService
from caronas.services.reservation_service import ReservationService
from caronas.services.ride_service import RideService


router = APIRouter()


class SeatRequestBody(BaseModel):
    """Optional contact details sent with a seat request."""
    phone: Optional[str] = Field(None, max_length=20)


class CompletionResponse(BaseModel):
    ride_id: str
    rating_requests: List[RatingRequest]


# =============================================================================
# Catalog
# =============================================================================

@router.post("", response_model=Ride, status_code=status.HTTP_201_CREATED)
async def publish_ride(
    data: RideCreate,
    current_user: User = Depends(get_current_user),
    ride_service: RideService = Depends(get_ride_service),
):
    """Publish a ride offer. The current user is the driver."""
    return await ride_service.publish_ride(current_user, data)


@router.get("", response_model=List[Ride])
async def list_rides(
    search: str = Query("", max_length=100),
    price_range: PriceRange = PriceRange.ALL,
    min_seats: Optional[int] = Query(None, ge=1, le=8),
    time_range: TimeRange = TimeRange.ALL,
    current_user: User = Depends(get_current_user),
    ride_service: RideService = Depends(get_ride_service),
):
    """
    Search open rides.

    - search: origin, destination or driver name (case-insensitive)
    - price_range: free, paid or all
    - min_seats: seats not yet confirmed
    - time_range: morning, afternoon, evening or all
    """
    filters = RideFilters(
        search=search,
        price_range=price_range,
        min_seats=min_seats,
        time_range=time_range,
    )
    return await ride_service.list_available_rides(filters)


@router.get("/mine", response_model=List[Ride])
async def list_my_rides(
    current_user: User = Depends(get_current_user),
    ride_service: RideService = Depends(get_ride_service),
):
    """Open rides driven by the current user."""
    return await ride_service.list_driver_rides(current_user.user_id)


@router.get("/history", response_model=RideHistory)
async def get_history(
    current_user: User = Depends(get_current_user),
    ride_service: RideService = Depends(get_ride_service),
):
    """Completed rides of the current user with totals."""
    return await ride_service.get_ride_history(current_user.user_id)


@router.get("/{ride_id}", response_model=Ride)
async def get_ride(
    ride_id: str,
    current_user: User = Depends(get_current_user),
    ride_service: RideService = Depends(get_ride_service),
):
    return await ride_service.get_ride(ride_id)


@router.delete("/{ride_id}", response_model=Ride)
async def delete_ride(
    ride_id: str,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    """Delete a ride. Driver, moderators and admins only."""
    return await reservations.delete_ride(ride_id, current_user.user_id)


# =============================================================================
# Seat Requests
# =============================================================================

@router.post("/{ride_id}/requests", response_model=SeatRequestResult)
async def request_seat(
    ride_id: str,
    body: Optional[SeatRequestBody] = None,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    """
    Request a seat.

    placement "pending" means the driver will review the request;
    "waiting" means the ride is full and the user joined the waiting list.
    """
    info = PassengerInfo(
        passenger_name=current_user.display_name,
        phone=(body.phone if body else None) or current_user.phone,
    )
    return await reservations.request_seat(ride_id, current_user.user_id, info)


@router.delete("/{ride_id}/requests/me", response_model=Ride)
async def withdraw_request(
    ride_id: str,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    """Leave the pending requests or the waiting list."""
    return await reservations.withdraw_request(ride_id, current_user.user_id)


@router.post("/{ride_id}/requests/{passenger_id}/approve", response_model=Ride)
async def approve_request(
    ride_id: str,
    passenger_id: str,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    return await reservations.approve_request(ride_id, current_user.user_id, passenger_id)


@router.post("/{ride_id}/requests/{passenger_id}/reject", response_model=Ride)
async def reject_request(
    ride_id: str,
    passenger_id: str,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    return await reservations.reject_request(ride_id, current_user.user_id, passenger_id)


@router.delete("/{ride_id}/passengers/{passenger_id}", response_model=Ride)
async def cancel_seat(
    ride_id: str,
    passenger_id: str,
    current_user: User = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservation_service),
):
    """
    Cancel a confirmed seat.

    Passengers cancel their own seat; the driver and moderators can remove
    any passenger. The first user on the waiting list moves to pending.
    """
    return await reservations.cancel_confirmed_seat(
        ride_id, passenger_id, acting_user_id=current_user.user_id
    )


@router.post("/{ride_id}/complete", response_model=CompletionResponse)
async def complete_ride(
    ride_id: str,
    current_user: User = Depends(get_current_user),
    completion: CompletionService = Depends(get_completion_service),
):
    """Mark the ride as done and open the rating window for everyone in it."""
    requests = await completion.complete_ride(ride_id, current_user.user_id)
    return CompletionResponse(ride_id=ride_id, rating_requests=requests)
