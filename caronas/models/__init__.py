"""Caronas Models Package"""

from caronas.models.user import User, UserUpdate, UserRole, RoleUpdate, BanUserRequest
from caronas.models.admin_log import AdminLog, AdminAction
from caronas.models.ride import (
    Ride,
    RideCreate,
    RideStatus,
    RideFilters,
    CarInfo,
    ConfirmedPassenger,
    PendingRequest,
    WaitingEntry,
    PassengerInfo,
    SeatPlacement,
    SeatRequestResult,
)
from caronas.models.rating import (
    Rating,
    RatingCreate,
    RatingRequest,
    RatingRequestStatus,
    ParticipantRole,
    UserRatingAggregate,
    RoleRatingSummary,
)

__all__ = [
    "User", "UserUpdate", "UserRole", "RoleUpdate", "BanUserRequest",
    "AdminLog", "AdminAction",
    "Ride", "RideCreate", "RideStatus", "RideFilters", "CarInfo",
    "ConfirmedPassenger", "PendingRequest", "WaitingEntry", "PassengerInfo",
    "SeatPlacement", "SeatRequestResult",
    "Rating", "RatingCreate", "RatingRequest", "RatingRequestStatus",
    "ParticipantRole", "UserRatingAggregate", "RoleRatingSummary",
]
