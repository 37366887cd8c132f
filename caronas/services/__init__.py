"""Caronas Services Package"""

from caronas.services.auth_service import AuthService
from caronas.services.audit_service import AuditService
from caronas.services.user_service import UserService
from caronas.services.permission_service import PermissionService
from caronas.services.ride_store import RideStore
from caronas.services.ride_service import RideService
from caronas.services.reservation_service import ReservationService
from caronas.services.completion_service import CompletionService
from caronas.services.rating_service import RatingService
from caronas.services.feed_service import FeedService

__all__ = [
    "AuthService",
    "AuditService",
    "UserService",
    "PermissionService",
    "RideStore",
    "RideService",
    "ReservationService",
    "CompletionService",
    "RatingService",
    "FeedService",
]
