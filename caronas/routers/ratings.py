"""
Ratings Router

API endpoints for rating requests, submissions and profile summaries.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from caronas.dependencies import get_current_user, get_rating_service
from caronas.models.rating import (
    ParticipantRole,
    PendingRatingList,
    Rating,
    RatingCreate,
    ReceivedRating,
    UserRatingAggregate,
)
from caronas.models.user import User
from caronas.services.rating_service import RatingService


router = APIRouter()


@router.get("/pending", response_model=PendingRatingList)
async def get_pending_ratings(
    current_user: User = Depends(get_current_user),
    rating_service: RatingService = Depends(get_rating_service),
):
    """Rating requests the current user still has to answer."""
    return await rating_service.list_pending_requests(current_user.user_id)


@router.post("/{request_id}", response_model=Rating)
async def submit_rating(
    request_id: str,
    data: RatingCreate,
    current_user: User = Depends(get_current_user),
    rating_service: RatingService = Depends(get_rating_service),
):
    """
    Answer a rating request.

    - Rating must be 1-5 stars, categories too
    - Cleanliness can only be rated for drivers
    - Each request can be answered once, before it expires
    """
    return await rating_service.submit_rating(request_id, data, current_user.user_id)


@router.get("/users/{user_id}", response_model=UserRatingAggregate)
async def get_user_ratings(
    user_id: str,
    current_user: User = Depends(get_current_user),
    rating_service: RatingService = Depends(get_rating_service),
):
    """A user's averages as driver and as passenger."""
    return await rating_service.get_user_ratings(user_id)


@router.get("/users/{user_id}/reviews", response_model=List[ReceivedRating])
async def get_user_reviews(
    user_id: str,
    role: Optional[ParticipantRole] = None,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    rating_service: RatingService = Depends(get_rating_service),
):
    return await rating_service.list_received_ratings(
        user_id, role.value if role else None, limit
    )
