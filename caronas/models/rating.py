"""Rating Models - Rating requests, submitted ratings and per-user aggregates."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, Field


class ParticipantRole(str, Enum):
    """Role a user played in a ride."""
    DRIVER = "driver"
    PASSENGER = "passenger"


class RatingRequestStatus(str, Enum):
    """Status of a rating request."""
    PENDING = "pending"  # Waiting for the rater
    SUBMITTED = "submitted"  # Rating written, terminal
    EXPIRED = "expired"  # Window closed, terminal


class RatingCategory(str, Enum):
    PUNCTUALITY = "punctuality"
    COMMUNICATION = "communication"
    CLEANLINESS = "cleanliness"  # Only when rating a driver
    BEHAVIOR = "behavior"


CategoryScore = Annotated[int, Field(ge=1, le=5)]


class RideSnapshot(BaseModel):
    """Ride details frozen into each rating request."""
    origin: str
    destination: str
    departure_time: str


class RatingCreate(BaseModel):
    """Data required to submit a rating."""
    rating: int = Field(..., ge=1, le=5)
    categories: Dict[RatingCategory, CategoryScore] = Field(default_factory=dict)
    comment: Optional[str] = Field(None, max_length=500)
    is_anonymous: bool = False

    class Config:
        use_enum_values = True


class Rating(BaseModel):
    """
    Immutable rating written exactly once per rating request.
    """
    rating_id: str = Field(..., description="Unique rating ID")
    request_id: str
    ride_id: str
    from_user_id: str
    from_user_role: ParticipantRole
    to_user_id: str
    to_user_role: ParticipantRole
    rating: int = Field(..., ge=1, le=5)
    categories: Dict[str, int] = Field(default_factory=dict)
    comment: Optional[str] = Field(None, max_length=500)
    is_anonymous: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        use_enum_values = True


class RatingRequest(BaseModel):
    """
    Request for one participant to rate another after a completed ride.

    Created in pairs (driver->passenger, passenger->driver) for every
    confirmed passenger. The request_id is derived from the ride and the
    two users, so re-running the trigger never creates duplicates.

    Submitting claims the request and stores the rating in `submission`;
    `recorded_at` is set once the rating and the aggregate are written.
    A claimed request without `recorded_at` is resumed on the next submit.
    """
    request_id: str = Field(..., description="Deterministic request ID")
    ride_id: str
    from_user_id: str
    from_user_role: ParticipantRole
    to_user_id: str
    to_user_role: ParticipantRole
    to_user_name: Optional[str] = None
    ride_info: RideSnapshot
    status: RatingRequestStatus = Field(default=RatingRequestStatus.PENDING)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    submitted_at: Optional[datetime] = None
    submission: Optional[Rating] = None
    recorded_at: Optional[datetime] = None

    class Config:
        use_enum_values = True


class ReceivedRating(BaseModel):
    """Rating as shown on a profile. The rater is hidden when anonymous."""
    rating: int
    categories: Dict[str, int]
    comment: Optional[str]
    from_user_id: Optional[str]
    from_user_role: str
    created_at: datetime


class RoleRatingSummary(BaseModel):
    """Running mean of the ratings a user received in one role."""
    count: int = 0
    average: float = 0.0
    breakdown: Dict[str, float] = Field(default_factory=dict)
    badge: Optional[str] = None


class UserRatingAggregate(BaseModel):
    user_id: str
    as_driver: RoleRatingSummary = Field(default_factory=RoleRatingSummary)
    as_passenger: RoleRatingSummary = Field(default_factory=RoleRatingSummary)


class PendingRatingList(BaseModel):
    requests: List[RatingRequest]
    count: int
