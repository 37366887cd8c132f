"""
Ride Model

Defines the ride offer schema for MongoDB persistence, including the
seat queues mutated by the reservation engine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class RideStatus(str, Enum):
    """Status of a ride offer."""

    AVAILABLE = "available"  # Open for seat requests
    COMPLETED = "completed"  # Frozen, rating requests emitted
    DELETED = "deleted"  # Removed by driver or moderator


class SeatPlacement(str, Enum):
    """Where a seat request landed."""

    PENDING = "pending"
    WAITING = "waiting"


class PriceRange(str, Enum):
    ALL = "all"
    FREE = "free"
    PAID = "paid"


class TimeRange(str, Enum):
    ALL = "all"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class CarInfo(BaseModel):
    """Vehicle shown to passengers."""

    model: Optional[str] = Field(None, max_length=60)
    color: Optional[str] = Field(None, max_length=30)
    license_plate: Optional[str] = Field(None, max_length=10)


class ConfirmedPassenger(BaseModel):
    passenger_id: str
    passenger_name: str
    confirmed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PendingRequest(BaseModel):
    passenger_id: str
    passenger_name: str
    phone: Optional[str] = None
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WaitingEntry(BaseModel):
    passenger_id: str
    passenger_name: str
    phone: Optional[str] = None
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Ride(BaseModel):
    """
    Ride offer model for MongoDB.

    Fields:
    - ride_id: Unique UUID for the ride
    - driver_id: Identity provider uid of the driver
    - origin / destination: Free-text locations
    - departure_time: HH:MM
    - available_seats: Seat capacity offered by the driver (1-8)
    - price: Price per seat, 0 means free
    - passengers: Confirmed passengers, never more than available_seats
    - pending_requests: Requests awaiting the driver's decision
    - waiting_list: FIFO overflow once pending + confirmed fill the seats
    - version: Incremented on every committed mutation
    """

    ride_id: str = Field(..., description="Unique ride ID")
    driver_id: str = Field(..., description="Driver user ID")
    driver_name: str = Field(..., description="Driver display name")
    origin: str = Field(..., min_length=1, max_length=200)
    destination: str = Field(..., min_length=1, max_length=200)
    departure_time: str = Field(..., pattern=HHMM_PATTERN)
    available_seats: int = Field(..., ge=1, le=8)
    price: float = Field(default=0.0, ge=0)
    car_info: Optional[CarInfo] = None
    status: RideStatus = Field(default=RideStatus.AVAILABLE)
    passengers: List[ConfirmedPassenger] = Field(default_factory=list)
    pending_requests: List[PendingRequest] = Field(default_factory=list)
    waiting_list: List[WaitingEntry] = Field(default_factory=list)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None

    class Config:
        use_enum_values = True

    @property
    def remaining_seats(self) -> int:
        return self.available_seats - len(self.passengers)

    def passenger_ids(self) -> List[str]:
        return [p.passenger_id for p in self.passengers]

    def pending_ids(self) -> List[str]:
        return [r.passenger_id for r in self.pending_requests]

    def waiting_ids(self) -> List[str]:
        return [w.passenger_id for w in self.waiting_list]


class RideCreate(BaseModel):
    """Data required to publish a ride."""

    origin: str = Field(..., min_length=1, max_length=200)
    destination: Optional[str] = Field(None, min_length=1, max_length=200)
    departure_time: str = Field(..., pattern=HHMM_PATTERN)
    available_seats: int = Field(..., ge=1, le=8)
    price: float = Field(default=0.0, ge=0)
    car_info: Optional[CarInfo] = None


class PassengerInfo(BaseModel):
    """Passenger details copied into the ride's queues."""

    passenger_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)


class SeatRequestResult(BaseModel):
    """Outcome of a seat request. Joining the waiting list is a success."""

    ride_id: str
    placement: SeatPlacement
    position: int = Field(..., ge=1, description="1-based position in the queue")

    class Config:
        use_enum_values = True


class RideFilters(BaseModel):
    """Filters offered by the ride search screen."""

    search: str = ""
    price_range: PriceRange = PriceRange.ALL
    min_seats: Optional[int] = Field(None, ge=1, le=8)
    time_range: TimeRange = TimeRange.ALL

    class Config:
        use_enum_values = True


class RideHistoryEntry(BaseModel):
    """A completed ride seen from one participant."""

    ride: Ride
    role: str  # driver or passenger


class RideHistory(BaseModel):
    """Completed rides of a user plus totals."""

    rides: List[RideHistoryEntry]
    total_as_driver: int
    total_as_passenger: int
    amount_collected: float
    amount_paid: float
