"""
Reservation Rules

Pure seat-queue transitions applied by the reservation engine. Each function
takes the current Ride, validates the operation and returns an updated copy;
the input is never mutated, so a transition can be recomputed on a fresh
snapshot after a lost commit race.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from caronas.models.ride import (
    ConfirmedPassenger,
    PassengerInfo,
    PendingRequest,
    Ride,
    RideStatus,
    SeatPlacement,
    WaitingEntry,
)
from caronas.utils.exceptions import (
    DuplicateRequestError,
    NotDriverError,
    RequestNotFoundError,
    RideNotAvailableError,
    SeatsFullError,
    SelfBookingError,
)


def _require_available(ride: Ride) -> None:
    if ride.status != RideStatus.AVAILABLE:
        raise RideNotAvailableError(f"Ride is {ride.status}.")


def _require_driver(ride: Ride, driver_id: str) -> None:
    if driver_id != ride.driver_id:
        raise NotDriverError()


def _index_of(entries: list, passenger_id: str) -> Optional[int]:
    for i, entry in enumerate(entries):
        if entry.passenger_id == passenger_id:
            return i
    return None


def membership(ride: Ride, passenger_id: str) -> Optional[str]:
    """Return which queue holds the passenger: passengers, pending, waiting or None."""
    if passenger_id in ride.passenger_ids():
        return "passengers"
    if passenger_id in ride.pending_ids():
        return "pending"
    if passenger_id in ride.waiting_ids():
        return "waiting"
    return None


def has_pending_capacity(ride: Ride) -> bool:
    """True while pending + confirmed are below the ride's seats."""
    return len(ride.pending_requests) + len(ride.passengers) < ride.available_seats


def _promote_waiting_head(ride: Ride) -> Optional[str]:
    """
    Move the earliest waiting entry into pending_requests.

    Earliest requested_at wins; ties keep insertion order. The remainder of
    the waiting list keeps its order.
    """
    if not ride.waiting_list or not has_pending_capacity(ride):
        return None

    head = min(
        range(len(ride.waiting_list)),
        key=lambda i: (ride.waiting_list[i].requested_at, i),
    )
    entry = ride.waiting_list.pop(head)
    ride.pending_requests.append(
        PendingRequest(
            passenger_id=entry.passenger_id,
            passenger_name=entry.passenger_name,
            phone=entry.phone,
            requested_at=entry.requested_at,
        )
    )
    return entry.passenger_id


# =============================================================================
# Transitions
# =============================================================================

def request_seat(
    ride: Ride, passenger_id: str, info: PassengerInfo, now: datetime
) -> Tuple[Ride, SeatPlacement, int]:
    """
    Place a seat request in pending_requests, or in waiting_list when
    pending + confirmed already fill the seats.

    Returns (updated ride, placement, 1-based position).
    """
    if passenger_id == ride.driver_id:
        raise SelfBookingError()
    if membership(ride, passenger_id) is not None:
        raise DuplicateRequestError()
    _require_available(ride)

    updated = ride.model_copy(deep=True)
    if has_pending_capacity(updated):
        updated.pending_requests.append(
            PendingRequest(
                passenger_id=passenger_id,
                passenger_name=info.passenger_name,
                phone=info.phone,
                requested_at=now,
            )
        )
        return updated, SeatPlacement.PENDING, len(updated.pending_requests)

    updated.waiting_list.append(
        WaitingEntry(
            passenger_id=passenger_id,
            passenger_name=info.passenger_name,
            phone=info.phone,
            requested_at=now,
        )
    )
    return updated, SeatPlacement.WAITING, len(updated.waiting_list)


def approve_request(
    ride: Ride, driver_id: str, passenger_id: str, now: datetime
) -> Ride:
    """Move a pending request into the confirmed passengers."""
    _require_available(ride)
    _require_driver(ride, driver_id)

    idx = _index_of(ride.pending_requests, passenger_id)
    if idx is None:
        raise RequestNotFoundError("No pending request from this passenger.")
    if len(ride.passengers) >= ride.available_seats:
        raise SeatsFullError()

    updated = ride.model_copy(deep=True)
    request = updated.pending_requests.pop(idx)
    updated.passengers.append(
        ConfirmedPassenger(
            passenger_id=request.passenger_id,
            passenger_name=request.passenger_name,
            confirmed_at=now,
        )
    )
    return updated


def reject_request(ride: Ride, driver_id: str, passenger_id: str) -> Ride:
    """Drop a pending request. The waiting list is left alone."""
    _require_available(ride)
    _require_driver(ride, driver_id)

    idx = _index_of(ride.pending_requests, passenger_id)
    if idx is None:
        raise RequestNotFoundError("No pending request from this passenger.")

    updated = ride.model_copy(deep=True)
    updated.pending_requests.pop(idx)
    return updated


def cancel_confirmed_seat(ride: Ride, passenger_id: str) -> Tuple[Ride, Optional[str]]:
    """
    Remove a confirmed passenger and promote the waiting-list head into
    pending_requests. The promoted passenger still needs driver approval.

    Returns (updated ride, promoted passenger id or None).
    """
    _require_available(ride)

    idx = _index_of(ride.passengers, passenger_id)
    if idx is None:
        raise RequestNotFoundError("Passenger is not confirmed in this ride.")

    updated = ride.model_copy(deep=True)
    updated.passengers.pop(idx)
    promoted = _promote_waiting_head(updated)
    return updated, promoted


def withdraw_request(ride: Ride, passenger_id: str) -> Tuple[Ride, Optional[str]]:
    """
    Let a passenger leave pending_requests or waiting_list.

    Leaving pending_requests frees queue capacity, so the waiting-list head
    is promoted the same way a cancellation does.
    """
    _require_available(ride)

    updated = ride.model_copy(deep=True)
    idx = _index_of(updated.pending_requests, passenger_id)
    if idx is not None:
        updated.pending_requests.pop(idx)
        return updated, _promote_waiting_head(updated)

    idx = _index_of(updated.waiting_list, passenger_id)
    if idx is not None:
        updated.waiting_list.pop(idx)
        return updated, None

    raise RequestNotFoundError("No pending or waiting request from this passenger.")


def complete(ride: Ride, driver_id: str, now: datetime) -> Ride:
    """Freeze the ride. Further reservation operations fail."""
    _require_available(ride)
    _require_driver(ride, driver_id)

    updated = ride.model_copy(deep=True)
    updated.status = RideStatus.COMPLETED.value
    updated.completed_at = now
    return updated


def delete(ride: Ride, acting_user_id: str, now: datetime) -> Ride:
    """Mark the ride deleted. Permission is checked by the caller."""
    _require_available(ride)

    updated = ride.model_copy(deep=True)
    updated.status = RideStatus.DELETED.value
    updated.deleted_at = now
    updated.deleted_by = acting_user_id
    return updated


# =============================================================================
# Invariants
# =============================================================================

def invariant_violations(ride: Ride) -> List[str]:
    """List every broken seat/queue invariant. Empty means the ride is consistent."""
    problems = []

    if len(ride.passengers) > ride.available_seats:
        problems.append("more confirmed passengers than seats")

    seen = set()
    for pid in ride.passenger_ids() + ride.pending_ids() + ride.waiting_ids():
        if pid in seen:
            problems.append(f"passenger {pid} appears more than once")
        seen.add(pid)

    if ride.driver_id in seen:
        problems.append("driver appears in their own ride's queues")

    return problems
