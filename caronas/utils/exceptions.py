"""
Domain Exceptions

Every engine operation returns a result or raises exactly one of these.
Each carries a machine-readable code and the HTTP status the API maps it to.
"""

from typing import Optional


class CaronasError(Exception):
    """Base class for all domain errors."""

    code = "caronas_error"
    status_code = 400
    retryable = False
    default_message = "Operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


# =============================================================================
# Reservation Errors
# =============================================================================

class SelfBookingError(CaronasError):
    """Raised when a driver requests a seat in their own ride."""
    code = "self_booking"
    status_code = 400
    default_message = "You cannot request a seat in your own ride."


class DuplicateRequestError(CaronasError):
    """Raised when the passenger is already confirmed, pending or waiting."""
    code = "duplicate_request"
    status_code = 409
    default_message = "You have already requested a seat in this ride."


class RideNotAvailableError(CaronasError):
    """Raised when the ride is completed, deleted or otherwise closed."""
    code = "ride_not_available"
    status_code = 409
    default_message = "This ride is no longer available."


class RideNotFoundError(RideNotAvailableError):
    """Raised when no ride exists with the given id."""
    code = "ride_not_found"
    status_code = 404
    default_message = "Ride not found."


class NotDriverError(CaronasError):
    """Raised when a driver-only operation is attempted by someone else."""
    code = "not_driver"
    status_code = 403
    default_message = "Only the driver of this ride can do that."


class RequestNotFoundError(CaronasError):
    """Raised when a seat request or rating request does not exist."""
    code = "request_not_found"
    status_code = 404
    default_message = "Request not found."


class SeatsFullError(CaronasError):
    """Raised when approving would exceed the ride's seats."""
    code = "seats_full"
    status_code = 409
    default_message = "All seats in this ride are already confirmed."


class PermissionDeniedError(CaronasError):
    """Raised when the acting user lacks the required privilege."""
    code = "permission_denied"
    status_code = 403
    default_message = "You do not have permission to do that."


# =============================================================================
# User Errors
# =============================================================================

class UserNotFoundError(CaronasError):
    """Raised when no user exists with the given id."""
    code = "user_not_found"
    status_code = 404
    default_message = "User not found."


class AccountBannedError(PermissionDeniedError):
    """Raised when a banned user tries to publish a ride or request a seat."""
    code = "account_banned"
    status_code = 403
    default_message = "Your account has been banned."



# =============================================================================
# Rating Errors
# =============================================================================

class AlreadySubmittedError(CaronasError):
    """Raised when a rating request is no longer pending."""
    code = "already_submitted"
    status_code = 409
    default_message = "This rating has already been submitted."


class ExpiredError(CaronasError):
    """Raised when a rating request passed its expiry."""
    code = "expired"
    status_code = 410
    default_message = "The rating window for this ride has closed."


class InvalidRatingError(CaronasError):
    """Raised when a rating payload breaks a domain rule."""
    code = "invalid_rating"
    status_code = 422
    default_message = "Invalid rating."


# =============================================================================
# Transient Errors
# =============================================================================

class TransientError(CaronasError):
    """Errors the caller may retry with backoff."""
    retryable = True


class ConflictError(TransientError):
    """Raised when a concurrent commit changed the record first."""
    code = "conflict"
    status_code = 409
    default_message = "The ride changed while your request was processed. Please try again."


class StoreUnavailableError(TransientError):
    """Raised when the backing store cannot be reached."""
    code = "store_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."
