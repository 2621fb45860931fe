"""Custom exceptions for ride management."""

from common.exceptions import (
    DomainError,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    TransientConflictError,
)


class RideNotFoundError(NotFoundError):
    """Ride request not found."""


class PassengerNotFoundError(NotFoundError):
    """Passenger not found in this ride."""


class UserNotFoundError(NotFoundError):
    """User not found."""


class InvalidRideStateError(DomainError):
    """The ride's current status does not allow this operation."""
    error_code = "invalid_state"


class CapacityExceededError(DomainError):
    """Ride is already full."""
    error_code = "capacity_exceeded"


class DuplicateParticipantError(DomainError):
    """User already joined this ride."""
    error_code = "duplicate_participant"


class SelfReferenceError(DomainError):
    """The ride owner cannot join or be removed from their own ride."""
    error_code = "self_reference"


__all__ = [
    "DomainError",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "TransientConflictError",
    "RideNotFoundError",
    "PassengerNotFoundError",
    "UserNotFoundError",
    "InvalidRideStateError",
    "CapacityExceededError",
    "DuplicateParticipantError",
    "SelfReferenceError",
]
