"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Creating and listing ride requests
    - Joining / accepting seats on a ride
    - Removing, leaving and rejecting passengers
    - Completing, cancelling and deleting rides
"""

from .ride_lifecycle import RideLifecycleCoordinator, RideResult
from .store import RideRequestStore, default_time_window
from .filters import RideFilter

from .exceptions import (
    DomainError,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    TransientConflictError,
    RideNotFoundError,
    PassengerNotFoundError,
    UserNotFoundError,
    InvalidRideStateError,
    CapacityExceededError,
    DuplicateParticipantError,
    SelfReferenceError,
)

__all__ = [
    # Lifecycle
    "RideLifecycleCoordinator",
    "RideResult",
    "RideRequestStore",
    "RideFilter",
    "default_time_window",
    # Exceptions
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
