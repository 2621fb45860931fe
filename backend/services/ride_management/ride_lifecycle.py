"""
Core ride lifecycle operations.

This module contains the business logic for pooled rides: seat accounting,
the status state machine, conversation provisioning and notification
dispatch. Views call it; it never touches the HTTP layer.

State machine:
    pending  -> accepted   (last seat taken)
    accepted -> pending    (a seat is released)
    accepted -> completed  (owner completes)
    pending | accepted -> cancelled (owner cancels)
completed and cancelled are terminal.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from django.contrib.auth import get_user_model
from django.db import transaction

from conversations.directory import ConversationDirectory
from notifications.sinks import NotificationSink, get_notification_sink
from rides.models import RideRequest, RideParticipant
from .exceptions import (
    CapacityExceededError,
    DuplicateParticipantError,
    ForbiddenError,
    InvalidRideStateError,
    PassengerNotFoundError,
    SelfReferenceError,
    UserNotFoundError,
)
from .filters import RideFilter
from .store import RideRequestStore

User = get_user_model()
logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[RideRequest] = None
    message: str = ""
    conversation_id: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None


class RideLifecycleCoordinator:
    """
    Runs every ride transition inside one locked unit of work.

    Notifications are handed to the sink only after the transaction
    commits; a failing sink is logged and never fails the operation.
    """

    def __init__(
        self,
        store: Optional[RideRequestStore] = None,
        directory: Optional[ConversationDirectory] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.store = store or RideRequestStore()
        self.directory = directory or ConversationDirectory()
        self.sink = sink or get_notification_sink()

    # ===================== Creation & queries =====================

    def create_ride(self, owner, **fields) -> RideResult:
        """
        Create a pending ride owned by ``owner``.

        Args:
            owner: User model instance
            fields: origin, destination, total_fare, vehicle_type,
                total_passengers, ride_time, note, preferences

        Raises:
            ValidationError: If any field is malformed
        """
        ride = self.store.create(owner, **fields)
        logger.info("User %s created ride %s (%s seats)", owner.id, ride.id, ride.total_passengers)
        return RideResult(success=True, ride=ride, message="Ride request created successfully")

    def get_ride(self, ride_id) -> RideRequest:
        return self.store.get(ride_id)

    def list_rides(self, ride_filter: Optional[RideFilter] = None):
        return self.store.query(ride_filter or RideFilter())

    def created_rides(self, user_id):
        return self.store.created_by(user_id)

    def joined_rides(self, user_id):
        return self.store.joined_by(user_id)

    # ===================== Seat operations =====================

    def join_ride(self, ride_id, user_id) -> RideResult:
        """
        Take a seat on a ride.

        Returns:
            RideResult with the ride and the id of the joiner's conversation
            with the owner

        Raises:
            RideNotFoundError, InvalidRideStateError, SelfReferenceError,
            DuplicateParticipantError, CapacityExceededError
        """
        ride, conversation_id = self._add_participant(ride_id, int(user_id))
        return RideResult(
            success=True,
            ride=ride,
            message="Successfully joined the ride",
            conversation_id=conversation_id,
        )

    def accept_direct(self, ride_id, user_id, accepted_by=None) -> RideResult:
        """
        Seat ``user_id`` on a ride on their behalf.

        Same checks and effects as join_ride; the joining user must exist.
        """
        user_id = int(user_id)
        if not User.objects.filter(id=user_id).exists():
            raise UserNotFoundError("User not found")

        ride, conversation_id = self._add_participant(ride_id, user_id)
        logger.info("User %s seated by %s on ride %s", user_id, accepted_by, ride.id)
        return RideResult(
            success=True,
            ride=ride,
            message="Ride accepted successfully",
            conversation_id=conversation_id,
        )

    def remove_passenger(self, ride_id, owner_id, passenger_id) -> RideResult:
        """
        Owner removes a passenger, freeing their seat.

        Raises:
            RideNotFoundError, ForbiddenError, SelfReferenceError,
            InvalidRideStateError, PassengerNotFoundError
        """
        owner_id = int(owner_id)
        passenger_id = int(passenger_id)

        with self.store.locked(ride_id) as ride:
            if ride.owner_id != owner_id:
                raise ForbiddenError("Only the ride owner can remove passengers")
            if passenger_id == ride.owner_id:
                raise SelfReferenceError("Ride creator cannot be removed as a passenger")
            if ride.is_terminal:
                raise InvalidRideStateError(f"Cannot remove passengers - ride is already {ride.status}")

            self._release_seat(ride, passenger_id)
            self._notify(
                [passenger_id],
                owner_id,
                "ride_removal",
                f"You have been removed from the ride to {ride.destination}",
            )

        logger.info("Owner %s removed passenger %s from ride %s", owner_id, passenger_id, ride.id)
        return RideResult(success=True, ride=ride, message="Passenger removed successfully")

    def unjoin_ride(self, ride_id, user_id) -> RideResult:
        """A participant leaves a ride voluntarily."""
        user_id = int(user_id)

        with self.store.locked(ride_id) as ride:
            self._check_can_leave(ride, user_id)
            self._release_seat(ride, user_id)
            self._notify(
                [ride.owner_id],
                user_id,
                "passenger_left",
                f"A passenger has left your ride to {ride.destination}",
            )

        logger.info("User %s left ride %s", user_id, ride.id)
        return RideResult(success=True, ride=ride, message="Left the ride successfully")

    def reject_ride(self, ride_id, user_id) -> RideResult:
        """A participant rejects a ride they had joined; everyone else is told."""
        user_id = int(user_id)

        with self.store.locked(ride_id) as ride:
            self._check_can_leave(ride, user_id)
            self._release_seat(ride, user_id)
            remaining = list(ride.memberships.values_list("user_id", flat=True))
            self._notify(
                [ride.owner_id, *remaining],
                user_id,
                "ride_rejected",
                f"A participant has rejected the ride to {ride.destination}",
            )

        logger.info("User %s rejected ride %s", user_id, ride.id)
        return RideResult(success=True, ride=ride, message="Rejected the ride successfully")

    # ===================== Owner transitions =====================

    def cancel_ride(self, ride_id, owner_id) -> RideResult:
        """
        Cancel a ride. Allowed from any non-terminal status.

        Raises:
            RideNotFoundError, ForbiddenError, InvalidRideStateError
        """
        owner_id = int(owner_id)

        with self.store.locked(ride_id) as ride:
            if ride.owner_id != owner_id:
                raise ForbiddenError("Only the ride owner can cancel this ride")
            if ride.is_terminal:
                raise InvalidRideStateError(f"Cannot cancel - ride is already {ride.status}")

            ride.status = RideRequest.STATUS_CANCELLED
            ride.save(update_fields=["status", "updated_at"])

            self._notify(
                self._participant_ids(ride),
                owner_id,
                "ride_cancelled",
                f"Your ride to {ride.destination} has been cancelled",
            )

        logger.info("Ride %s cancelled by owner %s", ride.id, owner_id)
        return RideResult(success=True, ride=ride, message="Ride cancelled successfully")

    def complete_ride(self, ride_id, owner_id) -> RideResult:
        """
        Mark an accepted ride as completed.

        Raises:
            RideNotFoundError, ForbiddenError, InvalidRideStateError
        """
        owner_id = int(owner_id)

        with self.store.locked(ride_id) as ride:
            if ride.owner_id != owner_id:
                raise ForbiddenError("Only the ride owner can mark this ride as completed")
            if ride.status != RideRequest.STATUS_ACCEPTED:
                raise InvalidRideStateError("Only accepted rides can be marked as completed")

            ride.status = RideRequest.STATUS_COMPLETED
            ride.save(update_fields=["status", "updated_at"])

            self._notify(
                self._participant_ids(ride),
                owner_id,
                "ride_completed",
                f"Your ride to {ride.destination} has been marked as completed",
            )

        logger.info("Ride %s completed by owner %s", ride.id, owner_id)
        return RideResult(success=True, ride=ride, message="Ride marked as completed")

    def delete_ride(self, ride_id, requested_by=None) -> RideResult:
        """
        Delete a ride with the conversations it provisioned and their
        messages in one transaction.

        When ``requested_by`` is given it must be the owner's id.
        """
        owner_id = int(requested_by) if requested_by is not None else None
        self.store.delete(ride_id, owner_id=owner_id)
        return RideResult(success=True, message="Ride and conversation deleted successfully")

    # ===================== Helper Functions =====================

    def _add_participant(self, ride_id, user_id: int):
        with self.store.locked(ride_id) as ride:
            if ride.is_terminal:
                raise InvalidRideStateError(f"Cannot join - ride is already {ride.status}")
            if ride.owner_id == user_id:
                raise SelfReferenceError("You cannot join your own ride")
            if ride.memberships.filter(user_id=user_id).exists():
                raise DuplicateParticipantError("User already joined this ride")
            if ride.total_accepted >= ride.total_passengers:
                raise CapacityExceededError("Ride is already full")
            if ride.status != RideRequest.STATUS_PENDING:
                raise InvalidRideStateError(f"Cannot join - ride is {ride.status}")

            RideParticipant.objects.create(ride=ride, user_id=user_id)
            ride.total_accepted += 1

            conversation = self.directory.find_or_create([ride.owner_id, user_id])
            ride.linked_conversations.add(conversation)
            if ride.conversation_id is None:
                ride.conversation = conversation

            if ride.total_accepted >= ride.total_passengers:
                ride.status = RideRequest.STATUS_ACCEPTED

            ride.save(update_fields=["total_accepted", "conversation", "status", "updated_at"])

            self._notify(
                [ride.owner_id],
                user_id,
                "ride_joined",
                f"A passenger joined your ride to {ride.destination} "
                f"({ride.total_accepted}/{ride.total_passengers} seats taken)",
            )

        logger.info(
            "User %s joined ride %s (%s/%s, %s)",
            user_id, ride.id, ride.total_accepted, ride.total_passengers, ride.status,
        )
        return ride, conversation.id

    def _check_can_leave(self, ride: RideRequest, user_id: int):
        if ride.owner_id == user_id:
            raise SelfReferenceError("The ride owner cannot leave their own ride")
        if ride.is_terminal:
            raise InvalidRideStateError(f"Cannot leave - ride is already {ride.status}")

    def _release_seat(self, ride: RideRequest, user_id: int):
        """Drop one participant and demote a full ride back to pending."""
        deleted, _ = ride.memberships.filter(user_id=user_id).delete()
        if not deleted:
            raise PassengerNotFoundError("Passenger not found in this ride")

        ride.total_accepted = max(0, ride.total_accepted - 1)
        if ride.status == RideRequest.STATUS_ACCEPTED and ride.total_accepted < ride.total_passengers:
            ride.status = RideRequest.STATUS_PENDING

        ride.save(update_fields=["total_accepted", "status", "updated_at"])

    def _participant_ids(self, ride: RideRequest):
        return list(ride.memberships.values_list("user_id", flat=True))

    def _notify(self, recipient_ids: Iterable[int], sender_id: Optional[int], notification_type: str, message: str):
        """Queue notifications to go out once the current transaction commits."""
        recipients = [rid for rid in dict.fromkeys(recipient_ids) if rid != sender_id]
        if not recipients:
            return

        transaction.on_commit(
            lambda: self._emit_all(recipients, sender_id, notification_type, message)
        )

    def _emit_all(self, recipient_ids, sender_id, notification_type, message):
        for recipient_id in recipient_ids:
            try:
                self.sink.emit(recipient_id, sender_id, notification_type, message)
            except Exception:
                logger.exception(
                    "Failed to emit %s notification to user %s", notification_type, recipient_id
                )
