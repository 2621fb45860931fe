"""
Persistence access for ride requests.

All writes to an existing ride go through ``RideRequestStore.locked``, which
holds the ride row lock for the whole read-modify-write so concurrent
operations on the same ride run one after another.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Iterator, Optional

from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import Min, Q
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from rides.models import RideRequest, RidePreference
from .exceptions import ForbiddenError, RideNotFoundError, TransientConflictError, ValidationError
from .filters import ALL_STATUSES, SORT_FIELDS, RideFilter

logger = logging.getLogger(__name__)

# lock_not_available, deadlock_detected, serialization_failure
CONTENTION_SQLSTATES = {"55P03", "40P01", "40001"}


def _is_contention(exc: OperationalError) -> bool:
    cause = exc.__cause__
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate in CONTENTION_SQLSTATES:
        return True
    return "database is locked" in str(exc).lower()


def _parse_ride_time(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = parse_datetime(value)
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"Invalid ride time: {value!r}")
    else:
        raise ValidationError("Ride time is required")

    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _day_bounds(day):
    start = timezone.make_aware(datetime.combine(day, time.min))
    end = timezone.make_aware(datetime.combine(day, time.max))
    return start, end


def default_time_window(now: Optional[datetime] = None):
    """Local midnight today through the end of the last day of the window."""
    today = timezone.localdate(now)
    days = getattr(settings, "RIDES_DEFAULT_WINDOW_DAYS", 3)
    start, _ = _day_bounds(today)
    _, end = _day_bounds(today + timedelta(days=days))
    return start, end


class RideRequestStore:
    """Create, query, lock and delete ride requests."""

    def create(
        self,
        owner,
        origin: str,
        destination: str,
        total_fare,
        vehicle_type: str,
        total_passengers: int,
        ride_time,
        note: str = "",
        preferences: Optional[Iterable[dict]] = None,
    ) -> RideRequest:
        """
        Create a pending ride with no participants.

        Raises:
            ValidationError: if any field is missing or out of range
        """
        origin = (origin or "").strip()
        destination = (destination or "").strip()
        if not origin or not destination:
            raise ValidationError("Origin and destination are required")

        max_passengers = getattr(settings, "RIDES_MAX_PASSENGERS", 6)
        try:
            total_passengers = int(total_passengers)
        except (TypeError, ValueError):
            raise ValidationError("Total passengers must be a number")
        if not 1 <= total_passengers <= max_passengers:
            raise ValidationError(f"Total passengers must be between 1 and {max_passengers}")

        try:
            total_fare = Decimal(str(total_fare))
        except (InvalidOperation, ValueError):
            raise ValidationError("Total fare must be a number")
        if not total_fare.is_finite() or total_fare < 0:
            raise ValidationError("Total fare cannot be negative")

        valid_vehicles = {choice for choice, _ in RideRequest.VEHICLE_CHOICES}
        if vehicle_type not in valid_vehicles:
            raise ValidationError(f"Unknown vehicle type: {vehicle_type!r}")

        ride_time = _parse_ride_time(ride_time)

        valid_genders = {choice for choice, _ in RidePreference.GENDER_CHOICES}
        preference_rows = []
        for pref in preferences or []:
            gender = pref.get("gender") or ""
            if gender and gender not in valid_genders:
                raise ValidationError(f"Unknown gender preference: {gender!r}")
            preference_rows.append({
                "gender": gender,
                "age_range": pref.get("age_range") or "",
                "institution": pref.get("institution") or "",
            })

        with transaction.atomic():
            ride = RideRequest.objects.create(
                owner=owner,
                origin=origin,
                destination=destination,
                total_fare=total_fare,
                vehicle_type=vehicle_type,
                total_passengers=total_passengers,
                total_accepted=0,
                ride_time=ride_time,
                note=note or "",
                status=RideRequest.STATUS_PENDING,
            )
            RidePreference.objects.bulk_create([
                RidePreference(ride=ride, **row) for row in preference_rows
            ])
        return ride

    def get(self, ride_id) -> RideRequest:
        try:
            return RideRequest.objects.select_related("owner").get(id=ride_id)
        except RideRequest.DoesNotExist:
            raise RideNotFoundError("Ride request not found")

    @contextmanager
    def locked(self, ride_id) -> Iterator[RideRequest]:
        """
        Unit of work over one ride.

        Opens a transaction, re-reads the ride under a row lock and yields
        it. Leaving the block normally commits; any exception rolls back
        every write made inside it. Lock contention surfaces as
        TransientConflictError.
        """
        try:
            with transaction.atomic():
                try:
                    ride = RideRequest.objects.select_for_update().get(id=ride_id)
                except RideRequest.DoesNotExist:
                    raise RideNotFoundError("Ride request not found")
                yield ride
        except OperationalError as exc:
            if not _is_contention(exc):
                raise
            logger.warning("Lock contention on ride %s: %s", ride_id, exc)
            raise TransientConflictError("Ride is busy, please retry") from exc

    def update(self, ride_id, mutator: Callable[[RideRequest], None]) -> RideRequest:
        """Apply ``mutator`` to a freshly locked ride and save it."""
        with self.locked(ride_id) as ride:
            mutator(ride)
            ride.save()
        return ride

    def delete(self, ride_id, owner_id=None) -> None:
        """
        Delete the ride together with the conversations it provisioned.

        A conversation still linked to another ride between the same users
        is kept. Messages cascade with their conversation. When ``owner_id``
        is given it must match the ride's owner.
        """
        with self.locked(ride_id) as ride:
            if owner_id is not None and ride.owner_id != owner_id:
                raise ForbiddenError("Only the ride owner can delete this ride")

            conversations = list(ride.linked_conversations.all())
            if ride.conversation is not None and ride.conversation not in conversations:
                conversations.append(ride.conversation)

            deleted_ids, kept_ids = [], []
            for conversation in conversations:
                shared = (
                    conversation.linked_rides.exclude(id=ride.id).exists()
                    or conversation.rides.exclude(id=ride.id).exists()
                )
                if shared:
                    kept_ids.append(conversation.id)
                    continue
                deleted_ids.append(conversation.id)
                conversation.delete()

            ride.delete()
        logger.info("Deleted ride %s (conversations deleted: %s, kept: %s)", ride_id, deleted_ids, kept_ids)

    # ---------------------- Queries ----------------------

    def query(self, ride_filter: RideFilter):
        qs = (
            RideRequest.objects
            .select_related("owner")
            .prefetch_related("preferences", "memberships__user")
        )

        if ride_filter.status is None:
            qs = qs.exclude(status=RideRequest.STATUS_CANCELLED)
        elif ride_filter.status != ALL_STATUSES:
            qs = qs.filter(status=ride_filter.status)

        if ride_filter.date is not None:
            start, end = _day_bounds(ride_filter.date)
            qs = qs.filter(ride_time__gte=start, ride_time__lte=end)
        if ride_filter.ride_time_from is not None:
            qs = qs.filter(ride_time__gte=ride_filter.ride_time_from)
        if ride_filter.ride_time_to is not None:
            qs = qs.filter(ride_time__lte=ride_filter.ride_time_to)
        if not ride_filter.has_time_window:
            start, end = default_time_window()
            qs = qs.filter(ride_time__gte=start, ride_time__lte=end)

        if ride_filter.search:
            term = ride_filter.search
            qs = qs.filter(
                Q(origin__icontains=term)
                | Q(destination__icontains=term)
                | Q(note__icontains=term)
                | Q(vehicle_type__icontains=term)
            )
        if ride_filter.location:
            qs = qs.filter(
                Q(origin__icontains=ride_filter.location)
                | Q(destination__icontains=ride_filter.location)
            )
        if ride_filter.origin:
            qs = qs.filter(origin__icontains=ride_filter.origin)
        if ride_filter.destination:
            qs = qs.filter(destination__icontains=ride_filter.destination)
        if ride_filter.vehicle_type:
            qs = qs.filter(vehicle_type=ride_filter.vehicle_type)

        if ride_filter.min_fare is not None:
            qs = qs.filter(total_fare__gte=ride_filter.min_fare)
        if ride_filter.max_fare is not None:
            qs = qs.filter(total_fare__lte=ride_filter.max_fare)
        if ride_filter.min_passengers:
            qs = qs.filter(total_passengers__gte=ride_filter.min_passengers)

        pref_q = Q()
        if ride_filter.gender:
            pref_q &= Q(gender=ride_filter.gender)
        if ride_filter.age_range:
            pref_q &= Q(age_range=ride_filter.age_range)
        if ride_filter.institution:
            pref_q &= Q(institution__icontains=ride_filter.institution)
        if pref_q:
            qs = qs.filter(id__in=RidePreference.objects.filter(pref_q).values("ride_id"))

        ordering = [SORT_FIELDS[key] for key in ride_filter.sort_by if key in SORT_FIELDS]
        if "pref_gender" in ordering:
            qs = qs.annotate(pref_gender=Min("preferences__gender"))
        if "pref_age_range" in ordering:
            qs = qs.annotate(pref_age_range=Min("preferences__age_range"))
        if not ordering:
            ordering = ["ride_time"]

        return qs.order_by(*ordering, "id")

    def created_by(self, user_id):
        return (
            RideRequest.objects
            .filter(owner_id=user_id)
            .prefetch_related("preferences", "memberships__user")
            .order_by("-ride_time", "-id")
        )

    def joined_by(self, user_id):
        return (
            RideRequest.objects
            .filter(memberships__user_id=user_id)
            .exclude(owner_id=user_id)
            .select_related("owner")
            .prefetch_related("preferences", "memberships__user")
            .order_by("-ride_time", "-id")
        )
