"""Typed query object for ride listings."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

SORT_FIELDS = {
    "fare": "total_fare",
    "origin": "origin",
    "destination": "destination",
    "rideTime": "ride_time",
    "gender": "pref_gender",
    "age": "pref_age_range",
}

ALL_STATUSES = "all"


@dataclass(frozen=True)
class RideFilter:
    """
    Every recognized ride listing filter.

    ``status=None`` hides cancelled rides, ``"all"`` shows everything.
    When ``date``, ``ride_time_from`` and ``ride_time_to`` are all unset the
    listing covers today through the default window.
    """
    status: Optional[str] = None
    search: str = ""
    date: Optional[date] = None
    ride_time_from: Optional[datetime] = None
    ride_time_to: Optional[datetime] = None
    location: str = ""
    origin: str = ""
    destination: str = ""
    vehicle_type: str = ""
    min_fare: Optional[Decimal] = None
    max_fare: Optional[Decimal] = None
    min_passengers: Optional[int] = None
    gender: str = ""
    age_range: str = ""
    institution: str = ""
    sort_by: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_time_window(self) -> bool:
        return any(v is not None for v in (self.date, self.ride_time_from, self.ride_time_to))
