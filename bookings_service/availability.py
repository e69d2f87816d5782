from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .errors import ConfigurationError
from .models import ACTIVE_STATUSES, BookingStatus
from .timeutils import iter_slots

SOURCE_BOOKING = "booking"
SOURCE_CLASS_SESSION = "class_session"


@dataclass(frozen=True)
class Interval:
    """
    A hold on the studio room over ``[start, end)`` minutes of ``date``.

    ``booking_id`` and ``status`` are None for scheduled class sessions,
    which block the room regardless of enrollment.
    """
    date: date
    start: int
    end: int
    booking_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    source: str = SOURCE_BOOKING
    label: str = ""

    def blocks(self, blocking_statuses: Sequence[BookingStatus]) -> bool:
        if self.source == SOURCE_CLASS_SESSION:
            return True
        return self.status in blocking_statuses


@dataclass(frozen=True)
class OverlapResult:
    conflict: bool
    conflicts: List[Interval]


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap: touching endpoints do not conflict."""
    return start_a < end_b and start_b < end_a


def check_overlap(
    day: date,
    start: int,
    end: int,
    existing: Iterable[Interval],
    exclude_booking_id: Optional[str] = None,
    blocking_statuses: Sequence[BookingStatus] = ACTIVE_STATUSES,
) -> OverlapResult:
    """
    Decide whether ``[start, end)`` on ``day`` collides with existing holds.

    Parameters
    ----------
    day : date
        Date of the candidate range.
    start, end : int
        Candidate range in minutes since midnight.
    existing : iterable of Interval
        Holds already stored for the date (room-rental items and class
        sessions). Intervals on other dates are ignored.
    exclude_booking_id : Optional[str]
        Ignore holds belonging to this booking, used when re-validating a
        booking that is being confirmed.
    blocking_statuses : sequence of BookingStatus
        Booking statuses that block. Cancelled holds never block.

    Returns
    -------
    OverlapResult
        ``conflict`` flag plus the colliding intervals.
    """
    statuses = tuple(s for s in blocking_statuses if s != BookingStatus.CANCELLED)
    conflicts = [
        interval
        for interval in existing
        if interval.date == day
        and interval.blocks(statuses)
        and not (exclude_booking_id is not None and interval.booking_id == exclude_booking_id)
        and intervals_overlap(start, end, interval.start, interval.end)
    ]
    return OverlapResult(conflict=bool(conflicts), conflicts=conflicts)


def get_availability(repository, day: date, settings) -> dict:
    """
    Summarize which slot labels of ``day`` are taken.

    Confirmed bookings and scheduled class sessions end up in
    ``confirmed_slots``; pending bookings in ``pending_slots``.
    """
    if settings.slot_interval <= 0:
        raise ConfigurationError("Slot interval must be a positive number of minutes")

    confirmed_slots: List[str] = []
    pending_slots: List[str] = []

    for interval in repository.room_intervals(day):
        slots = iter_slots(interval.start, interval.end, settings.slot_interval)
        if interval.status == BookingStatus.CONFIRMED:
            confirmed_slots.extend(slots)
        elif interval.status == BookingStatus.PENDING:
            pending_slots.extend(slots)

    for interval in repository.class_session_intervals(day):
        confirmed_slots.extend(iter_slots(interval.start, interval.end, settings.slot_interval))

    return {
        "date": day,
        "confirmed_slots": sorted(set(confirmed_slots)),
        "pending_slots": sorted(set(pending_slots) - set(confirmed_slots)),
        "opening_hours": {
            "start_time": settings.opening_time,
            "end_time": settings.closing_time,
        },
        "slot_interval": settings.slot_interval,
    }
