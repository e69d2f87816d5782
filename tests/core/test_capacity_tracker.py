from types import SimpleNamespace

import pytest

from bookings_service.capacity import CapacityTracker, Reservation
from bookings_service.errors import ConflictError, NotFoundError
from bookings_service.models import BookingStatus

YOGA = SimpleNamespace(id=1, name="Morning Yoga", capacity=10)


def reservation(headcount, status=BookingStatus.PENDING, booking_id="BK-1"):
    return Reservation(resource_id=YOGA.id, booking_id=booking_id, headcount=headcount, status=status)


def test_used_capacity_ignores_cancelled():
    tracker = CapacityTracker(
        {YOGA.id: YOGA},
        [reservation(4), reservation(3, BookingStatus.CONFIRMED, "BK-2"), reservation(5, BookingStatus.CANCELLED, "BK-3")],
    )
    assert tracker.used_capacity(YOGA.id) == 7
    assert tracker.remaining(YOGA.id) == 3


def test_admit_exactly_up_to_capacity():
    tracker = CapacityTracker({YOGA.id: YOGA}, [reservation(8)])
    assert tracker.admit(YOGA.id, 2) == 0
    with pytest.raises(ConflictError) as exc:
        tracker.admit(YOGA.id, 1)
    assert "fully booked" in exc.value.message


def test_running_tally_counts_items_of_same_request():
    tracker = CapacityTracker({YOGA.id: YOGA}, [reservation(5)])
    tracker.admit(YOGA.id, 3)
    with pytest.raises(ConflictError) as exc:
        tracker.admit(YOGA.id, 3)
    assert "only 2 seat(s) remaining" in exc.value.message


def test_exclude_booking_and_counting_statuses():
    tracker = CapacityTracker(
        {YOGA.id: YOGA},
        [reservation(6), reservation(4, BookingStatus.CONFIRMED, "BK-2")],
        counting_statuses=[BookingStatus.CONFIRMED],
    )
    assert tracker.used_capacity(YOGA.id) == 4
    assert tracker.can_admit(YOGA.id, 6, exclude_booking_id="BK-1")
    assert not tracker.can_admit(YOGA.id, 7, exclude_booking_id="BK-1")


def test_unknown_resource():
    tracker = CapacityTracker({}, [])
    with pytest.raises(NotFoundError):
        tracker.admit(42, 1)
