from datetime import date

from bookings_service.availability import (
    SOURCE_CLASS_SESSION,
    Interval,
    check_overlap,
    get_availability,
    intervals_overlap,
)
from bookings_service.models import BookingStatus
from bookings_service.settings_model import DEFAULT_PRICING, StudioSettings

DAY = date(2025, 3, 10)


def hold(start, end, status=BookingStatus.CONFIRMED, booking_id="BK-1", day=DAY):
    return Interval(date=day, start=start, end=end, booking_id=booking_id, status=status)


class FakeRepository:
    def __init__(self, rooms, sessions=()):
        self.rooms = list(rooms)
        self.sessions = list(sessions)

    def room_intervals(self, day):
        return [i for i in self.rooms if i.date == day]

    def class_session_intervals(self, day):
        return [i for i in self.sessions if i.date == day]


def test_touching_intervals_do_not_overlap():
    assert not intervals_overlap(600, 660, 660, 720)
    assert intervals_overlap(600, 661, 660, 720)
    assert not check_overlap(DAY, 660, 720, [hold(600, 660)]).conflict


def test_overlap_reports_conflicts():
    existing = [hold(600, 720), hold(800, 900, booking_id="BK-2")]
    result = check_overlap(DAY, 690, 810, existing)
    assert result.conflict
    assert [c.booking_id for c in result.conflicts] == ["BK-1", "BK-2"]


def test_cancelled_and_other_days_never_block():
    existing = [
        hold(600, 720, status=BookingStatus.CANCELLED),
        hold(600, 720, day=date(2025, 3, 11)),
    ]
    assert not check_overlap(DAY, 600, 720, existing).conflict


def test_exclude_own_booking():
    existing = [hold(600, 720, booking_id="BK-SELF")]
    assert not check_overlap(DAY, 600, 720, existing, exclude_booking_id="BK-SELF").conflict


def test_pending_blocks_unless_filtered_out():
    existing = [hold(600, 720, status=BookingStatus.PENDING)]
    assert check_overlap(DAY, 630, 660, existing).conflict
    assert not check_overlap(DAY, 630, 660, existing, blocking_statuses=[BookingStatus.CONFIRMED]).conflict


def test_class_sessions_always_block():
    session = Interval(date=DAY, start=600, end=660, source=SOURCE_CLASS_SESSION, label="Yoga")
    assert check_overlap(DAY, 630, 690, [session], blocking_statuses=[BookingStatus.CONFIRMED]).conflict


def test_availability_splits_confirmed_and_pending():
    settings = StudioSettings(pricing=DEFAULT_PRICING, slot_interval=30)
    repository = FakeRepository(
        rooms=[
            hold(600, 660, status=BookingStatus.CONFIRMED),
            hold(630, 720, status=BookingStatus.PENDING, booking_id="BK-2"),
        ],
        sessions=[Interval(date=DAY, start=18 * 60, end=19 * 60, source=SOURCE_CLASS_SESSION)],
    )

    result = get_availability(repository, DAY, settings)

    assert result["confirmed_slots"] == ["10:00", "10:30", "18:00", "18:30"]
    assert result["pending_slots"] == ["11:00", "11:30"]
    assert result["opening_hours"] == {"start_time": "07:00", "end_time": "22:00"}
    assert result["slot_interval"] == 30


def test_empty_day_has_no_taken_slots():
    settings = StudioSettings(pricing=DEFAULT_PRICING)
    result = get_availability(FakeRepository(rooms=[]), DAY, settings)
    assert result["confirmed_slots"] == []
    assert result["pending_slots"] == []
