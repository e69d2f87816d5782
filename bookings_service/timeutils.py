import re
from datetime import date
from typing import Iterator

# 24h clock label, "00:00" .. "23:59"
CLOCK_PATTERN = r"^(?:[01]\d|2[0-3]):[0-5]\d$"
_CLOCK_RE = re.compile(CLOCK_PATTERN)

WEEKDAY_TOKENS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def is_clock_label(value: str) -> bool:
    return bool(_CLOCK_RE.match(value or ""))


def parse_clock(label: str) -> int:
    """
    Convert an ``HH:MM`` label into minutes since midnight.

    Labels are validated by the caller; ``"HH:MM:SS"`` values coming back
    from a TIME column are accepted and the seconds are ignored.
    """
    hour, minute = label.split(":")[:2]
    return int(hour) * 60 + int(minute)


def format_clock(total_minutes: int) -> str:
    hour, minute = divmod(total_minutes, 60)
    return f"{hour:02d}:{minute:02d}"


def minutes_between(start_label: str, end_label: str) -> int:
    return parse_clock(end_label) - parse_clock(start_label)


def iter_slots(start_minutes: int, end_minutes: int, interval: int) -> Iterator[str]:
    """
    Lazily yield slot-start labels across ``[start_minutes, end_minutes)``.

    Only used to present availability; conflict detection compares the
    continuous ranges instead.
    """
    cursor = start_minutes
    while cursor < end_minutes:
        yield format_clock(cursor)
        cursor += interval


def weekday_token(day: date) -> str:
    return WEEKDAY_TOKENS[day.weekday()]
