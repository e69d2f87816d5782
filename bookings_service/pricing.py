"""
Pricing policies for booking items.

Three policy variants share one interface so the booking core never needs
to know which scheme the studio runs:

- ``PeakWindowBracket``: hourly rate looked up by headcount bracket and
  normal/peak period, multiplied by the duration in hours.
- ``FlatSundayFee``: normal hourly rate by headcount bracket, plus a flat
  fee when the booking falls on a Sunday.
- ``FixedUnitPrice``: catalog price per person, independent of duration.

Amounts are ``Decimal`` rounded half-up to two places.
"""
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence

from .availability import intervals_overlap
from .errors import ValidationError
from .models import ItemKind, PeriodType
from .settings_model import PeakSchedule, RateBracket, StudioSettings
from .timeutils import weekday_token

CENT = Decimal("0.01")


def round_money(amount) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_bracket(brackets: Sequence[RateBracket], headcount: int) -> RateBracket:
    """
    Pick the smallest bracket that fits ``headcount``.

    Raises
    ------
    ValidationError
        If the headcount exceeds the largest bracket. Requests are never
        clamped down to the top bracket.
    """
    for bracket in brackets:
        if headcount <= bracket.max_headcount:
            return bracket
    raise ValidationError(
        f"Maximum capacity per booking item is {brackets[-1].max_headcount} people"
    )


class PricingPolicy:
    """
    Interface shared by every pricing variant.

    Subclasses implement ``price`` and may override ``classify_period``;
    the default classification is always ``normal``.
    """

    name = "base"

    def classify_period(self, day: date, start_minutes: int, end_minutes: int) -> PeriodType:
        return PeriodType.NORMAL

    def price(self, duration_minutes: int, headcount: int, period_type: PeriodType) -> Decimal:
        raise NotImplementedError


class PeakWindowBracket(PricingPolicy):
    name = "peak_window"

    def __init__(self, brackets: List[RateBracket], peak_schedule: Optional[PeakSchedule]):
        self.brackets = sorted(brackets, key=lambda b: b.max_headcount)
        self.peak_schedule = peak_schedule

    def classify_period(self, day: date, start_minutes: int, end_minutes: int) -> PeriodType:
        schedule = self.peak_schedule
        if schedule is None or not schedule.days:
            return PeriodType.NORMAL
        if weekday_token(day) not in schedule.days:
            return PeriodType.NORMAL
        if intervals_overlap(start_minutes, end_minutes, schedule.start_minutes, schedule.end_minutes):
            return PeriodType.PEAK
        return PeriodType.NORMAL

    def price(self, duration_minutes: int, headcount: int, period_type: PeriodType) -> Decimal:
        rate = resolve_bracket(self.brackets, headcount).rate_for(PeriodType(period_type).value)
        return round_money(rate * Decimal(duration_minutes) / Decimal(60))


class FlatSundayFee(PricingPolicy):
    """Normal bracket rate every day; Sundays are tagged peak and carry a flat fee."""

    name = "flat_sunday"

    def __init__(self, brackets: List[RateBracket], sunday_fee: Decimal):
        self.brackets = sorted(brackets, key=lambda b: b.max_headcount)
        self.sunday_fee = Decimal(sunday_fee)

    def classify_period(self, day: date, start_minutes: int, end_minutes: int) -> PeriodType:
        return PeriodType.PEAK if weekday_token(day) == "sun" else PeriodType.NORMAL

    def price(self, duration_minutes: int, headcount: int, period_type: PeriodType) -> Decimal:
        rate = resolve_bracket(self.brackets, headcount).normal_rate
        total = rate * Decimal(duration_minutes) / Decimal(60)
        if PeriodType(period_type) == PeriodType.PEAK:
            total += self.sunday_fee
        return round_money(total)


class FixedUnitPrice(PricingPolicy):
    name = "fixed_unit"

    def __init__(self, unit_price):
        self.unit_price = Decimal(unit_price)

    def price(self, duration_minutes: int, headcount: int, period_type: PeriodType) -> Decimal:
        return round_money(self.unit_price * headcount)


def room_policy(settings: StudioSettings) -> PricingPolicy:
    """Return the room-rental pricing variant configured in ``settings``."""
    pricing = settings.pricing
    if pricing.mode == "flat_sunday":
        return FlatSundayFee(pricing.brackets, pricing.sunday_fee)
    return PeakWindowBracket(pricing.brackets, pricing.peak_schedule)


def policy_for_item(kind: ItemKind, settings: StudioSettings, resource=None) -> PricingPolicy:
    """
    Select the pricing mode by item kind.

    Room rentals (ad-hoc or catalog room slots) are priced from the rate
    table; class enrollments use the catalog resource's unit price.
    """
    if ItemKind(kind) == ItemKind.CLASS_ENROLLMENT:
        if resource is None:
            raise ValidationError("Class enrollments must reference a catalog resource")
        return FixedUnitPrice(resource.price)
    return room_policy(settings)
