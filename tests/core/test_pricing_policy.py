from datetime import date
from decimal import Decimal

import pytest

from bookings_service.errors import ValidationError
from bookings_service.models import ItemKind, PeriodType
from bookings_service.pricing import (
    FixedUnitPrice,
    FlatSundayFee,
    PeakWindowBracket,
    policy_for_item,
    resolve_bracket,
    round_money,
)
from bookings_service.settings_model import DEFAULT_PRICING, PricingConfig, RateBracket, StudioSettings

FRIDAY = date(2025, 3, 7)
MONDAY = date(2025, 3, 10)
SUNDAY = date(2025, 3, 9)


def default_policy() -> PeakWindowBracket:
    config = PricingConfig.model_validate(DEFAULT_PRICING)
    return PeakWindowBracket(config.brackets, config.peak_schedule)


def test_peak_overlap_classifies_friday_evening():
    policy = default_policy()
    # 17:30-19:00 overlaps the 18:00 peak window
    assert policy.classify_period(FRIDAY, 17 * 60 + 30, 19 * 60) == PeriodType.PEAK
    assert policy.classify_period(FRIDAY, 9 * 60, 10 * 60) == PeriodType.NORMAL
    # ending exactly when the window opens does not touch it
    assert policy.classify_period(FRIDAY, 17 * 60, 18 * 60) == PeriodType.NORMAL
    assert policy.classify_period(MONDAY, 19 * 60, 20 * 60) == PeriodType.NORMAL


def test_ninety_minute_normal_session_price():
    policy = default_policy()
    assert policy.price(90, 8, PeriodType.NORMAL) == Decimal("375.00")


def test_whole_item_charged_at_peak_rate():
    policy = default_policy()
    assert policy.price(90, 8, PeriodType.PEAK) == Decimal("420.00")
    assert policy.price(60, 15, PeriodType.PEAK) == Decimal("350.00")


def test_headcount_above_largest_bracket_is_rejected():
    policy = default_policy()
    with pytest.raises(ValidationError) as exc:
        policy.price(60, 19, PeriodType.NORMAL)
    assert "18" in exc.value.message


def test_resolve_bracket_picks_smallest_fit():
    brackets = [
        RateBracket(max_headcount=10, normal_rate=250, peak_rate=280),
        RateBracket(max_headcount=18, normal_rate=320, peak_rate=350),
    ]
    assert resolve_bracket(brackets, 10).max_headcount == 10
    assert resolve_bracket(brackets, 11).max_headcount == 18


def test_flat_sunday_fee():
    brackets = [RateBracket(max_headcount=10, normal_rate=100, peak_rate=999)]
    policy = FlatSundayFee(brackets, Decimal("25"))
    assert policy.classify_period(SUNDAY, 600, 660) == PeriodType.PEAK
    assert policy.classify_period(FRIDAY, 19 * 60, 20 * 60) == PeriodType.NORMAL
    assert policy.price(60, 4, PeriodType.PEAK) == Decimal("125.00")
    assert policy.price(60, 4, PeriodType.NORMAL) == Decimal("100.00")


def test_fixed_unit_price_ignores_duration():
    policy = FixedUnitPrice(Decimal("15.50"))
    assert policy.price(45, 3, PeriodType.NORMAL) == Decimal("46.50")
    assert policy.price(120, 3, PeriodType.NORMAL) == Decimal("46.50")


def test_rounding_is_half_up():
    assert round_money(Decimal("0.125")) == Decimal("0.13")
    assert round_money(Decimal("2.675")) == Decimal("2.68")
    brackets = [RateBracket(max_headcount=5, normal_rate=Decimal("100"), peak_rate=Decimal("100"))]
    # 100 * 25 / 60 = 41.666...
    assert PeakWindowBracket(brackets, None).price(25, 1, PeriodType.NORMAL) == Decimal("41.67")


def test_policy_for_item_selects_by_kind():
    settings = StudioSettings(pricing=DEFAULT_PRICING)
    assert isinstance(policy_for_item(ItemKind.ROOM_RENTAL, settings), PeakWindowBracket)
    assert policy_for_item(ItemKind.ROOM_RENTAL, settings).name == "peak_window"

    flat = StudioSettings(pricing={**DEFAULT_PRICING, "mode": "flat_sunday", "sunday_fee": 30})
    assert isinstance(policy_for_item(ItemKind.ROOM_RENTAL, flat), FlatSundayFee)
    assert policy_for_item(ItemKind.ROOM_RENTAL, flat).name == "flat_sunday"

    with pytest.raises(ValidationError):
        policy_for_item(ItemKind.CLASS_ENROLLMENT, settings)
