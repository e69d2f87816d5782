from types import SimpleNamespace

import pytest

from bookings_service.errors import ConfigurationError
from bookings_service.settings_model import DEFAULT_PRICING, PeakSchedule, StudioSettings


def make_row(**overrides):
    values = {
        "business_name": "Studio",
        "opening_time": "07:00",
        "closing_time": "22:00",
        "slot_interval": 30,
        "auto_confirm": False,
        "pricing": DEFAULT_PRICING,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_from_row_builds_settings():
    settings = StudioSettings.from_row(make_row())
    assert settings.opening_minutes == 7 * 60
    assert settings.closing_minutes == 22 * 60
    assert settings.max_headcount == 18
    assert settings.within_operating_hours(7 * 60, 22 * 60)
    assert not settings.within_operating_hours(6 * 60 + 30, 8 * 60)


def test_non_positive_slot_interval_is_configuration_error():
    with pytest.raises(ConfigurationError):
        StudioSettings.from_row(make_row(slot_interval=0))


def test_inverted_hours_are_configuration_error():
    with pytest.raises(ConfigurationError):
        StudioSettings.from_row(make_row(opening_time="22:00", closing_time="07:00"))


def test_empty_brackets_are_configuration_error():
    with pytest.raises(ConfigurationError):
        StudioSettings.from_row(make_row(pricing={"mode": "peak_window", "brackets": []}))


def test_peak_schedule_normalizes_days():
    schedule = PeakSchedule(days=["Friday", "SAT"], start_time="18:00", end_time="24:00")
    assert schedule.days == ["fri", "sat"]
    assert schedule.end_minutes == 24 * 60


def test_missing_pricing_falls_back_to_defaults():
    settings = StudioSettings.from_row(make_row(pricing=None))
    assert settings.pricing.mode == "peak_window"
