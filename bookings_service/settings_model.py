from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError
from .timeutils import WEEKDAY_TOKENS, is_clock_label, parse_clock

DEFAULT_OPENING_TIME = "07:00"
DEFAULT_CLOSING_TIME = "22:00"
DEFAULT_SLOT_INTERVAL = 30

DEFAULT_PEAK_SCHEDULE: Dict[str, Any] = {
    "days": ["fri", "sat", "sun"],
    "start_time": "18:00",
    "end_time": "23:00",
}

DEFAULT_PRICING: Dict[str, Any] = {
    "mode": "peak_window",
    "brackets": [
        {"max_headcount": 10, "normal_rate": 250, "peak_rate": 280},
        {"max_headcount": 18, "normal_rate": 320, "peak_rate": 350},
    ],
    "peak_schedule": DEFAULT_PEAK_SCHEDULE,
    "sunday_fee": 0,
}


class RateBracket(BaseModel):
    """
    Hourly rates for bookings up to ``max_headcount`` people.

    Attributes
    ----------
    max_headcount : int
        Inclusive upper bound of the bracket.
    normal_rate : Decimal
        Hourly rate outside the peak window.
    peak_rate : Decimal
        Hourly rate inside the peak window.
    """
    model_config = ConfigDict(frozen=True)

    max_headcount: int = Field(..., ge=1)
    normal_rate: Decimal = Field(..., ge=0)
    peak_rate: Decimal = Field(..., ge=0)

    def rate_for(self, period_type: str) -> Decimal:
        return self.peak_rate if period_type == "peak" else self.normal_rate


class PeakSchedule(BaseModel):
    """Weekdays plus a clock-time window during which peak rates apply."""
    model_config = ConfigDict(frozen=True)

    days: List[str] = Field(default_factory=list)
    start_time: str = "18:00"
    end_time: str = "23:00"

    @field_validator("days", mode="before")
    @classmethod
    def normalize_days(cls, value):
        tokens = [str(day).strip().lower()[:3] for day in (value or [])]
        unknown = [t for t in tokens if t not in WEEKDAY_TOKENS]
        if unknown:
            raise ValueError(f"unknown weekday(s): {', '.join(unknown)}")
        return tokens

    @field_validator("start_time", "end_time")
    @classmethod
    def check_clock(cls, value: str) -> str:
        # the peak window may close at midnight
        if value != "24:00" and not is_clock_label(value):
            raise ValueError(f"invalid clock time '{value}'")
        return value

    @property
    def start_minutes(self) -> int:
        return parse_clock(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_clock(self.end_time)


class PricingConfig(BaseModel):
    """
    Pricing tiers and the policy variant used for room rentals.

    ``mode`` selects between ``peak_window`` (bracket x normal/peak rate)
    and ``flat_sunday`` (normal rate plus a flat fee on Sundays).
    """
    model_config = ConfigDict(frozen=True)

    mode: Literal["peak_window", "flat_sunday"] = "peak_window"
    brackets: List[RateBracket]
    peak_schedule: Optional[PeakSchedule] = None
    sunday_fee: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("brackets")
    @classmethod
    def sort_brackets(cls, value: List[RateBracket]) -> List[RateBracket]:
        if not value:
            raise ValueError("at least one rate bracket is required")
        return sorted(value, key=lambda b: b.max_headcount)

    @property
    def max_headcount(self) -> int:
        return self.brackets[-1].max_headcount


class StudioSettings(BaseModel):
    """
    Read-only view of the settings singleton consumed by the booking core.

    Attributes
    ----------
    business_name : str
        Display name of the studio.
    opening_time : str
        Start of operating hours (``HH:MM``).
    closing_time : str
        End of operating hours (``HH:MM``).
    slot_interval : int
        Granularity in minutes used when presenting availability.
    auto_confirm : bool
        Whether new bookings are created directly as ``confirmed``.
    pricing : PricingConfig
        Rate tables and peak-window definition.
    """
    model_config = ConfigDict(frozen=True)

    business_name: str = ""
    opening_time: str = DEFAULT_OPENING_TIME
    closing_time: str = DEFAULT_CLOSING_TIME
    slot_interval: int = DEFAULT_SLOT_INTERVAL
    auto_confirm: bool = False
    pricing: PricingConfig

    @model_validator(mode="after")
    def check_hours(self):
        if not (is_clock_label(self.opening_time) and is_clock_label(self.closing_time)):
            raise ValueError("operating hours must be HH:MM")
        if parse_clock(self.opening_time) >= parse_clock(self.closing_time):
            raise ValueError("opening time must be before closing time")
        if self.slot_interval <= 0:
            raise ValueError("slot interval must be a positive number of minutes")
        return self

    @property
    def opening_minutes(self) -> int:
        return parse_clock(self.opening_time)

    @property
    def closing_minutes(self) -> int:
        return parse_clock(self.closing_time)

    @property
    def max_headcount(self) -> int:
        return self.pricing.max_headcount

    def within_operating_hours(self, start_minutes: int, end_minutes: int) -> bool:
        return start_minutes >= self.opening_minutes and end_minutes <= self.closing_minutes

    @classmethod
    def from_row(cls, row) -> "StudioSettings":
        """
        Build the settings view from a stored ``Settings`` row.

        Raises
        ------
        ConfigurationError
            If the stored configuration cannot be used.
        """
        try:
            return cls(
                business_name=row.business_name or "",
                opening_time=row.opening_time,
                closing_time=row.closing_time,
                slot_interval=row.slot_interval,
                auto_confirm=bool(row.auto_confirm),
                pricing=row.pricing or DEFAULT_PRICING,
            )
        except PydanticValidationError as exc:
            reasons = "; ".join(err["msg"] for err in exc.errors())
            raise ConfigurationError(f"Invalid studio settings: {reasons}") from exc
