import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import BookingStatus, ItemKind, PeriodType, ResourceKind
from .settings_model import PricingConfig
from .timeutils import CLOCK_PATTERN


class BookingItemCreate(BaseModel):
    """
    One requested line item.

    Either ``catalog_resource_id`` is given (the resource fixes date and
    time), or ``date``, ``start_time`` and ``end_time`` describe an ad-hoc
    room rental. Several spellings of each field are accepted and
    normalized here so the booking core only sees this shape.
    """
    catalog_resource_id: Optional[int] = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("catalog_resource_id", "catalogItemId", "catalog_item_id", "classId"),
    )
    kind: Optional[ItemKind] = Field(
        default=None,
        validation_alias=AliasChoices("kind", "type", "itemType", "item_type"),
    )
    date: Optional[dt.date] = None
    start_time: Optional[str] = Field(
        default=None,
        pattern=CLOCK_PATTERN,
        validation_alias=AliasChoices("start_time", "startTime"),
    )
    end_time: Optional[str] = Field(
        default=None,
        pattern=CLOCK_PATTERN,
        validation_alias=AliasChoices("end_time", "endTime"),
    )
    headcount: int = Field(
        ...,
        ge=1,
        validation_alias=AliasChoices("headcount", "peopleCount", "people_count"),
    )


class BookingCreate(BaseModel):
    """
    Schema for creating a new booking.

    Contact information plus at least one line item.
    """
    customer_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices("customer_name", "customerName", "name"),
    )
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    notes: str = ""
    items: List[BookingItemCreate] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("items", "bookingItems", "booking_items"),
    )

    @field_validator("customer_name", "email", "phone", "notes", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class BookingItemRead(BaseModel):
    id: int
    catalog_resource_id: Optional[int]
    kind: ItemKind
    date: dt.date
    start_time: str
    end_time: str
    duration: int
    headcount: int
    price: float
    period_type: PeriodType

    model_config = ConfigDict(from_attributes=True)


class BookingRead(BaseModel):
    """
    Schema returned when reading booking information.

    Includes the priced items and every lifecycle timestamp.
    """
    id: str
    customer_name: str
    email: str
    phone: str
    notes: str
    status: BookingStatus
    total_price: float
    total_people: int
    created_at: dt.datetime
    updated_at: dt.datetime
    confirmed_at: Optional[dt.datetime] = None
    cancelled_at: Optional[dt.datetime] = None
    admin_notes: Optional[str] = None
    items: List[BookingItemRead]

    model_config = ConfigDict(from_attributes=True)


class BookingCreated(BaseModel):
    success: bool = True
    booking: BookingRead
    message: str


class BookingStatusUpdate(BaseModel):
    """Target status for a staff transition, with optional staff notes."""
    status: BookingStatus
    admin_notes: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("admin_notes", "adminNotes"),
    )


class OpeningHours(BaseModel):
    start_time: str
    end_time: str


class AvailabilityRead(BaseModel):
    date: dt.date
    confirmed_slots: List[str]
    pending_slots: List[str]
    opening_hours: OpeningHours
    slot_interval: int


class CatalogResourceBase(BaseModel):
    """
    Shared fields of a catalog resource (class session or room slot).
    """
    kind: ResourceKind = Field(..., validation_alias=AliasChoices("kind", "type"))
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    instructor_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instructor_name", "instructorName", "instructor"),
    )
    date: dt.date
    start_time: str = Field(..., pattern=CLOCK_PATTERN, validation_alias=AliasChoices("start_time", "startTime"))
    end_time: str = Field(..., pattern=CLOCK_PATTERN, validation_alias=AliasChoices("end_time", "endTime"))
    price: float = Field(..., ge=0)
    capacity: int = Field(..., ge=1)


class CatalogResourceCreate(CatalogResourceBase):
    pass


class CatalogResourceRead(BaseModel):
    id: int
    kind: ResourceKind
    name: str
    description: str
    instructor_name: Optional[str]
    date: dt.date
    start_time: str
    end_time: str
    duration: int
    price: float
    capacity: int
    used_capacity: int = 0
    available_capacity: int = 0

    model_config = ConfigDict(from_attributes=True)


class CatalogListing(BaseModel):
    classes: List[CatalogResourceRead]
    room_slots: List[CatalogResourceRead]


class CapacityRead(BaseModel):
    resource_id: int
    capacity: int
    used_capacity: int
    available_capacity: int


class AdminLogin(BaseModel):
    password: str = Field(..., min_length=1)


class TokenRead(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_at: dt.datetime


class PasswordChange(BaseModel):
    current_password: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("current_password", "currentPassword", "oldPassword", "old_password"),
    )
    new_password: str = Field(
        ...,
        min_length=6,
        validation_alias=AliasChoices("new_password", "newPassword"),
    )


class SettingsRead(BaseModel):
    """Public view of the settings singleton (no password hash)."""
    business_name: str
    opening_time: str
    closing_time: str
    slot_interval: int
    auto_confirm: bool
    pricing: PricingConfig
    contact_info: Dict[str, Any]
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class SettingsUpdate(BaseModel):
    """
    Partial settings update; omitted fields keep their stored values.
    """
    business_name: Optional[str] = None
    opening_time: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    closing_time: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    slot_interval: Optional[int] = Field(default=None, gt=0)
    auto_confirm: Optional[bool] = None
    pricing: Optional[PricingConfig] = None
    contact_info: Optional[Dict[str, Any]] = None


class StatsRead(BaseModel):
    total: int
    pending: int
    confirmed: int
    cancelled: int
    today_bookings: int
    upcoming_bookings: int
    total_revenue: float
