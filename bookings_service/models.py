from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, PyEnum):
    """
    Enumeration of possible booking statuses.

    Values
    ------
    pending
        Booking has been requested but not yet approved by staff.
        It already holds its time range and capacity.
    confirmed
        Booking was approved after re-validation and is binding.
    cancelled
        Booking was cancelled and no longer blocks anything.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class ItemKind(str, PyEnum):
    ROOM_RENTAL = "room_rental"
    CLASS_ENROLLMENT = "class_enrollment"


class ResourceKind(str, PyEnum):
    """
    Kind of a catalog resource.

    ``class_session`` occupies the studio room at its scheduled time and
    is sold per seat; ``room_slot`` is a predefined rentable slot.
    """
    CLASS_SESSION = "class_session"
    ROOM_SLOT = "room_slot"

    @property
    def item_kind(self) -> ItemKind:
        if self is ResourceKind.CLASS_SESSION:
            return ItemKind.CLASS_ENROLLMENT
        return ItemKind.ROOM_RENTAL


class PeriodType(str, PyEnum):
    NORMAL = "normal"
    PEAK = "peak"


class Booking(Base):
    """
    SQLAlchemy model representing a customer's booking request.

    Attributes
    ----------
    id : str
        Primary key, e.g. ``BK-18F2A9C0D1E-3FA2B19C7D44``.
    customer_name, email, phone : str
        Contact information.
    notes : str
        Free-text notes from the customer.
    status : BookingStatus
        Aggregate status (pending/confirmed/cancelled).
    total_price : Decimal
        Sum of the item prices.
    total_people : int
        Sum of the item headcounts.
    created_at, updated_at : datetime
        Creation and last-change timestamps.
    confirmed_at, cancelled_at : datetime
        Set once, on the corresponding transition.
    admin_notes : str
        Optional notes left by staff.
    items : list of BookingItem
        Reservable units, ordered by date and start time.
    """
    __tablename__ = "bookings"

    id = Column(String(40), primary_key=True, index=True)
    customer_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    notes = Column(Text, nullable=False, default="")
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_people = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)

    items = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by=lambda: [BookingItem.date, BookingItem.start_time, BookingItem.id],
    )


class BookingItem(Base):
    """
    SQLAlchemy model representing one reservable unit of a booking.

    Attributes
    ----------
    id : int
        Primary key.
    booking_id : str
        Owning booking.
    catalog_resource_id : int
        Referenced catalog resource, or None for an ad-hoc room rental.
    kind : ItemKind
        room_rental or class_enrollment.
    date : date
        Day of the reservation.
    start_time, end_time : str
        ``HH:MM`` clock labels; end is strictly after start.
    duration : int
        Length in minutes.
    headcount : int
        Number of people.
    price : Decimal
        Price computed at creation.
    period_type : PeriodType
        normal or peak, frozen at creation.
    """
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(40), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    catalog_resource_id = Column(
        Integer, ForeignKey("catalog_resources.id", ondelete="SET NULL"), nullable=True, index=True
    )
    kind = Column(Enum(ItemKind), nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False)
    headcount = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    period_type = Column(Enum(PeriodType), nullable=False, default=PeriodType.NORMAL)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="items")
    catalog_resource = relationship("CatalogResource")


class CatalogResource(Base):
    """
    SQLAlchemy model representing a schedulable offering.

    Used capacity is not stored; it is derived from the active booking
    items that reference the resource.
    """
    __tablename__ = "catalog_resources"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(Enum(ResourceKind), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    instructor_name = Column(String(200), nullable=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Settings(Base):
    """
    Singleton row holding studio configuration.

    ``pricing`` is a JSON document shaped like
    ``settings_model.DEFAULT_PRICING``. ``token_version`` is bumped on
    password change to revoke every issued admin token.
    """
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    business_name = Column(String(200), nullable=False, default="")
    opening_time = Column(String(5), nullable=False)
    closing_time = Column(String(5), nullable=False)
    slot_interval = Column(Integer, nullable=False)
    auto_confirm = Column(Boolean, nullable=False, default=False)
    pricing = Column(JSON, nullable=False)
    contact_info = Column(JSON, nullable=False, default=dict)
    admin_password_hash = Column(String(255), nullable=False)
    token_version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
