import os
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from . import models
from .auth import get_password_hash
from .availability import SOURCE_CLASS_SESSION, Interval
from .capacity import CapacityTracker, Reservation
from .models import ACTIVE_STATUSES, BookingStatus, ItemKind, ResourceKind
from .settings_model import (
    DEFAULT_CLOSING_TIME,
    DEFAULT_OPENING_TIME,
    DEFAULT_PRICING,
    DEFAULT_SLOT_INTERVAL,
    StudioSettings,
)
from .timeutils import parse_clock

DEFAULT_BUSINESS_NAME = "Studio Booking"
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")


class BookingRepository:
    """
    Storage access for the booking core.

    Every read-modify-write operation of the core starts with
    ``lock_settings()``; on PostgreSQL the row lock on the settings
    singleton is held until the session commits or rolls back, so
    conflict/capacity checks and the following insert or update run as
    one unit.

    Parameters
    ----------
    db : Session
        SQLAlchemy session; the repository never commits on its own
        except when seeding the settings row.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---------- Settings ----------

    def settings_row(self, lock: bool = False) -> models.Settings:
        query = self.db.query(models.Settings).order_by(models.Settings.id)
        if lock:
            query = query.with_for_update()
        row = query.first()
        if row is None:
            row = self._seed_settings()
        return row

    def _seed_settings(self) -> models.Settings:
        row = models.Settings(
            business_name=DEFAULT_BUSINESS_NAME,
            opening_time=DEFAULT_OPENING_TIME,
            closing_time=DEFAULT_CLOSING_TIME,
            slot_interval=DEFAULT_SLOT_INTERVAL,
            auto_confirm=False,
            pricing=DEFAULT_PRICING,
            contact_info={},
            admin_password_hash=get_password_hash(DEFAULT_ADMIN_PASSWORD),
            token_version=1,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def lock_settings(self) -> StudioSettings:
        """Take the single-writer lock and return the current settings."""
        return StudioSettings.from_row(self.settings_row(lock=True))

    def load_settings(self) -> StudioSettings:
        return StudioSettings.from_row(self.settings_row())

    # ---------- Room holds ----------

    def room_intervals(self, day: date, statuses: Sequence[BookingStatus] = ACTIVE_STATUSES) -> List[Interval]:
        rows = (
            self.db.query(models.BookingItem, models.Booking.status)
            .join(models.Booking, models.Booking.id == models.BookingItem.booking_id)
            .filter(models.BookingItem.date == day)
            .filter(models.BookingItem.kind == ItemKind.ROOM_RENTAL)
            .filter(models.Booking.status.in_(list(statuses)))
            .order_by(models.BookingItem.start_time)
            .all()
        )
        return [
            Interval(
                date=item.date,
                start=parse_clock(item.start_time),
                end=parse_clock(item.end_time),
                booking_id=item.booking_id,
                status=booking_status,
            )
            for item, booking_status in rows
        ]

    def class_session_intervals(self, day: date, exclude_resource_id: Optional[int] = None) -> List[Interval]:
        query = (
            self.db.query(models.CatalogResource)
            .filter(models.CatalogResource.kind == ResourceKind.CLASS_SESSION)
            .filter(models.CatalogResource.date == day)
        )
        if exclude_resource_id is not None:
            query = query.filter(models.CatalogResource.id != exclude_resource_id)
        sessions = query.all()
        return [
            Interval(
                date=session.date,
                start=parse_clock(session.start_time),
                end=parse_clock(session.end_time),
                source=SOURCE_CLASS_SESSION,
                label=session.name,
            )
            for session in sessions
        ]

    def blocking_intervals(self, day: date) -> List[Interval]:
        return self.room_intervals(day) + self.class_session_intervals(day)

    # ---------- Catalog ----------

    def get_resource(self, resource_id: int) -> Optional[models.CatalogResource]:
        return self.db.query(models.CatalogResource).filter(models.CatalogResource.id == resource_id).first()

    def get_resources(self, resource_ids: Iterable[int]) -> Dict[int, models.CatalogResource]:
        ids = set(resource_ids)
        if not ids:
            return {}
        rows = self.db.query(models.CatalogResource).filter(models.CatalogResource.id.in_(ids)).all()
        return {row.id: row for row in rows}

    def list_resources(self, include_past: bool = False, today: Optional[date] = None) -> List[models.CatalogResource]:
        query = self.db.query(models.CatalogResource)
        if not include_past:
            query = query.filter(models.CatalogResource.date >= (today or date.today()))
        return query.order_by(models.CatalogResource.date, models.CatalogResource.start_time).all()

    def reservations_for(self, resource_ids: Iterable[int]) -> List[Reservation]:
        ids = set(resource_ids)
        if not ids:
            return []
        rows = (
            self.db.query(
                models.BookingItem.catalog_resource_id,
                models.BookingItem.booking_id,
                models.BookingItem.headcount,
                models.Booking.status,
            )
            .join(models.Booking, models.Booking.id == models.BookingItem.booking_id)
            .filter(models.BookingItem.catalog_resource_id.in_(ids))
            .filter(models.Booking.status.in_(list(ACTIVE_STATUSES)))
            .all()
        )
        return [
            Reservation(resource_id=rid, booking_id=bid, headcount=headcount, status=status)
            for rid, bid, headcount, status in rows
        ]

    def capacity_tracker(
        self, resource_ids: Iterable[int], counting_statuses: Sequence[BookingStatus] = ACTIVE_STATUSES
    ) -> CapacityTracker:
        ids = set(resource_ids)
        return CapacityTracker(self.get_resources(ids), self.reservations_for(ids), counting_statuses)

    def used_capacity(self, resource_id: int, exclude_booking_id: Optional[str] = None) -> int:
        query = (
            self.db.query(func.coalesce(func.sum(models.BookingItem.headcount), 0))
            .join(models.Booking, models.Booking.id == models.BookingItem.booking_id)
            .filter(models.BookingItem.catalog_resource_id == resource_id)
            .filter(models.Booking.status.in_(list(ACTIVE_STATUSES)))
        )
        if exclude_booking_id is not None:
            query = query.filter(models.BookingItem.booking_id != exclude_booking_id)
        return int(query.scalar() or 0)

    def detach_resource(self, resource_id: int) -> None:
        self.db.query(models.BookingItem).filter(
            models.BookingItem.catalog_resource_id == resource_id
        ).update({models.BookingItem.catalog_resource_id: None}, synchronize_session=False)

    # ---------- Bookings ----------

    def get_booking(self, booking_id: str, lock: bool = False) -> Optional[models.Booking]:
        query = (
            self.db.query(models.Booking)
            .options(selectinload(models.Booking.items))
            .filter(models.Booking.id == booking_id)
        )
        if lock:
            query = query.with_for_update(of=models.Booking)
        return query.first()

    def list_bookings(self, day: Optional[date] = None, status: Optional[BookingStatus] = None) -> List[models.Booking]:
        query = self.db.query(models.Booking).options(selectinload(models.Booking.items))
        if day is not None:
            has_item_on_day = (
                self.db.query(models.BookingItem.id)
                .filter(models.BookingItem.booking_id == models.Booking.id)
                .filter(models.BookingItem.date == day)
                .exists()
            )
            query = query.filter(has_item_on_day)
        if status is not None:
            query = query.filter(models.Booking.status == status)
        return query.order_by(models.Booking.created_at.desc()).all()

    def add_booking(self, booking: models.Booking) -> models.Booking:
        self.db.add(booking)
        self.db.flush()
        return booking

    def delete_booking(self, booking_id: str) -> bool:
        booking = self.get_booking(booking_id)
        if booking is None:
            return False
        self.db.delete(booking)
        return True

    def stats(self, today: date) -> dict:
        counts = dict(
            self.db.query(models.Booking.status, func.count(models.Booking.id))
            .group_by(models.Booking.status)
            .all()
        )
        bookings_on = (
            self.db.query(func.count(func.distinct(models.BookingItem.booking_id)))
            .join(models.Booking, models.Booking.id == models.BookingItem.booking_id)
        )
        today_bookings = bookings_on.filter(models.BookingItem.date == today).scalar() or 0
        upcoming = (
            bookings_on.filter(models.BookingItem.date >= today)
            .filter(models.Booking.status == BookingStatus.CONFIRMED)
            .scalar()
            or 0
        )
        revenue = (
            self.db.query(func.coalesce(func.sum(models.Booking.total_price), 0))
            .filter(models.Booking.status == BookingStatus.CONFIRMED)
            .scalar()
        )
        return {
            "total": sum(counts.values()),
            "pending": counts.get(BookingStatus.PENDING, 0),
            "confirmed": counts.get(BookingStatus.CONFIRMED, 0),
            "cancelled": counts.get(BookingStatus.CANCELLED, 0),
            "today_bookings": today_bookings,
            "upcoming_bookings": upcoming,
            "total_revenue": float(revenue or 0),
        }
