"""
Booking lifecycle: creation and the pending/confirmed/cancelled state machine.

Every public operation assumes it owns the session's transaction: it takes
the settings row lock first, performs its checks against freshly queried
state, writes, and commits. Rejections raise before anything is written.
"""
import secrets
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from common.logging_config import get_logger

from . import models
from .availability import Interval, check_overlap
from .capacity import CapacityTracker
from .errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from .models import BookingStatus, ItemKind, PeriodType, utcnow
from .pricing import policy_for_item, resolve_bracket
from .repository import BookingRepository
from .settings_model import StudioSettings
from .timeutils import format_clock, parse_clock

logger = get_logger("booking")

# status -> statuses it may move to (besides itself)
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
}


def generate_booking_id() -> str:
    stamp = format(int(time.time() * 1000), "x")
    return f"BK-{stamp}-{secrets.token_hex(6)}".upper()


@dataclass
class PricedItem:
    catalog_resource_id: Optional[int]
    kind: ItemKind
    date: date
    start: int
    end: int
    headcount: int
    price: Decimal
    period_type: PeriodType

    @property
    def duration(self) -> int:
        return self.end - self.start

    def as_interval(self) -> Interval:
        return Interval(date=self.date, start=self.start, end=self.end, status=BookingStatus.PENDING)

    def to_model(self) -> models.BookingItem:
        return models.BookingItem(
            catalog_resource_id=self.catalog_resource_id,
            kind=self.kind,
            date=self.date,
            start_time=format_clock(self.start),
            end_time=format_clock(self.end),
            duration=self.duration,
            headcount=self.headcount,
            price=self.price,
            period_type=self.period_type,
        )


class BookingLifecycle:
    """
    Create bookings and move them through their statuses.

    Parameters
    ----------
    repository : BookingRepository
        Storage access bound to the current session.
    """

    def __init__(self, repository: BookingRepository):
        self.repository = repository
        self.db = repository.db

    # ---------- Create ----------

    def create(self, contact, items: Iterable) -> models.Booking:
        """
        Validate, price and persist a new booking with its items.

        Parameters
        ----------
        contact
            Object with ``customer_name``, ``email``, ``phone`` and
            ``notes`` attributes.
        items : iterable
            Line items with ``catalog_resource_id``, ``kind``, ``date``,
            ``start_time``, ``end_time`` and ``headcount`` attributes.

        Returns
        -------
        Booking
            The stored booking, ``pending`` or (with auto-confirm)
            ``confirmed``.

        Raises
        ------
        ValidationError
            Bad times, headcount above the largest bracket, times outside
            operating hours, or overlapping items within the request.
        ConflictError
            Collision with existing holds or not enough seats left.
        NotFoundError
            Unknown catalog resource.
        """
        items = list(items)
        if not items:
            raise ValidationError("At least one booking item is required.")

        settings = self.repository.lock_settings()
        resource_ids = [i.catalog_resource_id for i in items if i.catalog_resource_id]
        tracker = self.repository.capacity_tracker(resource_ids)

        priced: List[PricedItem] = []
        for index, request in enumerate(items, start=1):
            priced.append(self._validate_item(f"Item #{index}", request, settings, tracker, priced))

        status = BookingStatus.CONFIRMED if settings.auto_confirm else BookingStatus.PENDING
        now = utcnow()
        booking = models.Booking(
            id=generate_booking_id(),
            customer_name=contact.customer_name,
            email=contact.email,
            phone=contact.phone,
            notes=contact.notes or "",
            status=status,
            total_price=sum((p.price for p in priced), Decimal("0.00")),
            total_people=sum(p.headcount for p in priced),
            created_at=now,
            updated_at=now,
            confirmed_at=now if status == BookingStatus.CONFIRMED else None,
            items=[p.to_model() for p in priced],
        )
        self.repository.add_booking(booking)
        self.db.commit()
        self.db.refresh(booking)

        logger.info(
            f"Booking created | id={booking.id} | status={booking.status.value} "
            f"| items={len(priced)} | total={booking.total_price}"
        )
        return booking

    def _validate_item(
        self,
        label: str,
        request,
        settings: StudioSettings,
        tracker: CapacityTracker,
        accepted: List[PricedItem],
    ) -> PricedItem:
        headcount = request.headcount
        if headcount is None or headcount <= 0:
            raise ValidationError(f"{label}: headcount must be a positive integer.")
        if headcount > settings.max_headcount:
            raise ValidationError(f"{label}: maximum of {settings.max_headcount} people per session.")

        resource = None
        if request.catalog_resource_id:
            resource = self.repository.get_resource(request.catalog_resource_id)
            if resource is None:
                raise NotFoundError(f"{label}: linked catalog resource not found.")
            kind = resource.kind.item_kind
            day = resource.date
            start = parse_clock(resource.start_time)
            end = parse_clock(resource.end_time)
            try:
                tracker.admit(resource.id, headcount)
            except ConflictError as exc:
                logger.info(f"Capacity rejected | resource={resource.id} | {exc.message}")
                raise ConflictError(f"{label}: {exc.message}") from exc
        else:
            kind = ItemKind(request.kind or ItemKind.ROOM_RENTAL)
            if kind == ItemKind.CLASS_ENROLLMENT:
                raise ValidationError(f"{label}: class enrollments must reference a catalog resource.")
            if not (request.date and request.start_time and request.end_time):
                raise ValidationError(f"{label}: date, start time and end time are required.")
            day = request.date
            start = parse_clock(request.start_time)
            end = parse_clock(request.end_time)

        if end <= start:
            raise ValidationError(f"{label}: end time must be after start time.")

        if kind == ItemKind.ROOM_RENTAL:
            self._check_room_item(label, day, start, end, settings, accepted)

        policy = policy_for_item(kind, settings, resource)
        if kind == ItemKind.ROOM_RENTAL:
            period_type = policy.classify_period(day, start, end)
        else:
            period_type = PeriodType.NORMAL
        price = policy.price(end - start, headcount, period_type)
        logger.debug(f"{label} priced | policy={policy.name} | period={period_type.value} | price={price}")

        return PricedItem(
            catalog_resource_id=resource.id if resource is not None else None,
            kind=kind,
            date=day,
            start=start,
            end=end,
            headcount=headcount,
            price=price,
            period_type=period_type,
        )

    def _check_room_item(
        self,
        label: str,
        day: date,
        start: int,
        end: int,
        settings: StudioSettings,
        accepted: List[PricedItem],
    ) -> None:
        if not settings.within_operating_hours(start, end):
            raise ValidationError(
                f"{label}: selected time must fall within studio hours "
                f"({settings.opening_time}-{settings.closing_time})."
            )

        same_request = [p.as_interval() for p in accepted if p.kind == ItemKind.ROOM_RENTAL]
        if check_overlap(day, start, end, same_request).conflict:
            raise ValidationError(f"{label}: selected time overlaps with another session in your booking.")

        result = check_overlap(day, start, end, self.repository.blocking_intervals(day))
        if result.conflict:
            logger.info(
                f"Room conflict | date={day} | {format_clock(start)}-{format_clock(end)} "
                f"| with={[c.booking_id or c.label for c in result.conflicts]}"
            )
            raise ConflictError(f"{label}: selected time overlaps with an existing booking.")

    # ---------- Transitions ----------

    def transition(
        self, booking_id: str, target: BookingStatus, admin_notes: Optional[str] = None
    ) -> models.Booking:
        """
        Move a booking to ``target``.

        ``pending -> confirmed`` re-validates every item against the other
        confirmed holds and class sessions first; ``pending|confirmed ->
        cancelled`` is always allowed. Re-applying the current status is a
        no-op success, though confirming still re-validates.

        Raises
        ------
        NotFoundError
            Unknown booking id.
        InvalidTransitionError
            Leaving ``cancelled`` or going back to ``pending``.
        ConflictError
            Re-validation failed; the booking keeps its status.
        """
        target = BookingStatus(target)
        settings = self.repository.lock_settings()
        booking = self.repository.get_booking(booking_id, lock=True)
        if booking is None:
            raise NotFoundError("Booking not found")

        current = booking.status
        if target != current and target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot change booking status from {current.value} to {target.value}."
            )

        if target == BookingStatus.CONFIRMED:
            self.revalidate(booking, settings)

        now = utcnow()
        if target != current:
            booking.status = target
            if target == BookingStatus.CONFIRMED and booking.confirmed_at is None:
                booking.confirmed_at = now
            if target == BookingStatus.CANCELLED and booking.cancelled_at is None:
                booking.cancelled_at = now
        if admin_notes is not None:
            booking.admin_notes = admin_notes
        if target != current or admin_notes is not None:
            booking.updated_at = now

        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Booking transition | id={booking.id} | {current.value} -> {target.value}")
        return booking

    def confirm(self, booking_id: str, admin_notes: Optional[str] = None) -> models.Booking:
        return self.transition(booking_id, BookingStatus.CONFIRMED, admin_notes)

    def cancel(self, booking_id: str, admin_notes: Optional[str] = None) -> models.Booking:
        return self.transition(booking_id, BookingStatus.CANCELLED, admin_notes)

    def revalidate(self, booking: models.Booking, settings: StudioSettings) -> None:
        """
        Check every item of ``booking`` against current binding holds.

        The booking's own items are excluded. Only confirmed bookings of
        other customers (plus scheduled class sessions) count here, so of
        two pending bookings admitted for the same slot the first one
        confirmed wins and the other is rejected.

        Note: unlike creation, which counts pending and confirmed holds,
        pending bookings of other customers are ignored here.
        """
        confirmed_only = [BookingStatus.CONFIRMED]
        resource_ids = [i.catalog_resource_id for i in booking.items if i.catalog_resource_id]
        tracker = self.repository.capacity_tracker(resource_ids, counting_statuses=confirmed_only)

        for item in booking.items:
            if item.kind == ItemKind.ROOM_RENTAL:
                start, end = parse_clock(item.start_time), parse_clock(item.end_time)
                result = check_overlap(
                    item.date,
                    start,
                    end,
                    self.repository.blocking_intervals(item.date),
                    exclude_booking_id=booking.id,
                    blocking_statuses=confirmed_only,
                )
                if result.conflict:
                    logger.warning(f"Confirm rejected | id={booking.id} | slot taken on {item.date}")
                    raise ConflictError("Cannot confirm booking. Time slot is already taken.")
                resolve_bracket(settings.pricing.brackets, item.headcount)

            if item.catalog_resource_id:
                resource = tracker.resources.get(item.catalog_resource_id)
                if resource is None:
                    raise ConflictError("Cannot confirm booking. Linked catalog resource no longer exists.")
                if not tracker.can_admit(resource.id, item.headcount, exclude_booking_id=booking.id):
                    logger.warning(f"Confirm rejected | id={booking.id} | capacity exceeded for {resource.name}")
                    raise ConflictError(f"Cannot confirm booking. Capacity exceeded for {resource.name}.")
                tracker.admit(resource.id, item.headcount, exclude_booking_id=booking.id)

    # ---------- Queries ----------

    def used_capacity(self, resource_id: int) -> int:
        if self.repository.get_resource(resource_id) is None:
            raise NotFoundError("Catalog resource not found")
        return self.repository.used_capacity(resource_id)
