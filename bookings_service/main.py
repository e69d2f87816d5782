from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from common.cache import AVAILABILITY_PREFIX, get_cached_json, invalidate_availability, set_cached_json
from common.logging_config import get_logger

from . import models, schemas
from .auth import admin_auth_disabled, create_admin_token, get_current_admin, get_password_hash, verify_password
from .availability import check_overlap, get_availability
from .database import Base, engine, get_db
from .errors import BookingError, ConfigurationError, ConflictError, NotFoundError, ValidationError
from .lifecycle import BookingLifecycle
from .models import BookingStatus, ItemKind, ResourceKind
from .rate_limiter import booking_rate_limiter
from .repository import BookingRepository
from .settings_model import StudioSettings
from .timeutils import parse_clock

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Studio Booking Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "bookings"

logger = get_logger()
admin_logger = get_logger("admin")


def error_envelope(request: Request, status_code: int, detail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "service": SERVICE_NAME,
            "path": request.url.path,
            "method": request.method,
            "status_code": status_code,
            "detail": detail,
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"REQUEST: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"RESPONSE: {response.status_code} {request.method} {request.url.path}")
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_envelope(request, exc.status_code, exc.detail)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error on {request.method} {request.url.path}: {exc.message}")
        return error_envelope(request, exc.status_code, "Server misconfiguration, please contact the studio")
    return error_envelope(request, exc.status_code, exc.message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return error_envelope(request, 500, "Internal server error")


@app.get("/")
def root():
    """
    Health-check endpoint for the Bookings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": "bookings", "status": "running"}


@router_v1.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


def get_repository(db: Session = Depends(get_db)) -> BookingRepository:
    return BookingRepository(db)


def get_lifecycle(repository: BookingRepository = Depends(get_repository)) -> BookingLifecycle:
    return BookingLifecycle(repository)


# ---------- Admin authentication ----------


@router_v1.post("/admin/login", response_model=schemas.TokenRead)
def admin_login(
    credentials: schemas.AdminLogin,
    repository: BookingRepository = Depends(get_repository),
):
    """
    Exchange the shared admin password for a bearer token.

    Behavior
    --------
    - The token expires after ``ADMIN_TOKEN_TTL_MINUTES``.
    - With ``ADMIN_AUTH_DISABLED=1`` any password is accepted.

    Raises
    ------
    HTTPException
        401 if the password is wrong.
    """
    settings_row = repository.settings_row()
    if not admin_auth_disabled() and not verify_password(credentials.password, settings_row.admin_password_hash):
        admin_logger.warning("Admin login failed: incorrect shared password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
        )

    token, expires_at = create_admin_token(settings_row.token_version)
    admin_logger.info("Admin login succeeded")
    return schemas.TokenRead(access_token=token, expires_at=expires_at)


@router_v1.post("/admin/change-password")
def change_admin_password(
    change: schemas.PasswordChange,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Replace the shared admin password and revoke every issued token.

    Raises
    ------
    HTTPException
        401 if the current password is incorrect.
    """
    settings_row = repository.settings_row(lock=True)
    if not verify_password(change.current_password, settings_row.admin_password_hash):
        admin_logger.warning("Admin password change rejected: incorrect current password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password incorrect",
        )

    settings_row.admin_password_hash = get_password_hash(change.new_password)
    settings_row.token_version = (settings_row.token_version or 1) + 1
    settings_row.updated_at = models.utcnow()
    repository.db.commit()
    admin_logger.info("Admin password changed; existing tokens revoked")
    return {"success": True, "message": "Password changed successfully"}


# ---------- Settings ----------


@router_v1.get("/settings", response_model=schemas.SettingsRead)
def read_settings(repository: BookingRepository = Depends(get_repository)):
    """
    Public studio settings: operating hours, slot interval, pricing.

    The admin password hash is never included.
    """
    return repository.settings_row()


@router_v1.put("/settings", response_model=schemas.SettingsRead)
def update_settings(
    update: schemas.SettingsUpdate,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Merge a partial update into the settings singleton.

    Behavior
    --------
    - Omitted fields keep their stored values.
    - The merged result must form valid settings (opening before closing,
      positive slot interval, at least one rate bracket).
    - Prices of existing booking items are not recomputed.

    Raises
    ------
    ValidationError
        If the merged settings are inconsistent.
    """
    settings_row = repository.settings_row(lock=True)
    changes = update.model_dump(exclude_unset=True, mode="json")

    candidate = {
        "business_name": settings_row.business_name,
        "opening_time": settings_row.opening_time,
        "closing_time": settings_row.closing_time,
        "slot_interval": settings_row.slot_interval,
        "auto_confirm": settings_row.auto_confirm,
        "pricing": settings_row.pricing,
    }
    candidate.update({k: v for k, v in changes.items() if k != "contact_info"})
    try:
        validated = StudioSettings.model_validate(candidate)
    except ValueError as exc:
        raise ValidationError(f"Invalid settings: {exc}") from exc

    settings_row.business_name = validated.business_name
    settings_row.opening_time = validated.opening_time
    settings_row.closing_time = validated.closing_time
    settings_row.slot_interval = validated.slot_interval
    settings_row.auto_confirm = validated.auto_confirm
    settings_row.pricing = validated.pricing.model_dump(mode="json")
    if "contact_info" in changes:
        settings_row.contact_info = changes["contact_info"] or {}
    settings_row.updated_at = models.utcnow()
    repository.db.commit()
    repository.db.refresh(settings_row)

    invalidate_availability()
    admin_logger.info(f"Settings updated: {sorted(changes)}")
    return settings_row


# ---------- Availability ----------


def _availability(day: date, repository: BookingRepository) -> dict:
    cache_key = f"{AVAILABILITY_PREFIX}{day.isoformat()}"
    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    result = schemas.AvailabilityRead.model_validate(
        get_availability(repository, day, repository.load_settings())
    ).model_dump(mode="json")
    set_cached_json(cache_key, result, ttl_seconds=60)
    return result


@router_v1.get("/availability", response_model=schemas.AvailabilityRead)
def read_availability(
    date: date = Query(..., description="Day to inspect (YYYY-MM-DD)"),
    repository: BookingRepository = Depends(get_repository),
):
    """
    Show which rental slots of a day are taken.

    Returns
    -------
    AvailabilityRead
        ``confirmed_slots`` (confirmed bookings and class sessions),
        ``pending_slots`` (awaiting staff approval), and opening hours.
    """
    return _availability(date, repository)


@router_v1.get("/rentals/availability", response_model=schemas.AvailabilityRead)
def read_rental_availability(
    date: date = Query(...),
    repository: BookingRepository = Depends(get_repository),
):
    return _availability(date, repository)


# ---------- Catalog ----------


def _catalog_read(resource: models.CatalogResource, used: int) -> schemas.CatalogResourceRead:
    read = schemas.CatalogResourceRead.model_validate(resource)
    read.used_capacity = used
    read.available_capacity = max(resource.capacity - used, 0)
    return read


def _catalog_listing(resources: List[models.CatalogResource], repository: BookingRepository):
    tracker = repository.capacity_tracker([r.id for r in resources])
    return [_catalog_read(r, tracker.used_capacity(r.id)) for r in resources]


def _validated_catalog_values(
    resource_in: schemas.CatalogResourceCreate,
    repository: BookingRepository,
    resource_id: Optional[int] = None,
) -> dict:
    """
    Check a catalog resource against operating hours and existing rentals.

    Raises
    ------
    ValidationError
        If the time range is empty or outside operating hours.
    ConflictError
        If the resource overlaps another class session, or a class
        session would overlap active room rentals.
    """
    settings = repository.lock_settings()
    start = parse_clock(resource_in.start_time)
    end = parse_clock(resource_in.end_time)
    if end <= start:
        raise ValidationError("End time must be after start time.")
    if not settings.within_operating_hours(start, end):
        raise ValidationError(
            f"Resource must fall within studio hours ({settings.opening_time}-{settings.closing_time})."
        )
    sessions = repository.class_session_intervals(resource_in.date, exclude_resource_id=resource_id)
    if check_overlap(resource_in.date, start, end, sessions).conflict:
        raise ConflictError("Resource overlaps a scheduled class session.")
    if resource_in.kind == ResourceKind.CLASS_SESSION:
        if check_overlap(resource_in.date, start, end, repository.room_intervals(resource_in.date)).conflict:
            raise ConflictError("Class session overlaps an existing room booking.")

    values = resource_in.model_dump()
    values["duration"] = end - start
    return values


@router_v1.get("/catalog", response_model=schemas.CatalogListing)
def list_catalog(repository: BookingRepository = Depends(get_repository)):
    """
    Upcoming catalog resources with their remaining capacity.

    Returns
    -------
    CatalogListing
        Class sessions and room slots listed separately.
    """
    enriched = _catalog_listing(repository.list_resources(), repository)
    return {
        "classes": [r for r in enriched if r.kind == ResourceKind.CLASS_SESSION],
        "room_slots": [r for r in enriched if r.kind == ResourceKind.ROOM_SLOT],
    }


@router_v1.get("/catalog/{resource_id}", response_model=schemas.CatalogResourceRead)
def read_catalog_resource(resource_id: int, repository: BookingRepository = Depends(get_repository)):
    resource = repository.get_resource(resource_id)
    if resource is None:
        raise NotFoundError("Catalog resource not found")
    return _catalog_read(resource, repository.used_capacity(resource.id))


@router_v1.get("/catalog/{resource_id}/capacity", response_model=schemas.CapacityRead)
def read_used_capacity(resource_id: int, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    """
    Headcount currently held on a catalog resource.

    Pending and confirmed bookings count; cancelled ones do not.

    Raises
    ------
    NotFoundError
        If the resource does not exist.
    """
    used = lifecycle.used_capacity(resource_id)
    resource = lifecycle.repository.get_resource(resource_id)
    return {
        "resource_id": resource_id,
        "capacity": resource.capacity,
        "used_capacity": used,
        "available_capacity": max(resource.capacity - used, 0),
    }


@router_v1.get("/admin/catalog", response_model=List[schemas.CatalogResourceRead])
def admin_list_catalog(
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    return _catalog_listing(repository.list_resources(include_past=True), repository)


@router_v1.post(
    "/admin/catalog",
    response_model=schemas.CatalogResourceRead,
    status_code=status.HTTP_201_CREATED,
)
def create_catalog_resource(
    resource_in: schemas.CatalogResourceCreate,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Create a class session or room slot.

    Access
    ------
    - Admin only.

    Raises
    ------
    ValidationError
        If the time range is invalid or outside operating hours.
    ConflictError
        If a class session overlaps active room rentals.
    """
    resource = models.CatalogResource(**_validated_catalog_values(resource_in, repository))
    repository.db.add(resource)
    repository.db.commit()
    repository.db.refresh(resource)

    invalidate_availability()
    admin_logger.info(f"Catalog resource created | id={resource.id} | {resource.kind.value} | {resource.name}")
    return _catalog_read(resource, 0)


@router_v1.put("/admin/catalog/{resource_id}", response_model=schemas.CatalogResourceRead)
def update_catalog_resource(
    resource_id: int,
    resource_in: schemas.CatalogResourceCreate,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Replace a catalog resource's details.

    Behavior
    --------
    - Items already booked keep the date, times and price they were
      created with.
    - Capacity cannot drop below the headcount already held.
    """
    values = _validated_catalog_values(resource_in, repository, resource_id)
    resource = repository.get_resource(resource_id)
    if resource is None:
        raise NotFoundError("Catalog resource not found")

    used = repository.used_capacity(resource_id)
    if values["capacity"] < used:
        raise ConflictError(f"Capacity cannot be lower than the {used} seat(s) already booked.")

    for field, value in values.items():
        setattr(resource, field, value)
    resource.updated_at = models.utcnow()
    repository.db.commit()
    repository.db.refresh(resource)

    invalidate_availability()
    admin_logger.info(f"Catalog resource updated | id={resource.id}")
    return _catalog_read(resource, used)


@router_v1.delete("/admin/catalog/{resource_id}")
def delete_catalog_resource(
    resource_id: int,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Delete a catalog resource.

    Booking items that referenced it keep their data but lose the link.
    """
    resource = repository.get_resource(resource_id)
    if resource is None:
        raise NotFoundError("Catalog resource not found")

    repository.detach_resource(resource_id)
    repository.db.delete(resource)
    repository.db.commit()

    invalidate_availability()
    admin_logger.info(f"Catalog resource deleted | id={resource_id}")
    return {"success": True}


# ---------- Create booking ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_rate_limiter)],
)
def create_booking(
    booking_in: schemas.BookingCreate,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """
    Request a booking made of one or more line items.

    Behavior
    --------
    - Each item is checked against operating hours, the other items of the
      request, existing pending/confirmed holds, scheduled class sessions
      and catalog capacity.
    - Items are priced when created; the period type is frozen.
    - The booking starts ``pending`` unless auto-confirm is enabled.

    Parameters
    ----------
    booking_in : BookingCreate
        Contact details and line items.

    Returns
    -------
    BookingCreated
        The stored booking and a message for the customer.

    Raises
    ------
    ValidationError
        400 for invalid items.
    ConflictError
        409 when the time is taken or a class is full.
    NotFoundError
        404 for an unknown catalog resource.
    """
    booking = lifecycle.create(booking_in, booking_in.items)
    invalidate_availability()

    if booking.status == BookingStatus.CONFIRMED:
        message = "Booking confirmed successfully!"
    else:
        message = "Booking created successfully. Please send payment confirmation."
    return {"success": True, "booking": booking, "message": message}


# ---------- Admin: list / read / transition / delete ----------


@router_v1.get("/bookings", response_model=List[schemas.BookingRead])
def list_bookings(
    date: Optional[date] = Query(default=None),
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Admin: list bookings, optionally for one day and/or one status.

    Returns
    -------
    List[BookingRead]
        Matching bookings, newest first.
    """
    return repository.list_bookings(day=date, status=status_filter)


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def read_booking(booking_id: str, repository: BookingRepository = Depends(get_repository)):
    booking = repository.get_booking(booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


@router_v1.patch("/bookings/{booking_id}/status", response_model=schemas.BookingRead)
def update_booking_status(
    booking_id: str,
    update: schemas.BookingStatusUpdate,
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    _: Dict = Depends(get_current_admin),
):
    """
    Admin: approve or cancel a booking.

    Behavior
    --------
    - ``pending -> confirmed`` re-validates every item; if the slot was
      confirmed for someone else in the meantime or the class is full,
      the booking stays ``pending``.
    - ``pending|confirmed -> cancelled`` always succeeds and frees the
      held time and seats immediately.
    - Re-applying the current status is accepted.

    Raises
    ------
    NotFoundError
        404 for an unknown booking.
    ValidationError
        400 for a transition the state machine forbids.
    ConflictError
        409 when re-validation fails.
    """
    booking = lifecycle.transition(booking_id, update.status, update.admin_notes)
    invalidate_availability()
    admin_logger.info(f"Booking {booking.id} set to {booking.status.value}")
    return booking


@router_v1.delete("/bookings/{booking_id}")
def delete_booking(
    booking_id: str,
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Admin: permanently delete a booking and its items.
    """
    if not repository.delete_booking(booking_id):
        raise NotFoundError("Booking not found")
    repository.db.commit()

    invalidate_availability()
    admin_logger.info(f"Booking {booking_id} deleted")
    return {"success": True, "message": "Booking deleted successfully"}


# ---------- Admin: stats / daily overview ----------


@router_v1.get("/stats", response_model=schemas.StatsRead)
def read_stats(
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    return repository.stats(date.today())


@router_v1.get("/admin/overview")
def daily_overview(
    date: date = Query(...),
    repository: BookingRepository = Depends(get_repository),
    _: Dict = Depends(get_current_admin),
):
    """
    Admin: everything happening in the studio on one day.

    Returns
    -------
    dict
        ``studio_sessions``: room rentals ordered by start time.
        ``class_sessions``: class sessions with their attendees and
        remaining seats.
    """
    studio_sessions = []
    attendees_by_resource: Dict[int, list] = {}

    for booking in repository.list_bookings(day=date):
        if booking.status == BookingStatus.CANCELLED:
            continue
        for item in booking.items:
            if item.date != date:
                continue
            entry = {
                "booking_id": booking.id,
                "customer_name": booking.customer_name,
                "email": booking.email,
                "phone": booking.phone,
                "headcount": item.headcount,
                "status": booking.status.value,
                "notes": booking.admin_notes,
            }
            if item.kind == ItemKind.ROOM_RENTAL:
                studio_sessions.append({**entry, "start_time": item.start_time, "end_time": item.end_time})
            elif item.catalog_resource_id:
                attendees_by_resource.setdefault(item.catalog_resource_id, []).append(entry)

    resources = repository.get_resources(attendees_by_resource)
    class_sessions = []
    for resource_id, attendees in attendees_by_resource.items():
        resource = resources.get(resource_id)
        if resource is None:
            continue
        total = sum(a["headcount"] for a in attendees)
        class_sessions.append({
            "resource_id": resource_id,
            "name": resource.name,
            "instructor_name": resource.instructor_name,
            "start_time": resource.start_time,
            "end_time": resource.end_time,
            "capacity": resource.capacity,
            "total_participants": total,
            "seats_remaining": max(resource.capacity - total, 0),
            "attendees": sorted(attendees, key=lambda a: a["customer_name"].lower()),
        })

    return {
        "date": date.isoformat(),
        "studio_sessions": sorted(studio_sessions, key=lambda s: s["start_time"]),
        "class_sessions": sorted(class_sessions, key=lambda s: s["start_time"]),
    }


app.include_router(router_v1)
