"""
Booking lifecycle service.

STATE MACHINE
=============

    create ──► pending ──confirm──► confirmed ──complete──► completed
                  │                     │
                  └──────cancel─────────┴──────► cancelled

  Guards (checked after the transition table in booking_rules):
  - update:   pending, and at least UPDATE_WINDOW_HOURS (48) before the date
  - cancel:   pending or confirmed, and at least CANCEL_WINDOW_HOURS (24) before
  - confirm:  pending
  - complete: confirmed, and the booking date has been reached

  Window boundaries are inclusive: exactly 24.0 hours before the date still
  allows a cancellation.

CONCURRENCY
===========

Every transition is a single conditional UPDATE:

    UPDATE bookings SET ..., version = version + 1
    WHERE id = :id AND version = :version_we_read

Zero affected rows means another request changed the booking after we read
it. That is reported to the caller as ConflictError (409) and never retried
here: replaying a user's intent against a state they have not seen could,
for example, cancel a booking that was confirmed in the meantime.

Notifications are written after the state change and are best-effort.
"""

import functools
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tour_api.core.config import get_settings
from tour_api.core.exceptions import (
    ConflictError,
    DomainError,
    DuplicateBookingNumberError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tour_api.core.logging import get_logger
from tour_api.core.metrics import (
    booking_number_collisions,
    booking_transition_latency,
    record_transition,
)
from tour_api.models.booking import Booking, BookingStatus, PaymentStatus, ServiceType
from tour_api.models.place import Place
from tour_api.schemas.booking import BookingCreate, BookingUpdate
from tour_api.services import notification_service
from tour_api.services.booking_rules import (
    BookingEvent,
    compute_price,
    ensure_aware,
    generate_booking_number,
    hours_until,
    next_status,
)

logger = get_logger(__name__)
settings = get_settings()

MAX_BOOKING_NUMBER_ATTEMPTS = 5
SERVICE_TYPES = {s.value for s in ServiceType}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def instrumented(transition: str):
    """Time a lifecycle operation and count its outcome."""

    def decorator(func_):
        @functools.wraps(func_)
        async def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func_(*args, **kwargs)
            except ConflictError:
                record_transition(transition, "conflict")
                raise
            except DomainError:
                record_transition(transition, "rejected")
                raise
            finally:
                booking_transition_latency.labels(transition=transition).observe(
                    time.perf_counter() - start
                )
            record_transition(transition, "success")
            return result

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_booking_or_404(db: AsyncSession, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("booking_not_found")
    return booking


async def get_user_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    with_place: bool = False,
) -> Booking:
    """A booking owned by `user_id`. Someone else's booking is reported as not found."""
    query = select(Booking).where(Booking.id == booking_id, Booking.user_id == user_id)
    if with_place:
        query = query.options(selectinload(Booking.place))
    booking = (await db.execute(query)).scalar_one_or_none()
    if booking is None:
        raise NotFoundError("booking_not_found")
    return booking


async def get_user_bookings(
    db: AsyncSession,
    user_id: int,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Booking], int]:
    query = select(Booking).where(Booking.user_id == user_id)
    if status:
        query = query.where(Booking.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.options(selectinload(Booking.place))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_booking_stats(db: AsyncSession) -> dict:
    """Counts per status and confirmed+paid revenue. Computed on every call."""
    rows = await db.execute(select(Booking.status, func.count()).group_by(Booking.status))
    by_status = {status: count for status, count in rows.all()}

    revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Booking.total_amount), 0)).where(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.payment_status == PaymentStatus.PAID.value,
            )
        )
    ).scalar_one()

    return {
        "total": sum(by_status.values()),
        "pending": by_status.get(BookingStatus.PENDING.value, 0),
        "confirmed": by_status.get(BookingStatus.CONFIRMED.value, 0),
        "completed": by_status.get(BookingStatus.COMPLETED.value, 0),
        "cancelled": by_status.get(BookingStatus.CANCELLED.value, 0),
        "total_revenue": Decimal(revenue),
    }


async def list_all_bookings(
    db: AsyncSession,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    place_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Booking], int, dict]:
    """Operator listing with filters; returns (bookings, total, stats)."""
    query = select(Booking)
    if status:
        query = query.where(Booking.status == status)
    if user_id:
        query = query.where(Booking.user_id == user_id)
    if place_id:
        query = query.where(Booking.place_id == place_id)
    if start_date:
        query = query.where(Booking.booking_date >= start_date)
    if end_date:
        query = query.where(Booking.booking_date <= end_date)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.options(selectinload(Booking.place))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    stats = await get_booking_stats(db)
    return list(result.scalars().all()), total, stats


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def validate_create(
    db: AsyncSession,
    data: BookingCreate,
    now: Optional[datetime] = None,
) -> Place:
    """Check a creation request and return the referenced place."""
    if not data.place_id or not data.service_type or not data.booking_date:
        raise ValidationError("booking_required_fields")

    if data.service_type not in SERVICE_TYPES:
        raise ValidationError("booking_invalid_service_type", service_type=data.service_type)

    place = await db.get(Place, data.place_id)
    if place is None:
        raise NotFoundError("place_not_found")

    now = now or _utcnow()
    if ensure_aware(data.booking_date) < now:
        raise ValidationError("booking_date_in_past")

    return place


async def _insert_booking(db: AsyncSession, booking: Booking) -> None:
    number = booking.booking_number
    db.add(booking)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        if "booking_number" in str(e.orig).lower():
            raise DuplicateBookingNumberError(detail=number)
        raise


@instrumented("create")
async def create_booking(
    db: AsyncSession,
    user_id: int,
    data: BookingCreate,
    now: Optional[datetime] = None,
) -> Booking:
    now = now or _utcnow()
    place = await validate_create(db, data, now)
    total_amount = compute_price(
        place.entry_fee,
        data.service_type,
        data.number_of_guests,
        settings.DEFAULT_NIGHTLY_RATE,
    )
    fields = dict(
        user_id=user_id,
        place_id=place.id,
        service_type=data.service_type,
        booking_date=ensure_aware(data.booking_date).astimezone(timezone.utc),
        number_of_guests=data.number_of_guests,
        total_amount=total_amount,
        currency=settings.DEFAULT_CURRENCY,
        status=BookingStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        special_requests=data.special_requests or None,
        version=1,
    )

    for attempt in range(1, MAX_BOOKING_NUMBER_ATTEMPTS + 1):
        booking = Booking(booking_number=generate_booking_number(), **fields)
        try:
            await _insert_booking(db, booking)
        except DuplicateBookingNumberError as e:
            booking_number_collisions.inc()
            logger.warning("booking_number_collision", booking_number=e.detail, attempt=attempt)
            continue

        await db.refresh(booking)
        logger.info(
            "booking_created",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            user_id=user_id,
            place_id=booking.place_id,
            service_type=booking.service_type,
            total_amount=str(booking.total_amount),
            attempt=attempt,
        )
        await notification_service.notify_booking_created(db, booking)
        return booking

    raise ConflictError("booking_number_collision")


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def guarded_update(db: AsyncSession, booking: Booking, **values) -> Booking:
    """
    Write `values` only if the row still carries the version we read, and
    bump it. Raises ConflictError when the row moved underneath us.
    """
    read_version = booking.version
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.version == read_version)
        .values(version=Booking.version + 1, updated_at=_utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "booking_version_conflict",
            booking_id=booking.id,
            read_version=read_version,
            fields=sorted(values),
        )
        raise ConflictError("booking_modified_concurrently")

    await db.refresh(booking)
    return booking


async def apply_transition(
    db: AsyncSession,
    booking: Booking,
    target: BookingStatus,
    **values,
) -> Booking:
    return await guarded_update(db, booking, status=target.value, **values)


@instrumented("update")
async def update_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    data: BookingUpdate,
    now: Optional[datetime] = None,
) -> Booking:
    booking = await get_user_booking(db, booking_id, user_id)
    target = next_status(booking.status, BookingEvent.UPDATE)

    if hours_until(booking.booking_date, now) < settings.UPDATE_WINDOW_HOURS:
        raise InvalidStateError("booking_update_window", hours=settings.UPDATE_WINDOW_HOURS)

    changes = {}
    if data.number_of_guests is not None:
        changes["number_of_guests"] = data.number_of_guests
        if booking.service_type == ServiceType.HOTEL.value:
            place = await db.get(Place, booking.place_id)
            if place is not None:
                changes["total_amount"] = compute_price(
                    place.entry_fee,
                    booking.service_type,
                    data.number_of_guests,
                    settings.DEFAULT_NIGHTLY_RATE,
                )
    if "special_requests" in data.model_fields_set:
        changes["special_requests"] = data.special_requests or None

    booking = await apply_transition(db, booking, target, **changes)
    logger.info("booking_updated", booking_id=booking.id, fields=sorted(changes))
    return booking


@instrumented("cancel")
async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    booking = await get_user_booking(db, booking_id, user_id)
    target = next_status(booking.status, BookingEvent.CANCEL)

    if hours_until(booking.booking_date, now) < settings.CANCEL_WINDOW_HOURS:
        raise InvalidStateError("booking_cancel_window", hours=settings.CANCEL_WINDOW_HOURS)

    booking = await apply_transition(
        db,
        booking,
        target,
        cancelled_at=now or _utcnow(),
        cancellation_reason=reason or None,
    )
    logger.info("booking_cancelled", booking_id=booking.id, user_id=user_id)
    await notification_service.notify_booking_cancelled(db, booking)
    return booking


@instrumented("confirm")
async def confirm_booking(
    db: AsyncSession,
    booking_id: int,
    payment_method: Optional[str] = None,
    transaction_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    booking = await get_booking_or_404(db, booking_id)
    target = next_status(booking.status, BookingEvent.CONFIRM)

    booking = await apply_transition(
        db,
        booking,
        target,
        payment_status=PaymentStatus.PAID.value,
        payment_method=payment_method or "cash",
        transaction_id=transaction_id or None,
        confirmed_at=now or _utcnow(),
    )
    logger.info(
        "booking_confirmed",
        booking_id=booking.id,
        payment_method=booking.payment_method,
        transaction_id=booking.transaction_id,
    )
    await notification_service.notify_booking_confirmed(db, booking)
    return booking


@instrumented("complete")
async def complete_booking(
    db: AsyncSession,
    booking_id: int,
    now: Optional[datetime] = None,
) -> Booking:
    booking = await get_booking_or_404(db, booking_id)
    target = next_status(booking.status, BookingEvent.COMPLETE)

    now = now or _utcnow()
    if ensure_aware(booking.booking_date) > now:
        raise InvalidStateError("booking_complete_too_early")

    booking = await apply_transition(db, booking, target, completed_at=now)
    logger.info("booking_completed", booking_id=booking.id)
    return booking
