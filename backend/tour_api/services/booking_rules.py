"""
Static booking rules: the status transition table, pricing, booking numbers
and time-window arithmetic.

Nothing here touches the database. booking_service and webhook_service call
`next_status` before every write so that a transition missing from
TRANSITIONS is rejected the same way no matter which entry point asked for it.
"""

import random
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from tour_api.core.exceptions import InvalidStateError
from tour_api.models.booking import BookingStatus, ServiceType


class BookingEvent(str, Enum):
    UPDATE = "update"
    CANCEL = "cancel"
    CONFIRM = "confirm"
    COMPLETE = "complete"
    # Payment provider driven
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_CANCELLED = "payment_cancelled"


PENDING = BookingStatus.PENDING
CONFIRMED = BookingStatus.CONFIRMED
COMPLETED = BookingStatus.COMPLETED
CANCELLED = BookingStatus.CANCELLED

TRANSITIONS: dict[tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (PENDING, BookingEvent.UPDATE): PENDING,
    (PENDING, BookingEvent.CANCEL): CANCELLED,
    (CONFIRMED, BookingEvent.CANCEL): CANCELLED,
    (PENDING, BookingEvent.CONFIRM): CONFIRMED,
    (CONFIRMED, BookingEvent.COMPLETE): COMPLETED,
    (PENDING, BookingEvent.PAYMENT_EXPIRED): CANCELLED,
    (PENDING, BookingEvent.PAYMENT_CANCELLED): CANCELLED,
    # A completed checkout is authoritative regardless of the current status.
    **{(status, BookingEvent.PAYMENT_CONFIRMED): CONFIRMED for status in BookingStatus},
}

# Past participles used in the "A pending booking cannot be ..." message.
_EVENT_WORDING = {
    BookingEvent.UPDATE: "modified",
    BookingEvent.CANCEL: "cancelled",
    BookingEvent.CONFIRM: "confirmed",
    BookingEvent.COMPLETE: "completed",
    BookingEvent.PAYMENT_CONFIRMED: "confirmed by payment",
    BookingEvent.PAYMENT_EXPIRED: "expired",
    BookingEvent.PAYMENT_CANCELLED: "cancelled by payment",
}

BOOKING_NUMBER_PREFIX = "DAM"


def can_transition(current: str, event: BookingEvent) -> bool:
    return (BookingStatus(current), event) in TRANSITIONS


def next_status(current: str, event: BookingEvent) -> BookingStatus:
    """Return the target status or raise InvalidStateError."""
    target = TRANSITIONS.get((BookingStatus(current), event))
    if target is None:
        raise InvalidStateError(
            "booking_invalid_transition",
            status=current,
            event=_EVENT_WORDING[event],
        )
    return target


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hours_until(moment: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    return (ensure_aware(moment) - ensure_aware(now)).total_seconds() / 3600


def compute_price(
    entry_fee: Optional[Decimal],
    service_type: str,
    number_of_guests: int,
    default_nightly_rate: Decimal,
) -> Decimal:
    """
    Non-hotel bookings cost the place's entry fee (0 when it has none).
    Hotel bookings cost a nightly rate per guest, where a falsy entry fee
    (None or 0) falls back to `default_nightly_rate`.
    """
    if service_type == ServiceType.HOTEL.value:
        rate = Decimal(entry_fee) if entry_fee else default_nightly_rate
        return rate * number_of_guests
    return Decimal(entry_fee) if entry_fee else Decimal("0")


def generate_booking_number(now: Optional[datetime] = None) -> str:
    """DAM-<unix millis>-<0..999>. Uniqueness is enforced by the database."""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{BOOKING_NUMBER_PREFIX}-{millis}-{random.randint(0, 999)}"
