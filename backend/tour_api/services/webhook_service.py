"""
Payment webhook reconciliation.

DELIVERY
========

  provider ──POST──► verify signature ──► INSERT payment_events ──► 200
                                              │ (unique provider id)
                                              ▼
                           process_event / periodic worker
                                              │
                       apply handler ──ok──► processed
                             │
                           error ──► pending, next_attempt_at = now + backoff
                                      └── attempts >= OUTBOX_MAX_ATTEMPTS ──► dead

The endpoint never applies an event inline. Once the row is committed the
provider has nothing left to retry, and a failure while applying the event
stays visible in the table instead of only in logs.

Each attempt is claimed with a conditional UPDATE on (`status`, `attempts`),
so the post-request task and the periodic worker never apply the same
attempt twice. The claim also pushes `next_attempt_at` out by
OUTBOX_LEASE_SECONDS, which acts as a lease: a slow attempt is not claimed
again while it runs, and a worker that dies mid-attempt leaves the row due
again later.

HANDLER POLICY
==============

  checkout.session.completed     authoritative: confirm + paid whatever the
                                 current status; re-read and retry on a
                                 version conflict
  checkout.session.expired       only while status == pending -> cancelled
  payment_intent.succeeded       only while payment_status == pending -> paid
  payment_intent.payment_failed  only while status == pending -> payment failed,
                                 status unchanged
  payment_intent.canceled        only while status == pending -> cancelled

Every handler is idempotent: replaying an event against a booking that has
already moved on is a no-op.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tour_api.core.config import get_settings
from tour_api.core.exceptions import ConflictError
from tour_api.core.logging import get_logger
from tour_api.core.metrics import outbox_backlog, record_webhook_event
from tour_api.models.booking import Booking, BookingStatus, PaymentStatus
from tour_api.models.payment_event import EVENT_DEAD, EVENT_PENDING, EVENT_PROCESSED, PaymentEvent
from tour_api.services import notification_service
from tour_api.services.booking_rules import BookingEvent, can_transition, next_status
from tour_api.services.booking_service import apply_transition, guarded_update

logger = get_logger(__name__)
settings = get_settings()

APPLIED = "applied"
SKIPPED = "skipped"

AUTHORITATIVE_RETRIES = 3

REASON_SESSION_EXPIRED = "Payment session expired"
REASON_PAYMENT_FAILED = "Payment failed"
REASON_PAYMENT_CANCELLED = "Payment was cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _booking_id(obj: dict) -> Optional[int]:
    raw = (obj.get("metadata") or {}).get("bookingId")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


async def _load_booking(db: AsyncSession, obj: dict) -> Optional[Booking]:
    booking_id = _booking_id(obj)
    if booking_id is None:
        logger.warning("webhook_missing_booking_metadata", object_id=obj.get("id"))
        return None
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if booking is None:
        logger.warning("webhook_booking_not_found", booking_id=booking_id, object_id=obj.get("id"))
    return booking


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_checkout_completed(db: AsyncSession, obj: dict) -> str:
    if not (obj.get("metadata") or {}).get("userId"):
        logger.warning("webhook_missing_booking_metadata", object_id=obj.get("id"))
        return SKIPPED

    for attempt in range(1, AUTHORITATIVE_RETRIES + 1):
        booking = await _load_booking(db, obj)
        if booking is None:
            return SKIPPED

        previous_status = booking.status
        target = next_status(booking.status, BookingEvent.PAYMENT_CONFIRMED)
        try:
            await apply_transition(
                db,
                booking,
                target,
                payment_status=PaymentStatus.PAID.value,
                payment_method="stripe",
                transaction_id=obj.get("payment_intent") or obj.get("id"),
                confirmed_at=_utcnow(),
            )
        except ConflictError:
            logger.info("webhook_confirm_retry", booking_id=booking.id, attempt=attempt)
            continue

        logger.info(
            "payment_confirmed",
            booking_id=booking.id,
            previous_status=previous_status,
            transaction_id=booking.transaction_id,
        )
        await notification_service.notify_payment_received(db, booking)
        return APPLIED

    raise ConflictError("booking_modified_concurrently")


async def handle_checkout_expired(db: AsyncSession, obj: dict) -> str:
    booking = await _load_booking(db, obj)
    if booking is None or not can_transition(booking.status, BookingEvent.PAYMENT_EXPIRED):
        return SKIPPED

    target = next_status(booking.status, BookingEvent.PAYMENT_EXPIRED)
    await apply_transition(
        db,
        booking,
        target,
        cancellation_reason=REASON_SESSION_EXPIRED,
        cancelled_at=_utcnow(),
    )
    logger.info("booking_payment_expired", booking_id=booking.id)
    await notification_service.notify_booking_cancelled(db, booking)
    return APPLIED


async def handle_intent_succeeded(db: AsyncSession, obj: dict) -> str:
    booking = await _load_booking(db, obj)
    if booking is None or booking.payment_status != PaymentStatus.PENDING.value:
        return SKIPPED

    await guarded_update(
        db,
        booking,
        payment_status=PaymentStatus.PAID.value,
        transaction_id=obj.get("id"),
    )
    logger.info("payment_intent_succeeded", booking_id=booking.id, payment_intent_id=obj.get("id"))
    return APPLIED


async def handle_intent_failed(db: AsyncSession, obj: dict) -> str:
    booking = await _load_booking(db, obj)
    if booking is None or booking.status != BookingStatus.PENDING.value:
        return SKIPPED

    await guarded_update(
        db,
        booking,
        payment_status=PaymentStatus.FAILED.value,
        cancellation_reason=REASON_PAYMENT_FAILED,
    )
    logger.info("payment_intent_failed", booking_id=booking.id, payment_intent_id=obj.get("id"))
    await notification_service.notify_payment_failed(db, booking)
    return APPLIED


async def handle_intent_canceled(db: AsyncSession, obj: dict) -> str:
    booking = await _load_booking(db, obj)
    if booking is None or not can_transition(booking.status, BookingEvent.PAYMENT_CANCELLED):
        return SKIPPED

    target = next_status(booking.status, BookingEvent.PAYMENT_CANCELLED)
    await apply_transition(
        db,
        booking,
        target,
        payment_status=PaymentStatus.CANCELLED.value,
        cancellation_reason=REASON_PAYMENT_CANCELLED,
        cancelled_at=_utcnow(),
    )
    logger.info("payment_intent_canceled", booking_id=booking.id, payment_intent_id=obj.get("id"))
    await notification_service.notify_booking_cancelled(db, booking)
    return APPLIED


Handler = Callable[[AsyncSession, dict], Awaitable[str]]

HANDLERS: dict[str, Handler] = {
    "checkout.session.completed": handle_checkout_completed,
    "checkout.session.expired": handle_checkout_expired,
    "payment_intent.succeeded": handle_intent_succeeded,
    "payment_intent.payment_failed": handle_intent_failed,
    "payment_intent.canceled": handle_intent_canceled,
}


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------

async def enqueue_event(db: AsyncSession, event: dict) -> tuple[Optional[PaymentEvent], bool]:
    """
    Store a verified event for processing.

    Returns (row, duplicate). Event types without a handler are acknowledged
    and not stored, so `row` is None for them.
    """
    event_type = event["type"]
    provider_event_id = event["id"]

    if event_type not in HANDLERS:
        record_webhook_event(event_type, "ignored")
        logger.info("webhook_event_ignored", event_id=provider_event_id, event_type=event_type)
        return None, False

    existing = (
        await db.execute(
            select(PaymentEvent).where(PaymentEvent.provider_event_id == provider_event_id)
        )
    ).scalar_one_or_none()
    if existing is not None:
        record_webhook_event(event_type, "duplicate")
        logger.info("webhook_event_duplicate", event_id=provider_event_id, status=existing.status)
        return existing, True

    row = PaymentEvent(
        provider_event_id=provider_event_id,
        event_type=event_type,
        payload=event,
        status=EVENT_PENDING,
        attempts=0,
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError:
        # Concurrent delivery of the same event won the insert.
        await db.rollback()
        record_webhook_event(event_type, "duplicate")
        logger.info("webhook_event_duplicate", event_id=provider_event_id)
        return None, True

    record_webhook_event(event_type, "received")
    logger.info("webhook_event_enqueued", event_id=provider_event_id, event_type=event_type)
    return row, False


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------

def _event_object(payload) -> dict:
    """`data.object` of a stored event; a malformed payload fails the attempt."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"event data is {type(data).__name__}, expected object")
    obj = data.get("object") or {}
    if not isinstance(obj, dict):
        raise ValueError(f"event data.object is {type(obj).__name__}, expected object")
    return obj


def backoff_seconds(attempts: int) -> int:
    return settings.OUTBOX_BACKOFF_BASE_SECONDS * 2 ** (attempts - 1)


async def _claim(db: AsyncSession, row: PaymentEvent, now: datetime) -> bool:
    attempt = row.attempts + 1
    result = await db.execute(
        update(PaymentEvent)
        .where(
            PaymentEvent.id == row.id,
            PaymentEvent.status == EVENT_PENDING,
            PaymentEvent.attempts == row.attempts,
        )
        .values(
            attempts=attempt,
            # lease: the row is not due again while this attempt may still run
            next_attempt_at=now + timedelta(seconds=settings.OUTBOX_LEASE_SECONDS),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _record_failure(
    session_factory: async_sessionmaker,
    event_id: int,
    error: Exception,
    now: datetime,
) -> str:
    async with session_factory() as db:
        row = await db.get(PaymentEvent, event_id)
        row.last_error = f"{type(error).__name__}: {error}"[:2000]
        row.next_attempt_at = now + timedelta(seconds=backoff_seconds(row.attempts))
        if row.attempts >= settings.OUTBOX_MAX_ATTEMPTS:
            row.status = EVENT_DEAD
            row.next_attempt_at = None
            result = "dead"
            logger.error(
                "webhook_event_dead",
                event_id=row.provider_event_id,
                event_type=row.event_type,
                attempts=row.attempts,
                error=row.last_error,
            )
        else:
            result = "retry"
            logger.warning(
                "webhook_event_failed",
                event_id=row.provider_event_id,
                event_type=row.event_type,
                attempts=row.attempts,
                next_attempt_at=row.next_attempt_at,
                error=row.last_error,
            )
        event_type = row.event_type
        await db.commit()

    record_webhook_event(event_type, result)
    return result


async def process_event(
    session_factory: async_sessionmaker,
    event_id: int,
    now: Optional[datetime] = None,
) -> str:
    """
    Apply one stored event. Returns applied, skipped, retry, dead, or
    `claimed` when another consumer holds this attempt.
    """
    now = now or _utcnow()

    async with session_factory() as db:
        row = await db.get(PaymentEvent, event_id)
        if row is None or row.status != EVENT_PENDING:
            return SKIPPED
        if not await _claim(db, row, now):
            return "claimed"

        try:
            handler = HANDLERS[row.event_type]
            outcome = await handler(db, _event_object(row.payload))
            await db.execute(
                update(PaymentEvent)
                .where(PaymentEvent.id == event_id)
                .values(
                    status=EVENT_PROCESSED,
                    processed_at=_utcnow(),
                    next_attempt_at=None,
                    last_error=None,
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            failure = e
        else:
            record_webhook_event(row.event_type, outcome)
            logger.info(
                "webhook_event_processed",
                event_id=row.provider_event_id,
                event_type=row.event_type,
                outcome=outcome,
            )
            return outcome

    return await _record_failure(session_factory, event_id, failure, now)


async def process_pending_events(
    session_factory: async_sessionmaker,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """Apply every due event, oldest first. Returns a count per outcome."""
    now = now or _utcnow()
    limit = limit or settings.OUTBOX_BATCH_SIZE

    async with session_factory() as db:
        due = await db.execute(
            select(PaymentEvent.id)
            .where(
                PaymentEvent.status == EVENT_PENDING,
                (PaymentEvent.next_attempt_at.is_(None)) | (PaymentEvent.next_attempt_at <= now),
            )
            .order_by(PaymentEvent.id)
            .limit(limit)
        )
        event_ids = list(due.scalars().all())

    counts: dict[str, int] = {}
    for event_id in event_ids:
        outcome = await process_event(session_factory, event_id, now=now)
        counts[outcome] = counts.get(outcome, 0) + 1

    async with session_factory() as db:
        backlog = (
            await db.execute(
                select(func.count()).where(PaymentEvent.status == EVENT_PENDING)
            )
        ).scalar_one()
    outbox_backlog.set(backlog)

    if event_ids:
        logger.info("outbox_batch_processed", backlog=backlog, **counts)
    return counts


async def run_outbox_worker(
    session_factory: async_sessionmaker,
    stop: asyncio.Event,
    interval: Optional[float] = None,
) -> None:
    """Poll the outbox until `stop` is set."""
    interval = interval or settings.OUTBOX_POLL_INTERVAL
    logger.info("outbox_worker_started", interval=interval)
    while not stop.is_set():
        try:
            await process_pending_events(session_factory)
        except Exception as e:
            logger.error("outbox_worker_error", error=str(e))
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("outbox_worker_stopped")
