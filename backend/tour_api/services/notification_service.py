"""
In-app notifications and their email fan-out.

Lifecycle notifications are best-effort: the `notify_*` helpers log and
swallow their own failures so that a transition which already succeeded is
never rolled back because a message could not be written or sent.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.core.exceptions import NotFoundError
from tour_api.core.logging import get_logger
from tour_api.models.booking import Booking
from tour_api.models.notification import Notification
from tour_api.models.place import Place
from tour_api.models.user import User
from tour_api.services import email_service

logger = get_logger(__name__)

EMAIL_WORTHY_KINDS = {
    "booking_confirmation",
    "booking_cancellation",
    "payment_success",
    "payment_failed",
}


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type: str,
    title_ar: str,
    title_en: str,
    message_ar: str,
    message_en: str,
    data: Optional[dict] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title_ar=title_ar,
        title_en=title_en,
        message_ar=message_ar,
        message_en=message_en,
        data=data,
        is_read=False,
    )
    db.add(notification)
    return notification


async def _notify_booking(
    db: AsyncSession,
    booking: Booking,
    kind: str,
    title_ar: str,
    title_en: str,
    message_ar: str,
    message_en: str,
) -> None:
    try:
        place = await db.get(Place, booking.place_id)
        place_name_ar = place.name_ar if place else "المكان"
        place_name_en = place.name_en if place else "the place"
        action_url = f"/bookings/{booking.id}"

        await create_notification(
            db,
            booking.user_id,
            "booking",
            title_ar,
            title_en,
            message_ar.format(number=booking.booking_number, place=place_name_ar),
            message_en.format(number=booking.booking_number, place=place_name_en),
            data={
                "type": kind,
                "booking_id": booking.id,
                "booking_number": booking.booking_number,
                "action_url": action_url,
            },
        )

        if kind in EMAIL_WORTHY_KINDS:
            user = await db.get(User, booking.user_id)
            if user and user.email:
                lang_is_ar = (user.language or "ar") == "ar"
                await email_service.send_notification_email(
                    user.email,
                    title_ar if lang_is_ar else title_en,
                    (message_ar if lang_is_ar else message_en).format(
                        number=booking.booking_number,
                        place=place_name_ar if lang_is_ar else place_name_en,
                    ),
                    action_url,
                )
    except Exception as e:
        logger.warning(
            "booking_notification_failed",
            booking_id=booking.id,
            kind=kind,
            error=str(e),
        )


async def notify_booking_created(db: AsyncSession, booking: Booking) -> None:
    await _notify_booking(
        db, booking, "booking_confirmation",
        "تم استلام حجزك! ✅", "Booking received! ✅",
        "شكراً لحجزك في {place}. رقم حجزك هو {number}.",
        "Thank you for booking {place}. Your booking number is {number}.",
    )


async def notify_booking_confirmed(db: AsyncSession, booking: Booking) -> None:
    await _notify_booking(
        db, booking, "booking_confirmation",
        "تم تأكيد حجزك! ✅", "Booking confirmed! ✅",
        "تم تأكيد حجزك رقم {number} في {place}.",
        "Your booking {number} at {place} has been confirmed.",
    )


async def notify_booking_cancelled(db: AsyncSession, booking: Booking) -> None:
    await _notify_booking(
        db, booking, "booking_cancellation",
        "تم إلغاء حجزك 🚫", "Booking cancelled 🚫",
        "تم إلغاء حجزك رقم {number} في {place}.",
        "Your booking {number} at {place} has been cancelled.",
    )


async def notify_payment_received(db: AsyncSession, booking: Booking) -> None:
    await _notify_booking(
        db, booking, "payment_success",
        "تم استلام الدفعة 💳", "Payment received 💳",
        "تم استلام دفعة الحجز رقم {number} في {place}.",
        "We received the payment for booking {number} at {place}.",
    )


async def notify_payment_failed(db: AsyncSession, booking: Booking) -> None:
    await _notify_booking(
        db, booking, "payment_failed",
        "فشل الدفع ❌", "Payment failed ❌",
        "فشلت عملية الدفع للحجز رقم {number} في {place}.",
        "The payment for booking {number} at {place} failed.",
    )


async def list_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Notification], int, int]:
    """Returns (notifications, total, unread_count)."""
    total = (
        await db.execute(select(func.count()).where(Notification.user_id == user_id))
    ).scalar_one()
    unread = (
        await db.execute(
            select(func.count()).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
    ).scalar_one()
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total, unread


async def mark_as_read(db: AsyncSession, notification_id: int, user_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("notification_not_found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    logger.info("notifications_marked_read", user_id=user_id, count=result.rowcount)
    return result.rowcount
