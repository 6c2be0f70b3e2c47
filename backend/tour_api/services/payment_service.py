"""
Payment session adapter and the read-side payment views.

Creating a checkout session or a payment intent never changes the booking:
it stays `pending` until the provider's webhook is applied
(see webhook_service). Everything here is therefore safe to call repeatedly.

Charge computation
------------------
    syp: amount = total_amount
    usd: amount = round_half_up(total_amount / SYP_PER_USD)
    amount = max(amount, floor)          floor: 0.5 usd / 1000 syp
    amount_in_cents = round_half_up(amount * 100)
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tour_api.core.config import get_settings
from tour_api.core.exceptions import (
    ExternalServiceError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tour_api.core.logging import get_logger
from tour_api.core.metrics import record_payment_session
from tour_api.models.booking import Booking, BookingStatus, PaymentStatus
from tour_api.services.booking_service import get_user_booking
from tour_api.services.interfaces.payment_gateway import LineItem, PaymentGateway

logger = get_logger(__name__)
settings = get_settings()

SUPPORTED_CURRENCIES = ("usd", "syp")


@dataclass(frozen=True)
class Charge:
    amount: Decimal
    currency: str
    amount_in_cents: int


def _round_half_up(value: Decimal, places: str = "1") -> Decimal:
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def convert_amount(total_amount: Decimal, currency: str = "syp") -> Charge:
    """Turn a booking total (SYP) into what the provider is asked to charge."""
    currency = (currency or "syp").lower()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError("unsupported_currency", currency=currency)

    total = Decimal(total_amount)
    if currency == "usd":
        amount = _round_half_up(total / settings.SYP_PER_USD)
        floor = settings.MIN_CHARGE_USD
    else:
        amount = total
        floor = settings.MIN_CHARGE_SYP

    if amount < floor:
        amount = floor

    return Charge(
        amount=amount,
        currency=currency,
        amount_in_cents=int(_round_half_up(amount * 100)),
    )


async def load_payable_booking(db: AsyncSession, booking_id: int, user_id: int) -> Booking:
    """
    The booking a user is about to pay for, with place and user loaded.
    Missing -> 404, someone else's -> 403, not pending -> 400.
    """
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .options(selectinload(Booking.place), selectinload(Booking.user))
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("booking_not_found")
    if booking.user_id != user_id:
        raise ForbiddenError("booking_access_denied")
    if booking.status != BookingStatus.PENDING.value:
        raise InvalidStateError("booking_not_payable", detail=f"status={booking.status}")
    return booking


def _place_name(booking: Booking) -> Optional[str]:
    return booking.place.name_ar if booking.place else None


def _booking_metadata(booking: Booking, user_id: int) -> dict:
    # Stripe metadata values must be strings.
    return {
        "bookingId": str(booking.id),
        "userId": str(user_id),
        "bookingNumber": booking.booking_number,
    }


async def create_payment_session(
    db: AsyncSession,
    gateway: PaymentGateway,
    booking_id: int,
    user_id: int,
    currency: str = "syp",
) -> dict:
    gateway.ensure_configured()
    booking = await load_payable_booking(db, booking_id, user_id)
    charge = convert_amount(booking.total_amount, currency)

    place = booking.place
    booking_day = booking.booking_date.date().isoformat()
    item = LineItem(
        name=(place.name_ar or place.name_en) if place else "Tour booking",
        description=f"{booking.service_type} booking - {booking_day}",
        amount_in_cents=charge.amount_in_cents,
        currency=charge.currency,
        images=[place.featured_image] if place and place.featured_image else [],
        metadata={"bookingId": str(booking.id)},
    )
    metadata = {
        **_booking_metadata(booking, user_id),
        "amount": str(charge.amount),
        "currency": charge.currency,
        "serviceType": booking.service_type,
    }

    try:
        session = await gateway.create_checkout_session(
            item=item,
            success_url=(
                f"{settings.FRONTEND_URL}/booking/success"
                f"?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.id}"
            ),
            cancel_url=f"{settings.FRONTEND_URL}/booking/cancel?booking_id={booking.id}",
            customer_email=booking.user.email if booking.user else None,
            metadata=metadata,
            payment_intent_metadata=_booking_metadata(booking, user_id),
        )
    except ExternalServiceError:
        record_payment_session("checkout", charge.currency, ok=False)
        raise

    record_payment_session("checkout", charge.currency, ok=True)
    logger.info(
        "payment_session_created",
        booking_id=booking.id,
        session_id=session.id,
        currency=charge.currency,
        amount_in_cents=charge.amount_in_cents,
    )
    return {
        "session_id": session.id,
        "url": session.url,
        "amount": charge.amount,
        "currency": charge.currency,
        "amount_in_cents": charge.amount_in_cents,
        "booking_number": booking.booking_number,
        "place_name": _place_name(booking),
        "booking_date": booking.booking_date,
    }


async def create_payment_intent(
    db: AsyncSession,
    gateway: PaymentGateway,
    booking_id: int,
    user_id: int,
    currency: str = "syp",
) -> dict:
    """Direct PaymentIntent for clients that collect card details themselves."""
    gateway.ensure_configured()
    booking = await load_payable_booking(db, booking_id, user_id)
    charge = convert_amount(booking.total_amount, currency)

    try:
        intent = await gateway.create_payment_intent(
            amount_in_cents=charge.amount_in_cents,
            currency=charge.currency,
            description=f"Booking payment {booking.booking_number}",
            metadata={
                **_booking_metadata(booking, user_id),
                "placeName": _place_name(booking) or "",
            },
        )
    except ExternalServiceError:
        record_payment_session("intent", charge.currency, ok=False)
        raise

    record_payment_session("intent", charge.currency, ok=True)
    logger.info(
        "payment_intent_created",
        booking_id=booking.id,
        payment_intent_id=intent.id,
        currency=charge.currency,
    )
    return {
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "publishable_key": gateway.publishable_key,
        "amount": charge.amount,
        "currency": charge.currency,
        "amount_in_cents": charge.amount_in_cents,
        "booking_number": booking.booking_number,
        "place_name": _place_name(booking),
    }


async def get_payment_details(db: AsyncSession, booking_id: int, user_id: int) -> dict:
    booking = await get_user_booking(db, booking_id, user_id, with_place=True)
    pending = booking.status == BookingStatus.PENDING.value
    return {
        "id": booking.id,
        "booking_number": booking.booking_number,
        "total_amount": booking.total_amount,
        "currency": booking.currency,
        "payment_status": booking.payment_status,
        "payment_method": booking.payment_method,
        "status": booking.status,
        "place_name": _place_name(booking),
        "place_image": booking.place.featured_image if booking.place else None,
        "booking_date": booking.booking_date,
        "service_type": booking.service_type,
        "can_pay": pending and booking.payment_status == PaymentStatus.PENDING.value,
        "requires_payment": pending,
    }


async def verify_payment(gateway: PaymentGateway, session_id: str) -> dict:
    """Echo the provider's view of a checkout session. Read-only."""
    gateway.ensure_configured()
    session = await gateway.retrieve_checkout_session(session_id)
    amount = Decimal(session.amount_total) / 100 if session.amount_total else Decimal("0")
    return {
        "payment_status": session.payment_status,
        "status": session.status,
        "amount": amount,
        "currency": session.currency,
        "customer_email": session.customer_email,
        "booking_id": session.metadata.get("bookingId"),
        "booking_number": session.metadata.get("bookingNumber"),
    }


async def cancel_payment(gateway: PaymentGateway, payment_intent_id: str) -> dict:
    gateway.ensure_configured()
    intent = await gateway.cancel_payment_intent(payment_intent_id)
    logger.info("payment_intent_cancelled", payment_intent_id=intent.id, status=intent.status)
    return {
        "payment_intent_id": intent.id,
        "status": intent.status,
        "cancelled_at": datetime.now(timezone.utc),
    }


async def get_payment_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict], int]:
    """Paid, non-cancelled bookings of a user, most recently confirmed first."""
    query = select(Booking).where(
        Booking.user_id == user_id,
        Booking.payment_status == PaymentStatus.PAID.value,
        Booking.status != BookingStatus.CANCELLED.value,
    )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.options(selectinload(Booking.place))
        .order_by(Booking.confirmed_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    items = [
        {
            "id": b.id,
            "booking_number": b.booking_number,
            "date": b.confirmed_at or b.created_at,
            "amount": b.total_amount,
            "currency": b.currency,
            "status": b.status,
            "place_name": _place_name(b),
            "place_image": b.place.featured_image if b.place else None,
            "service_type": b.service_type,
            "transaction_id": b.transaction_id,
        }
        for b in result.scalars().all()
    ]
    return items, total


async def build_invoice(db: AsyncSession, booking_id: int, user_id: int) -> dict:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id, Booking.user_id == user_id)
        .options(selectinload(Booking.place), selectinload(Booking.user))
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("booking_not_found")

    total = Decimal(booking.total_amount)
    unit_price = _round_half_up(total / booking.number_of_guests, "0.01")
    user, place = booking.user, booking.place

    return {
        "invoice_number": f"INV-{booking.booking_number}",
        "date": date.today().isoformat(),
        "booking_number": booking.booking_number,
        "customer": {
            "name": user.full_name if user else None,
            "email": user.email if user else None,
            "phone": user.phone if user else None,
        },
        "place": {
            "name": place.name_ar if place else None,
            "address": place.address_ar if place else None,
            "phone": place.contact_phone if place else None,
        },
        "items": [
            {
                "description": f"{booking.service_type} booking",
                "quantity": booking.number_of_guests,
                "unit_price": unit_price,
                "total": total,
            }
        ],
        "subtotal": total,
        "tax": Decimal("0"),
        "total": total,
        "currency": booking.currency,
        "payment_status": booking.payment_status,
        "payment_method": booking.payment_method,
        "transaction_id": booking.transaction_id,
    }
