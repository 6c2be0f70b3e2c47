"""
Payment endpoints.

The webhook is the only unauthenticated write in the API. It reads the raw
request body itself: Stripe signs the exact bytes it sent, so the body must
not be parsed into a model before the signature is checked.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tour_api.core.config import get_settings
from tour_api.core.logging import get_logger
from tour_api.core.messages import get_language, translate
from tour_api.core.security import get_current_user_id
from tour_api.db.session import get_db, get_session_factory
from tour_api.infrastructure.stripe_gateway import get_payment_gateway
from tour_api.schemas.common import ApiResponse, PaginatedResponse, Pagination
from tour_api.schemas.payment import (
    Invoice,
    PaymentCancel,
    PaymentCancellation,
    PaymentDetails,
    PaymentHistoryItem,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentSessionCreate,
    PaymentSessionResponse,
    PaymentVerification,
    PaymentVerify,
    WebhookAck,
)
from tour_api.services import payment_service, webhook_service
from tour_api.services.interfaces.payment_gateway import PaymentGateway

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Verify, store, acknowledge.

    The event is committed to the outbox before the 200 goes out; applying
    it to the booking happens afterwards (background task and/or the
    periodic worker).
    """
    payload = await request.body()
    event = gateway.parse_webhook(payload, stripe_signature)

    row, duplicate = await webhook_service.enqueue_event(db, event)
    await db.commit()

    if row is not None and not duplicate and settings.WEBHOOK_PROCESS_IMMEDIATELY:
        background_tasks.add_task(webhook_service.process_event, session_factory, row.id)

    return WebhookAck(received=True, duplicate=duplicate, event_type=event["type"])


@router.post("/create-session", response_model=ApiResponse[PaymentSessionResponse])
async def create_session(
    data: PaymentSessionCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Hosted checkout for a pending booking. The booking itself is not modified."""
    session = await payment_service.create_payment_session(
        db, gateway, data.booking_id, user_id, data.currency
    )
    return ApiResponse(data=PaymentSessionResponse(**session))


@router.post("/create-intent", response_model=ApiResponse[PaymentIntentResponse])
async def create_intent(
    data: PaymentIntentCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    intent = await payment_service.create_payment_intent(
        db, gateway, data.booking_id, user_id, data.currency
    )
    return ApiResponse(data=PaymentIntentResponse(**intent))


@router.post("/verify", response_model=ApiResponse[PaymentVerification])
async def verify_payment(
    data: PaymentVerify,
    user_id: int = Depends(get_current_user_id),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    result = await payment_service.verify_payment(gateway, data.session_id)
    return ApiResponse(data=PaymentVerification(**result))


@router.post("/cancel", response_model=ApiResponse[PaymentCancellation])
async def cancel_payment(
    data: PaymentCancel,
    user_id: int = Depends(get_current_user_id),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    lang: str = Depends(get_language),
):
    result = await payment_service.cancel_payment(gateway, data.payment_intent_id)
    return ApiResponse(
        message=translate("payment_cancelled", lang),
        data=PaymentCancellation(**result),
    )


@router.get("/history", response_model=PaginatedResponse[PaymentHistoryItem])
async def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    items, total = await payment_service.get_payment_history(db, user_id, page, limit)
    return PaginatedResponse[PaymentHistoryItem](
        data=[PaymentHistoryItem(**item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/booking/{booking_id}", response_model=ApiResponse[PaymentDetails])
async def payment_details(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    details = await payment_service.get_payment_details(db, booking_id, user_id)
    return ApiResponse(data=PaymentDetails(**details))


@router.get("/invoice/{booking_id}", response_model=ApiResponse[Invoice])
async def invoice(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return ApiResponse(data=Invoice(**await payment_service.build_invoice(db, booking_id, user_id)))
