"""
Booking endpoints for travellers.

State changes go through booking_service, which checks the transition table
and the time windows and writes with a version precondition. A request that
loses a race gets 409 and should reload the booking.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.db.session import get_db
from tour_api.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    BookingWithPlace,
)
from tour_api.schemas.common import ApiResponse, PaginatedResponse, Pagination
from tour_api.services import booking_service
from tour_api.core.messages import get_language, translate
from tour_api.core.security import get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])

StatusFilter = Literal["pending", "confirmed", "completed", "cancelled"]


@router.post("", response_model=ApiResponse[BookingResponse], status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    """Create a pending booking; the price is computed from the place."""
    booking = await booking_service.create_booking(db, user_id, data)
    return ApiResponse(
        message=translate("booking_created", lang),
        data=BookingResponse.model_validate(booking),
    )


@router.get("", response_model=PaginatedResponse[BookingWithPlace])
async def list_my_bookings(
    status: Optional[StatusFilter] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    bookings, total = await booking_service.get_user_bookings(db, user_id, status, page, limit)
    return PaginatedResponse[BookingWithPlace](
        data=[BookingWithPlace.model_validate(b) for b in bookings],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{booking_id}", response_model=ApiResponse[BookingWithPlace])
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await booking_service.get_user_booking(db, booking_id, user_id, with_place=True)
    return ApiResponse(data=BookingWithPlace.model_validate(booking))


@router.put("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    """Change guest count or special requests of a pending booking (48h notice)."""
    booking = await booking_service.update_booking(db, booking_id, user_id, data)
    return ApiResponse(
        message=translate("booking_updated", lang),
        data=BookingResponse.model_validate(booking),
    )


@router.put("/{booking_id}/cancel", response_model=ApiResponse[BookingResponse])
async def cancel_booking(
    booking_id: int,
    data: Optional[BookingCancel] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    """Cancel a pending or confirmed booking (24h notice)."""
    reason = data.cancellation_reason if data else None
    booking = await booking_service.cancel_booking(db, booking_id, user_id, reason)
    return ApiResponse(
        message=translate("booking_cancelled", lang),
        data=BookingResponse.model_validate(booking),
    )
