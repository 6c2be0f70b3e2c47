"""
Operator endpoints for bookings. All require the admin role.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.db.session import get_db
from tour_api.schemas.booking import (
    AdminBookingListResponse,
    BookingConfirm,
    BookingResponse,
    BookingStats,
    BookingWithPlace,
)
from tour_api.schemas.common import ApiResponse, Pagination
from tour_api.services import booking_service
from tour_api.core.messages import get_language, translate
from tour_api.core.security import require_admin
from tour_api.api.routes.bookings import StatusFilter

router = APIRouter(
    prefix="/admin/bookings",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=AdminBookingListResponse)
async def list_all_bookings(
    status: Optional[StatusFilter] = None,
    user_id: Optional[int] = None,
    place_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """All bookings with filters. Stats are recomputed on every call."""
    bookings, total, stats = await booking_service.list_all_bookings(
        db, status, user_id, place_id, start_date, end_date, page, limit
    )
    return AdminBookingListResponse(
        data=[BookingWithPlace.model_validate(b) for b in bookings],
        pagination=Pagination.build(page, limit, total),
        stats=BookingStats(**stats),
    )


@router.put("/{booking_id}/confirm", response_model=ApiResponse[BookingResponse])
async def confirm_booking(
    booking_id: int,
    data: Optional[BookingConfirm] = None,
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    data = data or BookingConfirm()
    booking = await booking_service.confirm_booking(
        db, booking_id, data.payment_method, data.transaction_id
    )
    return ApiResponse(
        message=translate("booking_confirmed", lang),
        data=BookingResponse.model_validate(booking),
    )


@router.put("/{booking_id}/complete", response_model=ApiResponse[BookingResponse])
async def complete_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    booking = await booking_service.complete_booking(db, booking_id)
    return ApiResponse(
        message=translate("booking_completed", lang),
        data=BookingResponse.model_validate(booking),
    )
