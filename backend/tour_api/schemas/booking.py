"""
Pydantic schemas for booking-related request/response validation.

Required creation fields are optional at the schema level on purpose: the
service reports them together with a single localized message.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from tour_api.schemas.common import PaginatedResponse
from tour_api.schemas.place import PlaceSummary


class BookingCreate(BaseModel):
    place_id: Optional[int] = None
    service_type: Optional[str] = None
    booking_date: Optional[datetime] = None
    number_of_guests: int = Field(default=1, ge=1, le=100)
    special_requests: Optional[str] = Field(None, max_length=2000)


class BookingUpdate(BaseModel):
    number_of_guests: Optional[int] = Field(None, ge=1, le=100)
    special_requests: Optional[str] = Field(None, max_length=2000)


class BookingCancel(BaseModel):
    cancellation_reason: Optional[str] = Field(None, max_length=2000)


class BookingConfirm(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=50)
    transaction_id: Optional[str] = Field(None, max_length=100)


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    user_id: int
    place_id: int
    service_type: str
    booking_date: datetime
    number_of_guests: int
    total_amount: Decimal
    currency: str
    status: str
    payment_status: str
    payment_method: Optional[str]
    transaction_id: Optional[str]
    special_requests: Optional[str]
    cancellation_reason: Optional[str]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    completed_at: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingWithPlace(BookingResponse):
    place: Optional[PlaceSummary] = None


class BookingStats(BaseModel):
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    total_revenue: Decimal


class AdminBookingListResponse(PaginatedResponse[BookingWithPlace]):
    stats: BookingStats
