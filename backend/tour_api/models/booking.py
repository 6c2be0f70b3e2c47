"""
Booking model: one reservation of a Place by a User.

Key design decisions:
- `status` and `payment_status` are independent columns; the reachable
  combinations are governed by the transition table in booking_rules
- `version` is bumped on every lifecycle write and checked as a precondition,
  so two requests racing on the same row cannot both apply
- No uniqueness on (user, place, date): a user may hold several bookings
  for the same place and day
- Rows are never deleted; `completed` and `cancelled` are terminal
"""

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from tour_api.db.base import Base, TimestampMixin


class ServiceType(str, Enum):
    TOUR = "tour"
    HOTEL = "hotel"
    RESTAURANT = "restaurant"
    ACTIVITY = "activity"
    TRANSPORT = "transport"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(50), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    place_id = Column(Integer, ForeignKey("places.id"), nullable=False, index=True)
    service_type = Column(String(20), nullable=False)
    booking_date = Column(DateTime(timezone=True), nullable=False)
    number_of_guests = Column(Integer, nullable=False, default=1)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="SYP")
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    special_requests = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency counter
    version = Column(Integer, nullable=False, default=1)

    user = relationship("User", back_populates="bookings", lazy="noload")
    place = relationship("Place", back_populates="bookings", lazy="noload")

    __table_args__ = (
        CheckConstraint("number_of_guests >= 1", name="check_booking_guests_positive"),
        CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        CheckConstraint(
            "service_type IN ('tour', 'hotel', 'restaurant', 'activity', 'transport')",
            name="check_booking_service_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded', 'cancelled')",
            name="check_booking_payment_status",
        ),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_booking_date", "booking_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, number={self.booking_number}, "
            f"status={self.status}, payment={self.payment_status})>"
        )
