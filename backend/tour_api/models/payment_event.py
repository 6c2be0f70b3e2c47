"""
Durable inbox for payment-provider webhook events.

The webhook endpoint only verifies and stores; a consumer applies each row to
booking state and retries failures with backoff until it gives up (`dead`).
The unique provider event id makes repeated deliveries of the same event a
no-op at insert time.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index, CheckConstraint

from tour_api.db.base import Base, TimestampMixin

EVENT_PENDING = "pending"
EVENT_PROCESSED = "processed"
EVENT_DEAD = "dead"


class PaymentEvent(Base, TimestampMixin):
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    provider_event_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=EVENT_PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'processed', 'dead')", name="check_payment_event_status"),
        Index("ix_payment_events_due", "status", "next_attempt_at"),
    )

    def __repr__(self) -> str:
        return f"<PaymentEvent(id={self.id}, type={self.event_type}, status={self.status}, attempts={self.attempts})>"
