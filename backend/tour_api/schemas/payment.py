"""
Pydantic schemas for payment endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field


class PaymentSessionCreate(BaseModel):
    booking_id: int
    currency: str = "syp"


class PaymentIntentCreate(PaymentSessionCreate):
    pass


class PaymentVerify(BaseModel):
    session_id: str = Field(..., min_length=1)


class PaymentCancel(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


class ChargeAmount(BaseModel):
    """Amount actually charged after currency conversion and floor."""

    amount: Decimal
    currency: Literal["usd", "syp"]
    amount_in_cents: int


class PaymentSessionResponse(ChargeAmount):
    session_id: str
    url: Optional[str]
    booking_number: str
    place_name: Optional[str]
    booking_date: datetime


class PaymentIntentResponse(ChargeAmount):
    payment_intent_id: str
    client_secret: Optional[str]
    publishable_key: Optional[str]
    booking_number: str
    place_name: Optional[str]


class PaymentDetails(BaseModel):
    id: int
    booking_number: str
    total_amount: Decimal
    currency: str
    payment_status: str
    payment_method: Optional[str]
    status: str
    place_name: Optional[str]
    place_image: Optional[str]
    booking_date: datetime
    service_type: str
    can_pay: bool
    requires_payment: bool


class PaymentVerification(BaseModel):
    payment_status: Optional[str]
    status: Optional[str]
    amount: Decimal
    currency: Optional[str]
    customer_email: Optional[str]
    booking_id: Optional[str]
    booking_number: Optional[str]


class PaymentCancellation(BaseModel):
    payment_intent_id: str
    status: str
    cancelled_at: datetime


class PaymentHistoryItem(BaseModel):
    id: int
    booking_number: str
    date: datetime
    amount: Decimal
    currency: str
    status: str
    place_name: Optional[str]
    place_image: Optional[str]
    service_type: str
    transaction_id: Optional[str]


class InvoiceParty(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class InvoiceLine(BaseModel):
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class Invoice(BaseModel):
    invoice_number: str
    date: str
    booking_number: str
    customer: InvoiceParty
    place: InvoiceParty
    items: list[InvoiceLine]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str
    payment_status: str
    payment_method: Optional[str]
    transaction_id: Optional[str]


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    event_type: Optional[str] = None
