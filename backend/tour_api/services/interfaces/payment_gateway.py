"""
Payment gateway interface.
Lets the payment services run against Stripe in production and a fake in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CheckoutSession:
    """Provider-hosted checkout, as much of it as the services read."""

    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None  # minor units
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class PaymentIntentResult:
    id: str
    status: str
    client_secret: Optional[str] = None


@dataclass
class LineItem:
    name: str
    description: str
    amount_in_cents: int
    currency: str
    images: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """
    Interface for payment providers.

    Implementations:
    - StripeGateway: Stripe Checkout + PaymentIntents
    """

    @property
    @abstractmethod
    def publishable_key(self) -> Optional[str]:
        pass

    @abstractmethod
    def ensure_configured(self):
        """Raise ExternalServiceError when the provider cannot be called."""
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        item: LineItem,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: dict,
        payment_intent_metadata: dict,
    ) -> CheckoutSession:
        pass

    @abstractmethod
    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        pass

    @abstractmethod
    async def create_payment_intent(
        self,
        amount_in_cents: int,
        currency: str,
        description: str,
        metadata: dict,
    ) -> PaymentIntentResult:
        pass

    @abstractmethod
    async def cancel_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        """
        Raises InvalidStateError when the intent can no longer be cancelled
        (already succeeded or already cancelled).
        """
        pass

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Authenticate a webhook delivery over the raw body and return the
        decoded event. Raises ValidationError on a bad signature or payload.
        """
        pass
