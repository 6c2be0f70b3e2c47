"""
Stripe implementation of the payment gateway.

The SDK is synchronous, so every network call is pushed to the threadpool.
Credentials are passed per request instead of through the module-global
`stripe.api_key`, so two gateways with different keys can coexist (tests
build their own).
"""

import json
from typing import Optional

import stripe
from starlette.concurrency import run_in_threadpool

from tour_api.core.config import Settings, get_settings
from tour_api.core.exceptions import ExternalServiceError, InvalidStateError, ValidationError
from tour_api.core.logging import get_logger
from tour_api.services.interfaces.payment_gateway import (
    CheckoutSession,
    LineItem,
    PaymentGateway,
    PaymentIntentResult,
)

logger = get_logger(__name__)

UNEXPECTED_STATE = "payment_intent_unexpected_state"


def _to_checkout_session(obj) -> CheckoutSession:
    return CheckoutSession(
        id=obj["id"],
        url=obj.get("url"),
        status=obj.get("status"),
        payment_status=obj.get("payment_status"),
        amount_total=obj.get("amount_total"),
        currency=obj.get("currency"),
        customer_email=obj.get("customer_email"),
        metadata=dict(obj.get("metadata") or {}),
    )


def _to_intent(obj) -> PaymentIntentResult:
    return PaymentIntentResult(
        id=obj["id"],
        status=obj.get("status"),
        client_secret=obj.get("client_secret"),
    )


class StripeGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        publishable_key: Optional[str] = None,
        api_version: Optional[str] = None,
        webhook_tolerance: int = 300,
    ):
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._publishable_key = publishable_key or None
        self._api_version = api_version
        self._webhook_tolerance = webhook_tolerance

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
            api_version=settings.STRIPE_API_VERSION,
            webhook_tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        )

    @property
    def publishable_key(self) -> Optional[str]:
        return self._publishable_key

    def ensure_configured(self):
        if not self._secret_key:
            raise ExternalServiceError("payment_service_unavailable")

    def _options(self) -> dict:
        options = {"api_key": self._secret_key}
        if self._api_version:
            options["stripe_version"] = self._api_version
        return options

    async def _call(self, operation: str, func, *args, **kwargs):
        self.ensure_configured()
        try:
            return await run_in_threadpool(func, *args, **self._options(), **kwargs)
        except stripe.StripeError as e:
            logger.error(
                "stripe_request_failed",
                operation=operation,
                code=getattr(e, "code", None),
                error=str(e),
            )
            if getattr(e, "code", None) == UNEXPECTED_STATE:
                raise InvalidStateError("payment_already_completed", detail=str(e))
            raise ExternalServiceError("payment_provider_error", detail=str(e))

    async def create_checkout_session(
        self,
        item: LineItem,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: dict,
        payment_intent_metadata: dict,
    ) -> CheckoutSession:
        params = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": item.currency,
                        "product_data": {
                            "name": item.name,
                            "description": item.description,
                            "images": item.images,
                            "metadata": item.metadata,
                        },
                        "unit_amount": item.amount_in_cents,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": payment_intent_metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email

        session = await self._call("checkout_session_create", stripe.checkout.Session.create, **params)
        return _to_checkout_session(session)

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        session = await self._call(
            "checkout_session_retrieve", stripe.checkout.Session.retrieve, session_id
        )
        return _to_checkout_session(session)

    async def create_payment_intent(
        self,
        amount_in_cents: int,
        currency: str,
        description: str,
        metadata: dict,
    ) -> PaymentIntentResult:
        intent = await self._call(
            "payment_intent_create",
            stripe.PaymentIntent.create,
            amount=amount_in_cents,
            currency=currency,
            description=description,
            metadata=metadata,
        )
        return _to_intent(intent)

    async def cancel_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        intent = await self._call(
            "payment_intent_cancel", stripe.PaymentIntent.cancel, payment_intent_id
        )
        return _to_intent(intent)

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        if not self._webhook_secret:
            raise ExternalServiceError("webhook_not_configured")
        if not signature:
            raise ValidationError("invalid_webhook_signature")

        try:
            body = payload.decode("utf-8")
            # Verifies the HMAC over the exact bytes received.
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, self._webhook_tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.warning("webhook_signature_invalid", error=str(e))
            raise ValidationError("invalid_webhook_signature", detail=str(e))

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValidationError("invalid_webhook_payload", detail=str(e))
        if not isinstance(event, dict) or "id" not in event or "type" not in event:
            raise ValidationError("invalid_webhook_payload")
        return event


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Gateway singleton, built from settings on first use."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway.from_settings(get_settings())
    return _gateway
