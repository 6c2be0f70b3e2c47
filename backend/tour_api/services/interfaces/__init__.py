"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .payment_gateway import CheckoutSession, LineItem, PaymentGateway, PaymentIntentResult

__all__ = ['PaymentGateway', 'CheckoutSession', 'LineItem', 'PaymentIntentResult']
