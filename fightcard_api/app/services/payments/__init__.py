"""Payment gateway abstractions for bout-offer fees."""

from functools import lru_cache

from ...settings import settings
from .base import (
    CheckoutSession,
    CheckoutStatus,
    PaymentGateway,
    RefundResult,
    TransferResult,
    TransientPaymentError,
)
from .mock import MockPaymentGateway


@lru_cache
def get_gateway() -> PaymentGateway:
    """Process-wide gateway chosen by PAYMENT_PROVIDER."""
    if settings.PAYMENT_PROVIDER == "stripe":
        from .stripe_gateway import StripeGateway

        return StripeGateway()
    if settings.ENV == "production":
        # the mock reports every checkout as paid
        raise RuntimeError(
            f"PAYMENT_PROVIDER={settings.PAYMENT_PROVIDER!r} is not allowed in production; configure Stripe"
        )
    return MockPaymentGateway()


__all__ = [
    "CheckoutSession",
    "CheckoutStatus",
    "PaymentGateway",
    "RefundResult",
    "TransferResult",
    "TransientPaymentError",
    "MockPaymentGateway",
    "get_gateway",
]
