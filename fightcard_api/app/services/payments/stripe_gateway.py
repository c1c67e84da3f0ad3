# fightcard_api/app/services/payments/stripe_gateway.py
from __future__ import annotations

import json
from typing import Optional

import stripe
from loguru import logger

from ...errors import PaymentError
from ...settings import settings
from .base import (
    CheckoutSession,
    CheckoutStatus,
    PaymentGateway,
    RefundResult,
    TransferResult,
    TransientPaymentError,
)

# Refund states Stripe reports for an accepted refund request
_REFUND_OK = {"succeeded", "pending"}


def _translate(exc: Exception) -> Exception:
    """Map Stripe SDK errors onto retryable / terminal payment errors."""
    if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
        return TransientPaymentError(str(exc))
    if isinstance(exc, stripe.StripeError):
        message = getattr(exc, "user_message", None) or str(exc)
        return PaymentError(message)
    return exc


def _as_dict(obj) -> dict:
    if not obj:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeGateway(PaymentGateway):
    provider_name = "stripe"

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        if self.secret_key:
            stripe.api_key = self.secret_key
        # retries are handled by PaymentGateway._call
        stripe.max_network_retries = 0

    def _require_key(self) -> None:
        if not self.secret_key:
            raise PaymentError("Stripe not configured")

    # ============================================================
    # Checkout (offer fee)
    # ============================================================

    def _create_checkout(
        self,
        *,
        amount: int,
        currency: str,
        title: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        idempotency_key: str,
    ) -> CheckoutSession:
        self._require_key()
        str_metadata = {k: str(v) for k, v in metadata.items() if v is not None}
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": currency,
                            "product_data": {"name": title, "description": description},
                            "unit_amount": amount,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=str_metadata,
                payment_intent_data={"metadata": str_metadata},
                idempotency_key=idempotency_key,
            )
        except Exception as exc:
            raise _translate(exc) from exc

        return CheckoutSession(id=session.id, url=session.url)

    def _retrieve_checkout(self, session_id: str) -> CheckoutStatus:
        self._require_key()
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except Exception as exc:
            raise _translate(exc) from exc

        return CheckoutStatus(
            session_id=session.id,
            paid=getattr(session, "payment_status", None) == "paid",
            payment_ref=getattr(session, "payment_intent", None),
            amount_total=getattr(session, "amount_total", None),
            metadata=_as_dict(getattr(session, "metadata", None)),
        )

    # ============================================================
    # Refund (declined offers)
    # ============================================================

    def _refund(self, payment_ref: str, amount: int, *, idempotency_key: str, metadata: dict) -> RefundResult:
        self._require_key()
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_ref,
                amount=amount,
                metadata={k: str(v) for k, v in metadata.items()},
                idempotency_key=idempotency_key,
            )
        except Exception as exc:
            raise _translate(exc) from exc

        return RefundResult(refunded=getattr(refund, "status", None) in _REFUND_OK, refund_id=refund.id)

    # ============================================================
    # Commission transfer (accepted offers)
    # ============================================================

    def _transfer(
        self, payment_ref: str, amount: int, destination: Optional[str], *, currency: str, idempotency_key: str
    ) -> TransferResult:
        if not destination:
            # Checkout charges land in the platform balance already; the
            # commission is retained there and only needs recording.
            logger.info("Platform fee of {} retained in platform balance for {}", amount, payment_ref)
            return TransferResult(transferred=True)

        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_ref)
            charge_id = getattr(intent, "latest_charge", None)
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency,
                destination=destination,
                source_transaction=charge_id,
                metadata={"payment_intent": payment_ref, "reason": "offer_platform_fee"},
                idempotency_key=idempotency_key,
            )
        except Exception as exc:
            raise _translate(exc) from exc

        return TransferResult(transferred=True, transfer_id=transfer.id)

    # ============================================================
    # Webhook Parser (used by routers/billing.py)
    # ============================================================

    def parse_webhook(self, payload: bytes, sig_header: str) -> dict:
        """
        Parse + verify a Stripe webhook event using the Signing Secret.

        If STRIPE_WEBHOOK_SECRET is missing, falls back to plain JSON parse
        (useful for local dev / ngrok).
        """
        if self.webhook_secret:
            try:
                return stripe.Webhook.construct_event(
                    payload=payload,
                    sig_header=sig_header,
                    secret=self.webhook_secret,
                )
            except stripe.SignatureVerificationError as e:
                logger.warning("Stripe signature verification FAILED: {}", e)
                raise

        logger.warning("STRIPE_WEBHOOK_SECRET not set, skipping signature verification")
        return json.loads(payload)
