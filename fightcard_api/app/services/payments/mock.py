"""Mock payment gateway for local development and tests."""

from __future__ import annotations

import json
import secrets
import threading
from typing import Optional

from ...settings import settings
from .base import CheckoutSession, CheckoutStatus, PaymentGateway, RefundResult, TransferResult


class MockPaymentGateway(PaymentGateway):
    """
    Checkouts are reported paid as soon as they exist. Refunds and transfers
    honour idempotency keys the same way Stripe does: a repeated key returns
    the first result without moving money again.
    """

    provider_name = "mock"

    def __init__(self, **kwargs):
        kwargs.setdefault("backoff_seconds", 0)
        super().__init__(**kwargs)
        self._lock = threading.Lock()
        self.checkouts: dict[str, dict] = {}
        self.refunds: dict[str, RefundResult] = {}
        self.transfers: dict[str, TransferResult] = {}
        self.refund_calls = 0
        self.transfer_calls = 0

    def _create_checkout(self, *, amount, currency, title, description, success_url, cancel_url, metadata, idempotency_key):
        with self._lock:
            for session_id, row in self.checkouts.items():
                if row["idempotency_key"] == idempotency_key:
                    return CheckoutSession(id=session_id, url=row["url"])

            session_id = f"cs_mock_{secrets.token_hex(6)}"
            url = f"{settings.FRONTEND_BASE_URL}/mock-checkout/{session_id}"
            self.checkouts[session_id] = {
                "idempotency_key": idempotency_key,
                "url": url,
                "amount": int(amount),
                "currency": currency,
                "metadata": dict(metadata),
                "payment_ref": f"pi_mock_{secrets.token_hex(6)}",
            }
            return CheckoutSession(id=session_id, url=url)

    def _retrieve_checkout(self, session_id: str) -> CheckoutStatus:
        row = self.checkouts.get(session_id)
        if row is None:
            return CheckoutStatus(session_id=session_id, paid=False, payment_ref=None, amount_total=None)
        return CheckoutStatus(
            session_id=session_id,
            paid=True,
            payment_ref=row["payment_ref"],
            amount_total=row["amount"],
            metadata={k: str(v) for k, v in row["metadata"].items() if v is not None},
        )

    def _refund(self, payment_ref: str, amount: int, *, idempotency_key: str, metadata: dict) -> RefundResult:
        with self._lock:
            self.refund_calls += 1
            if idempotency_key not in self.refunds:
                self.refunds[idempotency_key] = RefundResult(
                    refunded=True, refund_id=f"re_mock_{secrets.token_hex(6)}"
                )
            return self.refunds[idempotency_key]

    def _transfer(
        self, payment_ref: str, amount: int, destination: Optional[str], *, currency: str, idempotency_key: str
    ) -> TransferResult:
        with self._lock:
            self.transfer_calls += 1
            if idempotency_key not in self.transfers:
                self.transfers[idempotency_key] = TransferResult(
                    transferred=True, transfer_id=f"tr_mock_{secrets.token_hex(6)}" if destination else None
                )
            return self.transfers[idempotency_key]

    def parse_webhook(self, payload: bytes, sig_header: str) -> dict:
        return json.loads(payload)
