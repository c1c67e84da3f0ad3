"""Base contract for offer-fee payment gateways.

Adapters implement the underscore hooks; the public methods wrap every
call with a deadline and retry transient failures. Retries are safe because
each call carries an idempotency key the provider de-duplicates on.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from loguru import logger

from ...errors import PaymentError, PaymentTimeout
from ...settings import settings

# Shared by all gateways; a timed-out call keeps running here until the provider answers.
_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="payments")


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class CheckoutStatus:
    session_id: str
    paid: bool
    payment_ref: Optional[str]
    amount_total: Optional[int]
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    refunded: bool
    refund_id: Optional[str] = None


@dataclass(frozen=True)
class TransferResult:
    transferred: bool
    transfer_id: Optional[str] = None


class TransientPaymentError(Exception):
    """Raised by adapters for failures worth retrying (network, rate limit)."""


class PaymentGateway:
    provider_name = "base"

    def __init__(
        self,
        *,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.PAYMENT_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.PAYMENT_MAX_ATTEMPTS)
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.PAYMENT_RETRY_BACKOFF_SECONDS

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_checkout(
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
        return self._call(
            "create_checkout",
            self._create_checkout,
            amount=amount,
            currency=currency,
            title=title,
            description=description,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    def retrieve_checkout(self, session_id: str) -> CheckoutStatus:
        return self._call("retrieve_checkout", self._retrieve_checkout, session_id)

    def refund(
        self,
        payment_ref: str,
        amount: int,
        *,
        idempotency_key: str,
        metadata: Optional[dict] = None,
    ) -> RefundResult:
        return self._call(
            "refund",
            self._refund,
            payment_ref,
            amount,
            idempotency_key=idempotency_key,
            metadata=metadata or {},
        )

    def transfer(
        self,
        payment_ref: str,
        amount: int,
        destination: Optional[str],
        *,
        currency: str,
        idempotency_key: str,
    ) -> TransferResult:
        return self._call(
            "transfer",
            self._transfer,
            payment_ref,
            amount,
            destination,
            currency=currency,
            idempotency_key=idempotency_key,
        )

    def parse_webhook(self, payload: bytes, sig_header: str) -> dict:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Adapter hooks
    # ------------------------------------------------------------------

    def _create_checkout(self, **kwargs) -> CheckoutSession:
        raise NotImplementedError

    def _retrieve_checkout(self, session_id: str) -> CheckoutStatus:
        raise NotImplementedError

    def _refund(self, payment_ref: str, amount: int, *, idempotency_key: str, metadata: dict) -> RefundResult:
        raise NotImplementedError

    def _transfer(
        self, payment_ref: str, amount: int, destination: Optional[str], *, currency: str, idempotency_key: str
    ) -> TransferResult:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Deadline + retry
    # ------------------------------------------------------------------

    def _call(self, op: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        last_error: PaymentError = PaymentError(f"{op} failed")

        for attempt in range(1, self.max_attempts + 1):
            future = _EXECUTOR.submit(fn, *args, **kwargs)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeout:
                # outcome unknown; the idempotency key makes the retry safe
                last_error = PaymentTimeout(
                    f"Payment provider did not answer {op} within {self.timeout_seconds:.1f}s"
                )
                logger.warning(
                    "Payment {} timed out provider={} attempt={}/{}",
                    op, self.provider_name, attempt, self.max_attempts,
                )
            except TransientPaymentError as exc:
                last_error = PaymentError(str(exc) or f"{op} failed")
                logger.warning(
                    "Payment {} transient failure provider={} attempt={}/{} error={}",
                    op, self.provider_name, attempt, self.max_attempts, exc,
                )
            except PaymentError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("Payment {} failed provider={}", op, self.provider_name)
                raise PaymentError(f"{op} failed: {exc}") from exc

            if attempt < self.max_attempts and self.backoff_seconds > 0:
                time.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        raise last_error
