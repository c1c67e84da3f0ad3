# fightcard_api/app/services/reconcile.py
"""
Reconciliation sweep: retries money movement the request path left behind.

  - declined offers whose fee was paid but never refunded
  - accepted offers whose commission was recorded but never transferred

Both retries reuse the offer-scoped idempotency keys, so running the sweep
while a request is still settling cannot double-refund or double-transfer.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from ..models import (
    BoutOffer,
    OfferPayment,
    OFFER_ACCEPTED,
    OFFER_DECLINED,
    PAYMENT_PAID,
    REFUND_REFUNDED,
    TRANSFER_TRANSFERRED,
)
from .notify import NotificationFanout
from .offers import OfferLedger
from .payments import PaymentGateway


def pending_refunds(db: Session) -> list[OfferPayment]:
    return (
        db.query(OfferPayment)
        .join(BoutOffer, BoutOffer.id == OfferPayment.offer_id)
        .filter(
            BoutOffer.status == OFFER_DECLINED,
            OfferPayment.payment_status == PAYMENT_PAID,
            OfferPayment.refund_status != REFUND_REFUNDED,
        )
        .order_by(OfferPayment.id)
        .all()
    )


def pending_transfers(db: Session) -> list[OfferPayment]:
    return (
        db.query(OfferPayment)
        .join(BoutOffer, BoutOffer.id == OfferPayment.offer_id)
        .filter(
            BoutOffer.status == OFFER_ACCEPTED,
            OfferPayment.payment_status == PAYMENT_PAID,
            OfferPayment.platform_fee > 0,
            OfferPayment.transfer_status != TRANSFER_TRANSFERRED,
        )
        .order_by(OfferPayment.id)
        .all()
    )


def reconcile(
    db: Session,
    gateway: Optional[PaymentGateway] = None,
    fanout: Optional[NotificationFanout] = None,
) -> dict:
    ledger = OfferLedger(db, gateway=gateway, fanout=fanout)
    counts = {"refunds_retried": 0, "refunded": 0, "transfers_retried": 0, "transferred": 0}

    for payment in pending_refunds(db):
        counts["refunds_retried"] += 1
        _, refunded = ledger.refund_offer_payment(payment)
        if refunded:
            counts["refunded"] += 1

    for payment in pending_transfers(db):
        counts["transfers_retried"] += 1
        if ledger.settle_platform_fee(payment):
            counts["transferred"] += 1

    if counts["refunds_retried"] or counts["transfers_retried"]:
        logger.info("Reconcile sweep: {}", counts)
    return counts
