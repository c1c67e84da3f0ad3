# fightcard_api/app/services/fees.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from ..models import OfferPayment, OFFER_ACCEPTED, PAYMENT_PAID
from ..settings import settings


def platform_fee_for(amount_cents: int, percent: Optional[float] = None) -> int:
    """Commission in cents, rounded half-up (1010 @ 5% -> 51)."""
    pct = Decimal(str(settings.PLATFORM_FEE_PERCENT if percent is None else percent))
    fee = Decimal(int(amount_cents or 0)) * pct / Decimal(100)
    return int(fee.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def amount_after_platform_fee(amount_cents: int) -> int:
    return int(amount_cents or 0) - platform_fee_for(amount_cents)


def apply_platform_fee(db: Session, payment: OfferPayment) -> int:
    """
    Record the commission on a paid offer once it is accepted.

    The write is conditional on platform_fee still being 0, so calling this
    again leaves the first value in place. Returns the fee now on the row.
    Does not commit.
    """
    if payment.payment_status != PAYMENT_PAID:
        return 0
    if payment.offer is None or payment.offer.status != OFFER_ACCEPTED:
        return 0

    fee = platform_fee_for(payment.amount_paid)
    db.query(OfferPayment).filter(
        OfferPayment.id == payment.id,
        OfferPayment.platform_fee == 0,
    ).update(
        {OfferPayment.platform_fee: fee, OfferPayment.updated_at: datetime.utcnow()},
        synchronize_session=False,
    )
    db.expire(payment)
    return payment.platform_fee
