# fightcard_api/app/services/uniqueness.py
"""
One open offer per (bout, side, fighter).

The partial unique index `uq_bout_offers_open` is the real guard; the
pre-check only exists so the caller gets a friendly error before writing.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import DuplicateOffer
from ..models import BoutOffer, OPEN_OFFER_STATUSES

UNIQUE_VIOLATION = "23505"


def find_open_offer(db: Session, bout_id: int, side: str, fighter_id: int):
    return (
        db.query(BoutOffer)
        .filter(
            BoutOffer.bout_id == bout_id,
            BoutOffer.side == side,
            BoutOffer.fighter_profile_id == fighter_id,
            BoutOffer.status.in_(OPEN_OFFER_STATUSES),
        )
        .first()
    )


def check_no_existing_offer(db: Session, bout_id: int, side: str, fighter_id: int) -> None:
    if find_open_offer(db, bout_id, side, fighter_id) is not None:
        raise DuplicateOffer()


def is_duplicate_key(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION:
        return True
    message = str(orig or exc).lower()
    return "unique" in message or "duplicate" in message


def insert_offer(db: Session, **fields) -> BoutOffer:
    """
    Add and flush a new offer. A duplicate-key failure is rolled back and
    raised as DuplicateOffer, same as the pre-check. The caller commits.
    """
    offer = BoutOffer(**fields)
    db.add(offer)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        if is_duplicate_key(exc):
            raise DuplicateOffer() from exc
        raise
    return offer
