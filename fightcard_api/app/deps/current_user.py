# fightcard_api/app/deps/current_user.py
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Profile
from ..auth_firebase import get_current_user as get_fb_claims
from ..services.notify import NotificationFanout
from ..services.offers import OfferLedger
from ..services.payments import PaymentGateway, get_gateway


def current_profile(db: Session = Depends(get_db),
                    claims: dict = Depends(get_fb_claims)) -> Profile:
    """Profile behind the caller's Firebase uid. Profiles are created by onboarding, not here."""
    uid = claims.get("uid") if claims else None
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Firebase token")

    profile = db.query(Profile).filter(Profile.firebase_uid == uid).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Complete your profile first")
    return profile


def get_payment_gateway() -> PaymentGateway:
    return get_gateway()


def get_fanout() -> NotificationFanout:
    return NotificationFanout()


def get_ledger(db: Session = Depends(get_db),
               gateway: PaymentGateway = Depends(get_payment_gateway),
               fanout: NotificationFanout = Depends(get_fanout)) -> OfferLedger:
    return OfferLedger(db, gateway=gateway, fanout=fanout)
