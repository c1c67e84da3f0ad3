# fightcard_api/app/routers/offers.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps.current_user import current_profile, get_ledger
from ..models import Profile
from ..schemas import (
    EventOffersOut,
    FighterOut,
    OfferCreateIn,
    OfferCreatedOut,
    OfferOut,
    ResolutionOut,
)
from ..services.affiliations import eligible_fighters
from ..services.offers import OfferLedger

router = APIRouter(prefix="/api", tags=["offers"])


# ============================================================
# Sender side
# ============================================================

@router.get("/bouts/{bout_id}/eligible-fighters", response_model=list[FighterOut])
def list_eligible_fighters(
    bout_id: int,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    """Fighters from the caller's gym, for the offer picker."""
    return eligible_fighters(db, profile)


@router.post("/bouts/{bout_id}/offers", response_model=OfferCreatedOut)
def create_offer(
    bout_id: int,
    payload: OfferCreateIn,
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    """
    Offer a fighter for a corner.
    Free bouts: { status: "created", offer }.
    Paid bouts: { status: "payment_required", checkout_url }; the offer appears
    once the checkout is confirmed (webhook or /billing/offers/verify).
    """
    created = ledger.create_offer(
        bout_id,
        payload.side,
        profile.id,
        payload.fighter_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
    )
    return OfferCreatedOut.model_validate(created, from_attributes=True)


@router.get("/offers/sent", response_model=list[OfferOut])
def list_sent_offers(
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    return ledger.list_sent_offers(profile.id)


# ============================================================
# Organiser side
# ============================================================

@router.get("/events/{event_id}/offers", response_model=EventOffersOut)
def list_event_offers(
    event_id: int,
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    grouped = ledger.list_event_offers(event_id, profile.id)
    return EventOffersOut.model_validate(grouped, from_attributes=True)


@router.post("/offers/{offer_id}/accept", response_model=ResolutionOut)
def accept_offer(
    offer_id: int,
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    result = ledger.resolve_offer(offer_id, "accept", profile.id)
    return ResolutionOut.model_validate(result, from_attributes=True)


@router.post("/offers/{offer_id}/decline", response_model=ResolutionOut)
def decline_offer(
    offer_id: int,
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    result = ledger.resolve_offer(offer_id, "decline", profile.id)
    return ResolutionOut.model_validate(result, from_attributes=True)
