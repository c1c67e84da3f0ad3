# fightcard_api/app/routers/billing.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from ..deps.current_user import current_profile, get_ledger
from ..errors import DuplicateOffer, NotFound, ValidationError
from ..models import Profile
from ..schemas import OfferOut, VerifyOfferPaymentIn
from ..services.offers import OFFER_FEE_METADATA_TYPE, OfferLedger

router = APIRouter(prefix="/billing", tags=["billing"])


# ============================================================
# Offer fee: client return-URL verification
# ============================================================

@router.post("/offers/verify", response_model=OfferOut)
def verify_offer_payment(
    payload: VerifyOfferPaymentIn,
    profile: Profile = Depends(current_profile),
    ledger: OfferLedger = Depends(get_ledger),
):
    """
    Called by the frontend when Checkout redirects back with ?session_id=...
    Creates the offer if the webhook has not done so yet; returns it either way.
    """
    return ledger.confirm_offer_payment(payload.session_id, payer_id=profile.id)


# ============================================================
# Stripe webhook
# ============================================================

@router.post("/webhook")
async def stripe_webhook(request: Request, ledger: OfferLedger = Depends(get_ledger)):
    """
    Handles checkout.session.completed for offer fees.
    Other event types are acknowledged and ignored.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = ledger.gateway.parse_webhook(payload, sig_header)
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid payload")

    event_type = event["type"]
    data = event["data"]["object"]
    metadata = data.get("metadata") or {}

    if event_type != "checkout.session.completed" or metadata.get("type") != OFFER_FEE_METADATA_TYPE:
        return {"ok": True, "ignored": event_type}

    try:
        # gateway and database calls block; keep them off the event loop
        offer = await run_in_threadpool(ledger.confirm_offer_payment, data["id"])
    except DuplicateOffer:
        # charge already refunded; retrying the webhook cannot change the outcome
        logger.warning("Offer checkout {} completed for a slot that already has an offer", data["id"])
        return {"ok": True, "status": "duplicate"}
    except (NotFound, ValidationError) as exc:
        logger.warning("Offer checkout {} rejected after payment: {}", data["id"], exc)
        return {"ok": True, "status": "rejected"}

    return {"ok": True, "offer_id": offer.id}
