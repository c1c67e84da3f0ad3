# fightcard_api/app/schemas.py
from datetime import datetime
from typing import Literal
from pydantic import BaseModel

# ---- Offers I/O ----
class OfferCreateIn(BaseModel):
    side: Literal["red", "blue"]
    fighter_id: int
    success_url: str | None = None   # checkout return URLs; defaults point at the event page
    cancel_url: str | None = None

class OfferOut(BaseModel):
    id: int
    bout_id: int
    side: str
    from_profile_id: int
    fighter_profile_id: int
    status: str
    created_at: datetime | None = None
    resolved_at: datetime | None = None

    class Config:
        from_attributes = True  # pydantic v2

class OfferAttachment(BaseModel):
    bout_id: int
    event_id: int
    side: str

class OfferCreatedOut(BaseModel):
    status: str          # "created" | "payment_required"
    offer: OfferOut | None = None
    checkout_url: str | None = None
    checkout_session_id: str | None = None
    attachment: OfferAttachment | None = None

class ResolutionOut(BaseModel):
    offer: OfferOut
    status: str
    refund_amount: int = 0       # minor units
    refunded: bool = False
    platform_fee: int = 0        # minor units
    fee_transferred: bool = False
    followers_notified: int = 0

    class Config:
        from_attributes = True

class EventOffersOut(BaseModel):
    pending: list[OfferOut] = []
    accepted: list[OfferOut] = []
    declined: list[OfferOut] = []

class FighterOut(BaseModel):
    id: int
    username: str
    full_name: str | None = None
    display_name: str

    class Config:
        from_attributes = True

# ---- Billing ----
class VerifyOfferPaymentIn(BaseModel):
    session_id: str

# ---- Notifications ----
class NotificationOut(BaseModel):
    id: int
    type: str
    actor_profile_id: int | None = None
    data: dict | None = None
    is_read: bool = False
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class MarkReadIn(BaseModel):
    ids: list[int]
