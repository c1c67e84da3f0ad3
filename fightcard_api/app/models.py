from sqlalchemy import (
    Column, BigInteger, Integer, String, DateTime, ForeignKey,
    UniqueConstraint, Index, Boolean, JSON, text
)
from sqlalchemy.orm import relationship, validates
from datetime import datetime
from .db import Base
from .roles import Role


# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

SIDES = ("red", "blue")

OFFER_PENDING = "pending"
OFFER_ACCEPTED = "accepted"
OFFER_DECLINED = "declined"
OPEN_OFFER_STATUSES = (OFFER_PENDING, OFFER_ACCEPTED)

PAYMENT_PAID = "paid"
REFUND_NONE = "none"
REFUND_REFUNDED = "refunded"
TRANSFER_NONE = "none"
TRANSFER_TRANSFERRED = "transferred"


def opponent_side(side: str) -> str:
    return "blue" if side == "red" else "red"


# --- Profiles & events --------------------------------------------------------

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(BigIntPK, primary_key=True)
    firebase_uid = Column(String, unique=True, index=True, nullable=True)
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(String, index=True)           # normalised Role value
    social_links = Column(JSON, default=dict)   # {"gym_username": "...", "instagram": "..."}

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates("role")
    def _normalise_role(self, key, value):
        role = Role.parse(value)
        return role.value if role else None

    @property
    def role_enum(self):
        return Role.parse(self.role)

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "Fighter"


class Event(Base):
    __tablename__ = "events"

    id = Column(BigIntPK, primary_key=True)
    title = Column(String)
    name = Column(String)
    martial_art = Column(String)

    owner_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)
    # legacy owner column, still populated on older events
    profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    bouts = relationship("Bout", back_populates="event", cascade="all, delete-orphan")
    followers = relationship("EventFollow", back_populates="event", cascade="all, delete-orphan")

    @property
    def owner_id(self):
        return self.owner_profile_id or self.profile_id

    @property
    def display_name(self) -> str:
        return self.title or self.name or "Event"


class EventFollow(Base):
    __tablename__ = "event_follows"

    id = Column(BigIntPK, primary_key=True)
    event_id = Column(BigInteger, ForeignKey("events.id", ondelete="CASCADE"), index=True, nullable=False)
    profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    event = relationship("Event", back_populates="followers")

    __table_args__ = (
        UniqueConstraint("event_id", "profile_id", name="uq_event_follow"),
    )


# --- Bouts & offers -----------------------------------------------------------

class Bout(Base):
    __tablename__ = "event_bouts"

    id = Column(BigIntPK, primary_key=True)
    event_id = Column(BigInteger, ForeignKey("events.id", ondelete="CASCADE"), index=True, nullable=False)
    card_type = Column(String, default="undercard")     # "main" | "undercard"
    order_index = Column(Integer, default=0)
    weight = Column(String, nullable=True)
    bout_details = Column(String, nullable=True)

    red_fighter_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    red_name = Column(String, nullable=True)
    red_looking_for_opponent = Column(Boolean, default=False, nullable=False)

    blue_fighter_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    blue_name = Column(String, nullable=True)
    blue_looking_for_opponent = Column(Boolean, default=False, nullable=False)

    offer_fee = Column(Integer, nullable=True)  # cents; null/0 = free to offer

    # bumped by every roster write; accept is conditional on it
    version = Column(Integer, default=0, nullable=False)

    event = relationship("Event", back_populates="bouts")
    offers = relationship("BoutOffer", back_populates="bout")

    def fighter_id_for(self, side: str):
        return self.red_fighter_id if side == "red" else self.blue_fighter_id

    @property
    def label(self) -> str:
        card = "Main card" if self.card_type == "main" else "Undercard"
        return f"{card} • Fight {(self.order_index or 0) + 1}"


class BoutOffer(Base):
    __tablename__ = "event_bout_offers"

    id = Column(BigIntPK, primary_key=True)
    bout_id = Column(BigInteger, ForeignKey("event_bouts.id", ondelete="CASCADE"), index=True, nullable=False)
    side = Column(String, nullable=False)                   # "red" | "blue"
    from_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    fighter_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(String, nullable=False, default=OFFER_PENDING)  # pending|accepted|declined

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    resolved_at = Column(DateTime, nullable=True)

    bout = relationship("Bout", back_populates="offers")
    sender = relationship("Profile", foreign_keys=[from_profile_id])
    fighter = relationship("Profile", foreign_keys=[fighter_profile_id])
    payment = relationship("OfferPayment", back_populates="offer", uselist=False)

    __table_args__ = (
        # at most one open offer per (bout, side, fighter)
        Index(
            "uq_bout_offers_open",
            "bout_id", "side", "fighter_profile_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'accepted')"),
            sqlite_where=text("status IN ('pending', 'accepted')"),
        ),
        Index("ix_bout_offers_bout_status", "bout_id", "status"),
    )


class OfferPayment(Base):
    __tablename__ = "offer_payments"

    id = Column(BigIntPK, primary_key=True)
    offer_id = Column(BigInteger, ForeignKey("event_bout_offers.id", ondelete="CASCADE"), unique=True, nullable=False)
    bout_id = Column(BigInteger, ForeignKey("event_bouts.id", ondelete="CASCADE"), index=True, nullable=False)
    payer_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), index=True)

    amount_paid = Column(Integer, nullable=False)           # cents
    currency = Column(String, nullable=False, default="usd")
    payment_status = Column(String, nullable=False, default=PAYMENT_PAID)
    payment_intent_id = Column(String, nullable=True)
    checkout_session_id = Column(String, unique=True, nullable=True)

    refund_status = Column(String, nullable=False, default=REFUND_NONE)     # none|refunded
    refund_id = Column(String, nullable=True)

    platform_fee = Column(Integer, nullable=False, default=0)               # cents, set on accept
    transfer_status = Column(String, nullable=False, default=TRANSFER_NONE) # none|transferred
    transfer_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    offer = relationship("BoutOffer", back_populates="payment")

    __table_args__ = (
        Index("ix_offer_payments_settlement", "refund_status", "transfer_status"),
    )


# --- Notifications ------------------------------------------------------------

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(BigIntPK, primary_key=True)
    type = Column(String, nullable=False, index=True)   # bout_offer, bout_assigned, ...
    recipient_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    actor_profile_id = Column(BigInteger, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("ix_notifications_recipient_time", "recipient_profile_id", "created_at"),
    )
