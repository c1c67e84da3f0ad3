from __future__ import annotations

import os

# must be set before fightcard_api.app.db builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_PROVIDER", "mock")
os.environ.setdefault("ENV", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fightcard_api.app.db import Base
from fightcard_api.app.models import Bout, BoutOffer, Event, EventFollow, Notification, OfferPayment, Profile
from fightcard_api.app.services.notify import NotificationFanout
from fightcard_api.app.services.offers import OfferLedger
from fightcard_api.app.services.payments import MockPaymentGateway


class Factory:
    """Small row builder; every helper commits so other sessions can see the row."""

    def __init__(self, db):
        self.db = db
        self._n = 0

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def profile(self, role="fighter", username=None, gym=None, full_name=None, uid=None):
        self._n += 1
        username = username or f"{(role or 'user').strip().lower()}{self._n}"
        links = {"gym_username": gym} if gym is not None else {}
        return self._save(
            Profile(
                username=username,
                full_name=full_name,
                role=role,
                social_links=links,
                firebase_uid=uid or f"uid-{username}",
            )
        )

    def event(self, owner, title="Fight Night", martial_art="mma"):
        return self._save(Event(title=title, owner_profile_id=owner.id, martial_art=martial_art))

    def bout(self, event, offer_fee=None, red=None, blue=None):
        return self._save(
            Bout(
                event_id=event.id,
                offer_fee=offer_fee,
                red_fighter_id=red.id if red else None,
                red_name=red.display_name if red else None,
                red_looking_for_opponent=red is None,
                blue_fighter_id=blue.id if blue else None,
                blue_name=blue.display_name if blue else None,
                blue_looking_for_opponent=blue is None,
            )
        )

    def follow(self, event, profile):
        return self._save(EventFollow(event_id=event.id, profile_id=profile.id))


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'fightcard.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db) -> Factory:
    return Factory(db)


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def fanout(session_factory) -> NotificationFanout:
    return NotificationFanout(session_factory)


@pytest.fixture
def ledger(db, gateway, fanout) -> OfferLedger:
    return OfferLedger(db, gateway=gateway, fanout=fanout)


@pytest.fixture
def card(factory):
    """An event with an owner, a follower and one open bout (blue corner filled)."""
    owner = factory.profile("promotion", username="kingdom_promotions")
    coach = factory.profile("Coach", username="coach_dan", gym="Apex")
    fighter = factory.profile("fighter", username="red_rookie", gym="Apex", full_name="Rey Rookie")
    opponent = factory.profile("fighter", username="blue_vet", gym="Iron Temple", full_name="Bo Veteran")
    follower = factory.profile("fighter", username="fan_one")
    event = factory.event(owner, title="Kingdom Fight Night 7")
    bout = factory.bout(event, blue=opponent)
    factory.follow(event, follower)
    return {
        "owner": owner,
        "coach": coach,
        "fighter": fighter,
        "opponent": opponent,
        "follower": follower,
        "event": event,
        "bout": bout,
    }


def notifications(db, type=None, recipient=None):
    q = db.query(Notification)
    if type:
        q = q.filter(Notification.type == type)
    if recipient is not None:
        q = q.filter(Notification.recipient_profile_id == recipient.id)
    return q.order_by(Notification.id).all()


def offers(db):
    return db.query(BoutOffer).order_by(BoutOffer.id).all()


def payments(db):
    return db.query(OfferPayment).order_by(OfferPayment.id).all()
