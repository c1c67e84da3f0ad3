from __future__ import annotations

import pytest

from conftest import notifications, offers, payments
from fightcard_api.app.errors import (
    DuplicateOffer,
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentError,
    RoleForbidden,
    ValidationError,
)
from fightcard_api.app.models import Bout, BoutOffer, OfferPayment
from fightcard_api.app.services import notify
from fightcard_api.app.services.fees import apply_platform_fee
from fightcard_api.app.services.offers import OfferLedger
from fightcard_api.app.services.payments import MockPaymentGateway, TransientPaymentError


def _paid_offer(ledger, card, fee=1000, side="red"):
    bout = card["bout"]
    ledger.db.query(Bout).filter(Bout.id == bout.id).update({Bout.offer_fee: fee})
    ledger.db.commit()
    started = ledger.create_offer(bout.id, side, card["coach"].id, card["fighter"].id)
    assert started.status == "payment_required"
    return ledger.confirm_offer_payment(started.checkout_session_id)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

def test_free_offer_is_pending_and_owner_is_notified(db, ledger, card):
    result = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    assert result.status == "created"
    assert result.offer.status == "pending"
    assert result.offer.side == "red"
    assert result.attachment == {"bout_id": card["bout"].id, "event_id": card["event"].id, "side": "red"}

    sent = notifications(db, notify.BOUT_OFFER)
    assert len(sent) == 1
    assert sent[0].recipient_profile_id == card["owner"].id
    assert sent[0].actor_profile_id == card["coach"].id
    assert sent[0].data["fighter_name"] == "Rey Rookie"
    assert sent[0].data["attachment"]["side"] == "red"


@pytest.mark.parametrize("role", ["fighter", "promotion", "", "referee"])
def test_only_coach_and_gym_accounts_can_send(db, ledger, card, factory, role):
    sender = factory.profile(role or None, gym="Apex")

    with pytest.raises(RoleForbidden):
        ledger.create_offer(card["bout"].id, "red", sender.id, card["fighter"].id)

    assert offers(db) == []


@pytest.mark.parametrize("role", ["COACH", " Gym ", "coach"])
def test_sender_role_is_case_insensitive(ledger, card, factory, role):
    # a gym account is affiliated with itself
    sender = factory.profile(role, username="apex", gym="Apex")

    result = ledger.create_offer(card["bout"].id, "red", sender.id, card["fighter"].id)

    assert result.status == "created"


def test_offer_must_name_a_fighter(ledger, card):
    with pytest.raises(ValidationError):
        ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["owner"].id)


def test_cannot_offer_fighter_from_another_gym(db, ledger, card, factory, gateway):
    outsider = factory.profile("fighter", gym="Other Gym")

    with pytest.raises(Forbidden):
        ledger.create_offer(card["bout"].id, "red", card["coach"].id, outsider.id)

    assert offers(db) == []
    assert gateway.checkouts == {}


def test_sender_without_gym_cannot_offer(db, ledger, card, factory):
    drifter = factory.profile("coach")

    with pytest.raises(ValidationError, match="gym username"):
        ledger.create_offer(card["bout"].id, "red", drifter.id, card["fighter"].id)

    assert offers(db) == []


def test_invalid_side_rejected(ledger, card):
    with pytest.raises(ValidationError):
        ledger.create_offer(card["bout"].id, "green", card["coach"].id, card["fighter"].id)


def test_unknown_bout_is_not_found(ledger, card):
    with pytest.raises(NotFound):
        ledger.create_offer(999, "red", card["coach"].id, card["fighter"].id)


def test_second_open_offer_for_same_slot_and_fighter_rejected(db, ledger, card):
    ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    with pytest.raises(DuplicateOffer):
        ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    assert len(offers(db)) == 1


def test_same_fighter_can_be_offered_for_the_other_corner(db, ledger, card, factory):
    bout = factory.bout(card["event"])
    ledger.create_offer(bout.id, "red", card["coach"].id, card["fighter"].id)
    ledger.create_offer(bout.id, "blue", card["coach"].id, card["fighter"].id)

    assert len(offers(db)) == 2


def test_paid_bout_returns_checkout_without_writing_an_offer(db, ledger, gateway, card):
    db.query(Bout).filter(Bout.id == card["bout"].id).update({Bout.offer_fee: 1000})
    db.commit()

    result = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    assert result.status == "payment_required"
    assert result.checkout_url.endswith(result.checkout_session_id)
    assert offers(db) == []
    checkout = gateway.checkouts[result.checkout_session_id]
    assert checkout["amount"] == 1000
    assert checkout["metadata"]["type"] == "offer_fee"
    assert checkout["metadata"]["payer_profile_id"] == card["coach"].id


def test_checkout_failure_writes_nothing(db, card, fanout):
    class DownGateway(MockPaymentGateway):
        def _create_checkout(self, **kwargs):
            raise TransientPaymentError("connection reset")

    ledger = OfferLedger(db, gateway=DownGateway(max_attempts=2), fanout=fanout)
    db.query(Bout).filter(Bout.id == card["bout"].id).update({Bout.offer_fee: 1000})
    db.commit()

    with pytest.raises(PaymentError):
        ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    assert offers(db) == []
    assert payments(db) == []
    assert notifications(db) == []


def test_confirmed_payment_creates_offer_and_payment(db, ledger, card):
    offer = _paid_offer(ledger, card, fee=1000)

    assert offer.status == "pending"
    (payment,) = payments(db)
    assert payment.offer_id == offer.id
    assert payment.amount_paid == 1000
    assert payment.payment_status == "paid"
    assert payment.platform_fee == 0
    assert payment.refund_status == "none"
    assert len(notifications(db, notify.BOUT_OFFER)) == 1


def test_confirming_the_same_checkout_twice_returns_the_same_offer(db, ledger, card):
    offer = _paid_offer(ledger, card)
    session_id = payments(db)[0].checkout_session_id

    again = ledger.confirm_offer_payment(session_id)

    assert again.id == offer.id
    assert len(offers(db)) == 1
    assert len(payments(db)) == 1
    assert len(notifications(db, notify.BOUT_OFFER)) == 1


def test_confirm_rejects_another_payer(ledger, card):
    bout = card["bout"]
    ledger.db.query(Bout).filter(Bout.id == bout.id).update({Bout.offer_fee: 1000})
    ledger.db.commit()
    started = ledger.create_offer(bout.id, "red", card["coach"].id, card["fighter"].id)

    with pytest.raises(Forbidden):
        ledger.confirm_offer_payment(started.checkout_session_id, payer_id=card["owner"].id)


def test_unpaid_checkout_is_not_confirmed(db, ledger):
    with pytest.raises(PaymentError):
        ledger.confirm_offer_payment("cs_unknown")
    assert offers(db) == []


def test_duplicate_found_after_payment_refunds_the_charge(db, ledger, gateway, card):
    bout = card["bout"]
    db.query(Bout).filter(Bout.id == bout.id).update({Bout.offer_fee: 1000})
    db.commit()
    first = ledger.create_offer(bout.id, "red", card["coach"].id, card["fighter"].id)
    second = ledger.create_offer(bout.id, "red", card["coach"].id, card["fighter"].id)
    ledger.confirm_offer_payment(first.checkout_session_id)

    with pytest.raises(DuplicateOffer):
        ledger.confirm_offer_payment(second.checkout_session_id)

    assert len(offers(db)) == 1
    assert gateway.refund_calls == 1
    assert f"offer-orphan-refund-{second.checkout_session_id}" in gateway.refunds


def _started_checkout(ledger, card, fee=1000):
    ledger.db.query(Bout).filter(Bout.id == card["bout"].id).update({Bout.offer_fee: fee})
    ledger.db.commit()
    return ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).checkout_session_id


@pytest.mark.parametrize(
    "field,value,error",
    [
        ("side", "green", ValidationError),
        ("fighter_id", 999999, NotFound),
        ("bout_id", 999999, NotFound),
        ("payer_profile_id", 999999, NotFound),
        ("fighter_id", None, ValidationError),
    ],
)
def test_unusable_checkout_metadata_refunds_the_charge(db, ledger, gateway, card, field, value, error):
    session_id = _started_checkout(ledger, card)
    gateway.checkouts[session_id]["metadata"][field] = value

    with pytest.raises(error):
        ledger.confirm_offer_payment(session_id)

    assert offers(db) == []
    assert payments(db) == []
    assert gateway.refund_calls == 1
    assert gateway.refunds[f"offer-orphan-refund-{session_id}"].refunded is True


def test_fighter_who_changed_gym_before_confirmation_is_refunded(db, ledger, gateway, card):
    session_id = _started_checkout(ledger, card)
    fighter = card["fighter"]
    fighter.social_links = {"gym_username": "Other Gym"}
    db.commit()

    with pytest.raises(Forbidden):
        ledger.confirm_offer_payment(session_id)

    assert offers(db) == []
    assert gateway.refund_calls == 1


# ---------------------------------------------------------------------------
# accept
# ---------------------------------------------------------------------------

def test_accept_assigns_fighter_and_notifies_everyone(db, ledger, card):
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer

    result = ledger.resolve_offer(offer.id, "accept", card["owner"].id)

    assert result.status == "accepted"
    assert result.offer.status == "accepted"
    assert result.offer.resolved_at is not None
    assert result.followers_notified == 1

    bout = db.get(Bout, card["bout"].id)
    assert bout.red_fighter_id == card["fighter"].id
    assert bout.red_name == "Rey Rookie"
    assert bout.red_looking_for_opponent is False
    assert bout.version == 1

    assigned = notifications(db, notify.BOUT_ASSIGNED)
    assert [n.recipient_profile_id for n in assigned] == [card["fighter"].id]
    accepted = notifications(db, notify.OFFER_ACCEPTED)
    assert [n.recipient_profile_id for n in accepted] == [card["coach"].id]
    matched = notifications(db, notify.EVENT_BOUT_MATCHED)
    assert [n.recipient_profile_id for n in matched] == [card["follower"].id]
    assert matched[0].data["martial_art"] == "mma"


def test_only_the_event_owner_can_resolve(db, ledger, card):
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer

    with pytest.raises(Forbidden):
        ledger.resolve_offer(offer.id, "accept", card["coach"].id)

    assert db.get(BoutOffer, offer.id).status == "pending"


def test_legacy_event_owner_column_is_honoured(db, ledger, card):
    event = card["event"]
    event.profile_id, event.owner_profile_id = event.owner_profile_id, None
    db.commit()
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer

    result = ledger.resolve_offer(offer.id, "accept", card["owner"].id)

    assert result.status == "accepted"


def test_unknown_decision_rejected(ledger, card):
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer

    with pytest.raises(ValidationError):
        ledger.resolve_offer(offer.id, "maybe", card["owner"].id)


def test_accept_records_platform_fee_once_and_transfers_it(db, ledger, gateway, card):
    offer = _paid_offer(ledger, card, fee=5000)

    result = ledger.resolve_offer(offer.id, "accept", card["owner"].id)

    assert result.platform_fee == 250
    assert result.fee_transferred is True
    payment = db.query(OfferPayment).one()
    assert payment.platform_fee == 250
    assert payment.transfer_status == "transferred"
    assert gateway.transfer_calls == 1

    # re-applying or re-settling is a no-op
    assert apply_platform_fee(db, payment) == 250
    assert ledger.settle_platform_fee(payment) is True
    assert gateway.transfer_calls == 1
    assert gateway.refund_calls == 0


# ---------------------------------------------------------------------------
# decline
# ---------------------------------------------------------------------------

def test_decline_refunds_the_offer_fee(db, ledger, gateway, card):
    offer = _paid_offer(ledger, card, fee=1000)

    result = ledger.resolve_offer(offer.id, "decline", card["owner"].id)

    assert result.status == "declined"
    assert result.refund_amount == 1000
    assert result.refunded is True
    payment = db.query(OfferPayment).one()
    assert payment.refund_status == "refunded"
    assert payment.refund_id
    assert payment.platform_fee == 0
    assert gateway.refund_calls == 1

    declined = notifications(db, notify.OFFER_DECLINED)
    assert len(declined) == 1
    assert declined[0].recipient_profile_id == card["coach"].id
    assert declined[0].data["refund_amount"] == 1000
    assert declined[0].data["refunded"] is True


def test_decline_of_free_offer_has_no_refund(db, ledger, gateway, card):
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer

    result = ledger.resolve_offer(offer.id, "declined", card["owner"].id)

    assert result.refund_amount == 0
    assert result.refunded is False
    assert gateway.refund_calls == 0
    assert db.get(Bout, card["bout"].id).red_fighter_id is None


def test_refund_is_issued_at_most_once(db, ledger, gateway, card):
    offer = _paid_offer(ledger, card, fee=1000)
    ledger.resolve_offer(offer.id, "decline", card["owner"].id)
    payment = db.query(OfferPayment).one()

    assert ledger.refund_offer_payment(payment) == (1000, True)
    assert ledger.refund_offer_payment(payment) == (1000, True)
    assert gateway.refund_calls == 1


def test_refund_failure_still_declines(db, card, fanout):
    class RefundsDown(MockPaymentGateway):
        def _refund(self, *args, **kwargs):
            raise PaymentError("card_declined")

    ledger = OfferLedger(db, gateway=RefundsDown(), fanout=fanout)
    offer = _paid_offer(ledger, card, fee=1000)

    result = ledger.resolve_offer(offer.id, "decline", card["owner"].id)

    assert result.status == "declined"
    assert result.refund_amount == 1000
    assert result.refunded is False
    assert db.get(BoutOffer, offer.id).status == "declined"
    assert db.query(OfferPayment).one().refund_status == "none"
    assert notifications(db, notify.OFFER_DECLINED)[0].data["refunded"] is False


def test_declined_offer_frees_the_slot_for_a_new_offer(db, ledger, card):
    offer = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer
    ledger.resolve_offer(offer.id, "decline", card["owner"].id)

    again = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id)

    assert again.status == "created"
    assert len(offers(db)) == 2


# ---------------------------------------------------------------------------
# terminal states
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("first,second", [("decline", "accept"), ("accept", "decline"), ("accept", "accept")])
def test_resolved_offers_are_immutable(db, ledger, gateway, card, first, second):
    offer = _paid_offer(ledger, card, fee=1000)
    ledger.resolve_offer(offer.id, first, card["owner"].id)
    calls = (gateway.refund_calls, gateway.transfer_calls)
    notes = len(notifications(db))

    with pytest.raises(InvalidTransition):
        ledger.resolve_offer(offer.id, second, card["owner"].id)

    assert (gateway.refund_calls, gateway.transfer_calls) == calls
    assert len(notifications(db)) == notes


# ---------------------------------------------------------------------------
# listings
# ---------------------------------------------------------------------------

def test_event_offers_are_grouped_by_status(ledger, card, factory):
    other = factory.profile("fighter", gym="Apex")
    third = factory.profile("fighter", gym="Apex")
    bout = factory.bout(card["event"])
    kept = ledger.create_offer(card["bout"].id, "red", card["coach"].id, card["fighter"].id).offer
    dropped = ledger.create_offer(bout.id, "red", card["coach"].id, other.id).offer
    ledger.create_offer(bout.id, "blue", card["coach"].id, third.id)
    ledger.resolve_offer(kept.id, "accept", card["owner"].id)
    ledger.resolve_offer(dropped.id, "decline", card["owner"].id)

    grouped = ledger.list_event_offers(card["event"].id, card["owner"].id)

    assert [o.id for o in grouped["accepted"]] == [kept.id]
    assert [o.id for o in grouped["declined"]] == [dropped.id]
    assert len(grouped["pending"]) == 1
    assert len(ledger.list_sent_offers(card["coach"].id)) == 3

    with pytest.raises(Forbidden):
        ledger.list_event_offers(card["event"].id, card["coach"].id)
