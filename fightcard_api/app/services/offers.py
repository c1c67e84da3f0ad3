# fightcard_api/app/services/offers.py
"""
Bout-offer ledger: owns the offer state machine and runs the create/resolve
workflows end to end on the server.

    pending --accept--> accepted
    pending --decline-> declined

Status is the source of truth. Money movement that happens after a status
change (refunds, commission transfers) is best effort here and retried by
the reconciliation sweep.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import uuid4

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    DuplicateOffer,
    Forbidden,
    InvalidTransition,
    NotFound,
    PaymentError,
    RoleForbidden,
    ValidationError,
)
from ..models import (
    Bout,
    BoutOffer,
    Event,
    OfferPayment,
    Profile,
    OFFER_ACCEPTED,
    OFFER_DECLINED,
    OFFER_PENDING,
    PAYMENT_PAID,
    REFUND_NONE,
    REFUND_REFUNDED,
    SIDES,
    TRANSFER_NONE,
    TRANSFER_TRANSFERRED,
)
from ..roles import OFFER_SENDER_ROLES, Role
from ..settings import settings
from . import notify
from .affiliations import gym_affiliation, normalise_gym
from .conflicts import validate_acceptance
from .fees import apply_platform_fee
from .notify import NotificationFanout
from .payments import PaymentGateway, get_gateway
from .roster import assign_fighter
from .uniqueness import check_no_existing_offer, insert_offer


ALLOWED_TRANSITIONS = {
    OFFER_PENDING: {OFFER_ACCEPTED, OFFER_DECLINED},
    OFFER_ACCEPTED: set(),
    OFFER_DECLINED: set(),
}

DECISIONS = {
    "accept": OFFER_ACCEPTED,
    "accepted": OFFER_ACCEPTED,
    "decline": OFFER_DECLINED,
    "declined": OFFER_DECLINED,
}

OFFER_FEE_METADATA_TYPE = "offer_fee"


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED_TRANSITIONS.get(old or OFFER_PENDING, set()):
        raise InvalidTransition(f"Offer is already {old}; it cannot be {new}.")


def offer_attachment(bout: Bout, side: str) -> dict:
    """Structured reference to a bout slot, carried next to messages/notifications."""
    return {"bout_id": bout.id, "event_id": bout.event_id, "side": side}


@dataclass
class OfferCreated:
    status: str                      # "created" | "payment_required"
    offer: Optional[BoutOffer] = None
    checkout_url: Optional[str] = None
    checkout_session_id: Optional[str] = None
    attachment: Optional[dict] = None


@dataclass
class OfferResolution:
    offer: BoutOffer
    status: str
    refund_amount: int = 0
    refunded: bool = False
    platform_fee: int = 0
    fee_transferred: bool = False
    followers_notified: int = 0


class OfferLedger:
    def __init__(
        self,
        db: Session,
        gateway: Optional[PaymentGateway] = None,
        fanout: Optional[NotificationFanout] = None,
    ):
        self.db = db
        self.gateway = gateway or get_gateway()
        self.fanout = fanout or NotificationFanout()

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def _get(self, model, pk, label: str):
        row = self.db.get(model, pk) if pk is not None else None
        if row is None:
            raise NotFound(f"{label} not found")
        return row

    def _check_parties(self, sender: Profile, fighter: Profile) -> None:
        """Senders may only offer fighter profiles from their own gym."""
        if sender.role_enum not in OFFER_SENDER_ROLES:
            raise RoleForbidden("Only coach and gym accounts can send offers.")
        if fighter.role_enum != Role.FIGHTER:
            raise ValidationError("Offers must name a fighter profile.")

        sender_gym = normalise_gym(gym_affiliation(sender))
        if not sender_gym:
            raise ValidationError("Set your gym username in profile settings before sending offers.")
        if normalise_gym(gym_affiliation(fighter)) != sender_gym:
            raise Forbidden("You can only offer fighters from your own gym.")

    def _event_for(self, bout: Bout) -> Event:
        return self._get(Event, bout.event_id, "Event")

    def _paid_payment(self, offer_id) -> Optional[OfferPayment]:
        return (
            self.db.query(OfferPayment)
            .filter(OfferPayment.offer_id == offer_id, OfferPayment.payment_status == PAYMENT_PAID)
            .first()
        )

    def _require_owner(self, event: Event, actor_id) -> None:
        if not actor_id or event.owner_id != actor_id:
            raise Forbidden("Only the event organiser can manage offers for this event.")

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_offer(
        self,
        bout_id,
        side: str,
        sender_id,
        fighter_id,
        *,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> OfferCreated:
        """
        Propose a fighter for a corner.

        Free bouts get a pending offer immediately. Bouts with an offer fee get
        a checkout URL instead; the offer is written by confirm_offer_payment
        once the provider reports the charge as paid.
        """
        if side not in SIDES:
            raise ValidationError("side must be 'red' or 'blue'")

        sender = self._get(Profile, sender_id, "Profile")
        bout = self._get(Bout, bout_id, "Bout")
        fighter = self._get(Profile, fighter_id, "Fighter")
        self._check_parties(sender, fighter)

        check_no_existing_offer(self.db, bout.id, side, fighter.id)

        fee = int(bout.offer_fee or 0)
        if fee > 0:
            return self._start_checkout(bout, side, sender, fighter, fee, success_url, cancel_url)

        offer = insert_offer(
            self.db,
            bout_id=bout.id,
            side=side,
            from_profile_id=sender.id,
            fighter_profile_id=fighter.id,
            status=OFFER_PENDING,
        )
        self.db.commit()
        self.db.refresh(offer)
        logger.info(
            "Offer created offer={} bout={} side={} fighter={} sender={}",
            offer.id, bout.id, side, fighter.id, sender.id,
        )

        self._notify_offer_sent(offer, bout, sender, fighter)
        return OfferCreated(status="created", offer=offer, attachment=offer_attachment(bout, side))

    def _start_checkout(
        self,
        bout: Bout,
        side: str,
        sender: Profile,
        fighter: Profile,
        fee: int,
        success_url: Optional[str],
        cancel_url: Optional[str],
    ) -> OfferCreated:
        event = self._event_for(bout)
        base = settings.FRONTEND_BASE_URL.rstrip("/")
        success_url = success_url or (
            f"{base}/events/{event.id}?offer_success=true&session_id={{CHECKOUT_SESSION_ID}}"
            f"&bout_id={bout.id}&fighter_id={fighter.id}&side={side}"
        )
        cancel_url = cancel_url or f"{base}/events/{event.id}?offer_cancelled=true"

        # PaymentError propagates: nothing has been written yet
        session = self.gateway.create_checkout(
            amount=fee,
            currency=settings.OFFER_CURRENCY,
            title=f"Bout Offer Fee - {event.display_name}",
            description=f"Refundable deposit for bout offer ({side} corner) - {fighter.display_name}",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "type": OFFER_FEE_METADATA_TYPE,
                "bout_id": bout.id,
                "event_id": event.id,
                "fighter_id": fighter.id,
                "side": side,
                "payer_profile_id": sender.id,
            },
            idempotency_key=f"offer-checkout-{uuid4().hex}",
        )
        logger.info(
            "Offer checkout started session={} bout={} side={} fighter={} sender={} amount={}",
            session.id, bout.id, side, fighter.id, sender.id, fee,
        )
        return OfferCreated(
            status="payment_required",
            checkout_url=session.url,
            checkout_session_id=session.id,
            attachment=offer_attachment(bout, side),
        )

    def confirm_offer_payment(self, session_id: str, payer_id=None) -> BoutOffer:
        """
        Write the offer and its payment once a checkout is paid.

        Safe to call from both the webhook and the client's return URL: a
        session that already produced an offer returns that offer. A charge
        that can no longer become an offer (duplicate found after payment,
        bout or profiles gone, sender no longer eligible) is refunded before
        the error is raised.
        """
        existing = self._offer_for_session(session_id)
        if existing is not None:
            if payer_id is not None and existing.from_profile_id != payer_id:
                raise Forbidden("This payment belongs to another profile.")
            return existing

        status = self.gateway.retrieve_checkout(session_id)
        if not status.paid:
            raise PaymentError("Payment not completed")

        meta = status.metadata or {}
        if meta.get("type") != OFFER_FEE_METADATA_TYPE:
            raise ValidationError("Checkout session is not an offer fee payment")
        try:
            bout_id = int(meta["bout_id"])
            fighter_id = int(meta["fighter_id"])
            payer = int(meta["payer_profile_id"])
            side = meta["side"]
        except (KeyError, TypeError, ValueError) as exc:
            self._refund_orphaned_charge(session_id, status.payment_ref, status.amount_total or 0, meta.get("bout_id"))
            raise ValidationError("Checkout session metadata is incomplete") from exc

        if payer_id is not None and payer_id != payer:
            raise Forbidden("This payment belongs to another profile.")

        amount = status.amount_total if status.amount_total is not None else 0
        try:
            if side not in SIDES:
                raise ValidationError(f"Invalid side in checkout metadata: {side!r}")
            bout = self._get(Bout, bout_id, "Bout")
            if status.amount_total is None:
                amount = int(bout.offer_fee or 0)
            sender = self._get(Profile, payer, "Profile")
            fighter = self._get(Profile, fighter_id, "Fighter")
            self._check_parties(sender, fighter)
        except (NotFound, ValidationError):
            self._refund_orphaned_charge(session_id, status.payment_ref, amount, bout_id)
            raise

        try:
            check_no_existing_offer(self.db, bout.id, side, fighter_id)
            offer = insert_offer(
                self.db,
                bout_id=bout.id,
                side=side,
                from_profile_id=payer,
                fighter_profile_id=fighter_id,
                status=OFFER_PENDING,
            )
            self.db.add(
                OfferPayment(
                    offer_id=offer.id,
                    bout_id=bout.id,
                    payer_profile_id=payer,
                    amount_paid=amount,
                    currency=settings.OFFER_CURRENCY,
                    payment_status=PAYMENT_PAID,
                    payment_intent_id=status.payment_ref,
                    checkout_session_id=session_id,
                    refund_status=REFUND_NONE,
                    platform_fee=0,
                    transfer_status=TRANSFER_NONE,
                )
            )
            self.db.commit()
        except (DuplicateOffer, IntegrityError) as exc:
            self.db.rollback()
            # a concurrent confirm of the same session may have won the race
            existing = self._offer_for_session(session_id)
            if existing is not None:
                return existing
            if not isinstance(exc, DuplicateOffer):
                logger.error("Offer insert failed for checkout session={}: {}", session_id, exc)
            self._refund_orphaned_charge(session_id, status.payment_ref, amount, bout_id)
            raise

        self.db.refresh(offer)
        logger.info(
            "Paid offer created offer={} session={} bout={} side={} fighter={} amount={}",
            offer.id, session_id, bout.id, side, fighter_id, amount,
        )

        self._notify_offer_sent(offer, bout, sender, fighter)
        return offer

    def _offer_for_session(self, session_id: str) -> Optional[BoutOffer]:
        payment = (
            self.db.query(OfferPayment)
            .filter(OfferPayment.checkout_session_id == session_id)
            .first()
        )
        return payment.offer if payment is not None else None

    def _refund_orphaned_charge(self, session_id: str, payment_ref: Optional[str], amount: int, bout_id) -> None:
        if not payment_ref or amount <= 0:
            logger.error("Cannot refund orphaned checkout session={}: no payment reference", session_id)
            return
        try:
            self.gateway.refund(
                payment_ref,
                amount,
                idempotency_key=f"offer-orphan-refund-{session_id}",
                metadata={"bout_id": bout_id, "reason": "offer_not_created"},
            )
            logger.warning("Refunded orphaned offer checkout session={} amount={}", session_id, amount)
        except PaymentError:
            logger.exception("Refund of orphaned offer checkout session={} failed", session_id)

    def _notify_offer_sent(self, offer: BoutOffer, bout: Bout, sender: Optional[Profile], fighter: Optional[Profile]) -> None:
        event = self.db.get(Event, bout.event_id)
        if event is None:
            logger.warning("Offer {} created on bout {} with no event; owner not notified", offer.id, bout.id)
            return

        self.fanout.notify(
            notify.BOUT_OFFER,
            event.owner_id,
            offer.from_profile_id,
            {
                "offer_id": offer.id,
                "bout_id": bout.id,
                "event_id": event.id,
                "event_name": event.display_name,
                "fighter_profile_id": offer.fighter_profile_id,
                "fighter_name": fighter.display_name if fighter else "A fighter",
                "from_profile_id": offer.from_profile_id,
                "from_name": (sender.full_name or sender.username) if sender else "A coach/gym",
                "side": offer.side,
                "attachment": offer_attachment(bout, offer.side),
            },
        )

    # ------------------------------------------------------------------
    # resolve
    # ------------------------------------------------------------------

    def resolve_offer(self, offer_id, decision: str, actor_id) -> OfferResolution:
        new_status = DECISIONS.get((decision or "").strip().lower())
        if new_status is None:
            raise ValidationError("decision must be 'accept' or 'decline'")

        offer = self._get(BoutOffer, offer_id, "Offer")
        bout = self._get(Bout, offer.bout_id, "Bout")
        event = self._event_for(bout)
        self._require_owner(event, actor_id)

        # terminal offers fail here, before any side effect
        assert_transition(offer.status, new_status)

        if new_status == OFFER_DECLINED:
            return self._decline(offer, bout, event, actor_id)
        return self._accept(offer, bout, event, actor_id)

    def _claim(self, offer: BoutOffer, new_status: str) -> None:
        """Conditional pending -> new_status write; losing a race is InvalidTransition."""
        updated = (
            self.db.query(BoutOffer)
            .filter(BoutOffer.id == offer.id, BoutOffer.status == OFFER_PENDING)
            .update(
                {BoutOffer.status: new_status, BoutOffer.resolved_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise InvalidTransition("Offer was already resolved.")
        self.db.expire(offer)

    def _decline(self, offer: BoutOffer, bout: Bout, event: Event, actor_id) -> OfferResolution:
        offer_id, sender_id, side = offer.id, offer.from_profile_id, offer.side
        fighter = self.db.get(Profile, offer.fighter_profile_id)
        fighter_name = fighter.display_name if fighter else "Fighter"
        event_id, event_name = event.id, event.display_name

        self._claim(offer, OFFER_DECLINED)
        self.db.commit()
        logger.info("Offer declined offer={} bout={} by={}", offer_id, bout.id, actor_id)

        refund_amount, refunded = 0, False
        payment = self._paid_payment(offer_id)
        if payment is not None:
            refund_amount, refunded = self.refund_offer_payment(payment)

        self.fanout.notify(
            notify.OFFER_DECLINED,
            sender_id,
            actor_id,
            {
                "offer_id": offer_id,
                "bout_id": bout.id,
                "event_id": event_id,
                "event_name": event_name,
                "fighter_profile_id": offer.fighter_profile_id,
                "fighter_name": fighter_name,
                "side": side,
                "refund_amount": refund_amount,
                "refunded": refunded,
            },
        )
        return OfferResolution(offer=offer, status=OFFER_DECLINED, refund_amount=refund_amount, refunded=refunded)

    def _accept(self, offer: BoutOffer, bout: Bout, event: Event, actor_id) -> OfferResolution:
        fighter = self._get(Profile, offer.fighter_profile_id, "Fighter")
        offer_id, sender_id, side, fighter_id = offer.id, offer.from_profile_id, offer.side, fighter.id
        fighter_name = fighter.display_name
        bout_id, event_id, event_name = bout.id, event.id, event.display_name
        owner_id, martial_art = event.owner_id, event.martial_art

        expected_version = validate_acceptance(self.db, bout_id, side, fighter_id)

        # status, roster and commission commit together or not at all
        platform_fee = 0
        try:
            self._claim(offer, OFFER_ACCEPTED)
            assign_fighter(self.db, bout_id, side, fighter_id, fighter_name, expected_version)
            payment = self._paid_payment(offer_id)
            if payment is not None:
                platform_fee = apply_platform_fee(self.db, payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Offer accepted offer={} bout={} side={} fighter={} fee={}",
            offer_id, bout_id, side, fighter_id, platform_fee,
        )

        fee_transferred = False
        if payment is not None and platform_fee > 0:
            fee_transferred = self.settle_platform_fee(payment)

        self.fanout.notify(
            notify.BOUT_ASSIGNED,
            fighter_id,
            owner_id,
            {"bout_id": bout_id, "event_id": event_id, "event_name": event_name, "side": side},
        )
        self.fanout.notify(
            notify.OFFER_ACCEPTED,
            sender_id,
            actor_id,
            {
                "offer_id": offer_id,
                "bout_id": bout_id,
                "event_id": event_id,
                "event_name": event_name,
                "fighter_profile_id": fighter_id,
                "fighter_name": fighter_name,
                "side": side,
            },
        )
        followers = self.fanout.notify_followers(
            event_id,
            actor_id,
            {
                "bout_id": bout_id,
                "event_id": event_id,
                "event_name": event_name,
                "fighter_name": fighter_name,
                "side": side,
                "martial_art": martial_art,
            },
        )
        return OfferResolution(
            offer=offer,
            status=OFFER_ACCEPTED,
            platform_fee=platform_fee,
            fee_transferred=fee_transferred,
            followers_notified=followers,
        )

    # ------------------------------------------------------------------
    # settlement (also driven by the reconciliation sweep)
    # ------------------------------------------------------------------

    def refund_offer_payment(self, payment: OfferPayment) -> tuple[int, bool]:
        """
        Refund a declined offer's fee. Returns (amount, refunded).

        Idempotent: a payment already marked refunded makes no provider call,
        and the provider de-duplicates on the offer-scoped idempotency key.
        Failures are logged and reported as refunded=False.
        """
        self.db.refresh(payment)
        amount = int(payment.amount_paid or 0)

        if payment.refund_status == REFUND_REFUNDED:
            return amount, True
        if payment.payment_status != PAYMENT_PAID or amount <= 0:
            return 0, False
        if not payment.payment_intent_id:
            logger.warning("Offer payment {} has no payment reference; refund left for reconciliation", payment.id)
            return amount, False

        try:
            result = self.gateway.refund(
                payment.payment_intent_id,
                amount,
                idempotency_key=f"offer-refund-{payment.offer_id}",
                metadata={"offer_id": payment.offer_id, "bout_id": payment.bout_id, "reason": "offer_declined"},
            )
        except PaymentError as exc:
            logger.warning("Refund failed for offer={} payment={}: {}", payment.offer_id, payment.id, exc.message)
            return amount, False

        if not result.refunded:
            logger.warning("Provider did not refund offer={} payment={}", payment.offer_id, payment.id)
            return amount, False

        self.db.query(OfferPayment).filter(
            OfferPayment.id == payment.id,
            OfferPayment.refund_status != REFUND_REFUNDED,
        ).update(
            {
                OfferPayment.refund_status: REFUND_REFUNDED,
                OfferPayment.refund_id: result.refund_id,
                OfferPayment.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()
        logger.info("Refunded offer={} amount={} refund={}", payment.offer_id, amount, result.refund_id)
        return amount, True

    def settle_platform_fee(self, payment: OfferPayment) -> bool:
        """Move an accepted offer's commission to the platform account. Returns True once settled."""
        self.db.refresh(payment)

        if payment.transfer_status == TRANSFER_TRANSFERRED:
            return True
        if (payment.platform_fee or 0) <= 0 or not payment.payment_intent_id:
            return False

        try:
            result = self.gateway.transfer(
                payment.payment_intent_id,
                payment.platform_fee,
                settings.PLATFORM_STRIPE_ACCOUNT or None,
                currency=payment.currency,
                idempotency_key=f"offer-fee-{payment.offer_id}",
            )
        except PaymentError as exc:
            logger.warning(
                "Platform fee transfer failed for offer={} payment={}: {}", payment.offer_id, payment.id, exc.message
            )
            return False

        if not result.transferred:
            return False

        self.db.query(OfferPayment).filter(
            OfferPayment.id == payment.id,
            OfferPayment.transfer_status != TRANSFER_TRANSFERRED,
        ).update(
            {
                OfferPayment.transfer_status: TRANSFER_TRANSFERRED,
                OfferPayment.transfer_id: result.transfer_id,
                OfferPayment.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
        self.db.commit()
        logger.info("Platform fee settled offer={} fee={}", payment.offer_id, payment.platform_fee)
        return True

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    def list_event_offers(self, event_id, actor_id) -> dict[str, list[BoutOffer]]:
        event = self._get(Event, event_id, "Event")
        self._require_owner(event, actor_id)

        offers = (
            self.db.query(BoutOffer)
            .join(Bout, Bout.id == BoutOffer.bout_id)
            .filter(Bout.event_id == event.id)
            .order_by(BoutOffer.created_at.desc(), BoutOffer.id.desc())
            .all()
        )
        grouped: dict[str, list[BoutOffer]] = {OFFER_PENDING: [], OFFER_ACCEPTED: [], OFFER_DECLINED: []}
        for offer in offers:
            grouped.setdefault(offer.status or OFFER_PENDING, []).append(offer)
        return grouped

    def list_sent_offers(self, sender_id) -> list[BoutOffer]:
        return (
            self.db.query(BoutOffer)
            .filter(BoutOffer.from_profile_id == sender_id)
            .order_by(BoutOffer.created_at.desc(), BoutOffer.id.desc())
            .all()
        )
