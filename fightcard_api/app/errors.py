# fightcard_api/app/errors.py
"""
Error taxonomy for the bout-offer workflow.

Every error carries the HTTP status it maps to; main.py turns them into
{"detail": ..., "code": ...} responses. Nothing here is retried automatically.
"""
from __future__ import annotations


class OfferError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


# ---- validation ---------------------------------------------------------

class ValidationError(OfferError):
    status_code = 400


class RoleForbidden(ValidationError):
    status_code = 403


class Forbidden(ValidationError):
    status_code = 403


# ---- lookups ------------------------------------------------------------

class NotFound(OfferError):
    status_code = 404


# ---- conflicts ----------------------------------------------------------

class Conflict(OfferError):
    status_code = 409


class DuplicateOffer(Conflict):
    def __init__(self, message: str = "An offer for this fighter on this bout has already been sent."):
        super().__init__(message)


class SelfMatchup(Conflict):
    def __init__(self, message: str = "A fighter cannot face themselves."):
        super().__init__(message)


class SameGymMatchup(Conflict):
    def __init__(self, gym: str):
        super().__init__(f"Same-gym matchup blocked: fighters from @{gym} can't fight each other.")
        self.gym = gym


class SlotTaken(Conflict):
    def __init__(self, side: str):
        super().__init__(f"The {side} corner was filled or changed while this offer was being accepted.")
        self.side = side


# ---- state machine ------------------------------------------------------

class InvalidTransition(OfferError):
    status_code = 409


# ---- payments -----------------------------------------------------------

class PaymentError(OfferError):
    status_code = 502


class PaymentTimeout(PaymentError):
    status_code = 504
