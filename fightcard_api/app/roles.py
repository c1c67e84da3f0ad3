# fightcard_api/app/roles.py
from __future__ import annotations

from enum import Enum
from typing import Optional


class Role(str, Enum):
    FIGHTER = "fighter"
    COACH = "coach"
    GYM = "gym"
    PROMOTION = "promotion"
    ADMIN = "admin"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Role"]:
        """
        Normalise a free-text role ("COACH", " Gym ", "coach") to the enum.
        Returns None for blanks and unknown values.
        """
        value = (raw or "").strip().lower()
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


# Roles allowed to propose a fighter for a bout slot
OFFER_SENDER_ROLES = frozenset({Role.COACH, Role.GYM})
