# fightcard_api/app/services/affiliations.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models import Profile
from ..roles import Role


def normalise_gym(value) -> Optional[str]:
    """Trimmed, case-folded gym handle; None when blank or not a string."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip().casefold()
    return cleaned or None


def gym_affiliation(profile: Optional[Profile]) -> Optional[str]:
    """
    Raw gym handle a profile is affiliated with:
      - gym accounts are their own gym (username)
      - everyone else declares it in social_links.gym_username
    """
    if profile is None:
        return None
    if profile.role_enum == Role.GYM:
        return profile.username
    links = profile.social_links or {}
    value = links.get("gym_username") if isinstance(links, dict) else None
    return value if isinstance(value, str) and value.strip() else None


def eligible_fighters(db: Session, sender: Profile) -> list[Profile]:
    """Fighter profiles linked to the sender's gym, for the offer picker."""
    gym = normalise_gym(gym_affiliation(sender))
    if not gym:
        raise ValidationError("Set your gym username in profile settings before sending offers.")

    fighters = (
        db.query(Profile)
        .filter(Profile.role == Role.FIGHTER.value)
        .order_by(Profile.full_name, Profile.username)
        .all()
    )
    # social_links is free-form JSON, so the match is done here rather than in SQL
    return [f for f in fighters if normalise_gym(gym_affiliation(f)) == gym]
