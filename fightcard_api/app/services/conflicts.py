# fightcard_api/app/services/conflicts.py
from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from ..errors import NotFound, SameGymMatchup, SelfMatchup
from ..models import Bout, Profile, opponent_side
from .affiliations import gym_affiliation, normalise_gym


def validate_acceptance(db: Session, bout_id: int, side: str, fighter_id: int) -> int:
    """
    Reject a matchup before an offer is accepted:
      - the fighter already holds the opposite corner (self-match)
      - both fighters declare the same gym (trimmed, case-insensitive)

    Unknown affiliations on either side let the match through.
    Returns the bout version the check was made against.
    """
    bout = db.get(Bout, bout_id)
    if bout is None:
        raise NotFound("Bout not found")

    opponent_id = bout.fighter_id_for(opponent_side(side))
    if not opponent_id:
        return bout.version

    if opponent_id == fighter_id:
        raise SelfMatchup()

    profiles = {
        p.id: p
        for p in db.query(Profile).filter(Profile.id.in_([fighter_id, opponent_id])).all()
    }
    offered_gym = gym_affiliation(profiles.get(fighter_id))
    opponent_gym = gym_affiliation(profiles.get(opponent_id))

    if normalise_gym(offered_gym) is None or normalise_gym(opponent_gym) is None:
        # unknown affiliation is not evidence of a conflict; let it through
        logger.info(
            "Gym unknown for bout={} side={} fighter={} opponent={}; allowing acceptance",
            bout_id, side, fighter_id, opponent_id,
        )
        return bout.version

    if normalise_gym(offered_gym) == normalise_gym(opponent_gym):
        raise SameGymMatchup(offered_gym.strip())

    return bout.version
