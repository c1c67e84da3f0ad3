# fightcard_api/app/services/roster.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..errors import SlotTaken, ValidationError
from ..models import Bout, SIDES


def assign_fighter(
    db: Session,
    bout_id: int,
    side: str,
    fighter_id: int,
    display_name: str,
    expected_version: Optional[int] = None,
) -> None:
    """
    Put a fighter into a corner with a single conditional UPDATE.

    The write only lands if the corner is still empty and, when given, the
    bout is still at `expected_version`. Otherwise SlotTaken is raised and
    nothing changes. Does not commit.
    """
    if side not in SIDES:
        raise ValidationError(f"Invalid side: {side!r}")

    fighter_col = getattr(Bout, f"{side}_fighter_id")
    query = db.query(Bout).filter(Bout.id == bout_id, fighter_col.is_(None))
    if expected_version is not None:
        query = query.filter(Bout.version == expected_version)

    updated = query.update(
        {
            fighter_col: fighter_id,
            getattr(Bout, f"{side}_name"): display_name,
            getattr(Bout, f"{side}_looking_for_opponent"): False,
            Bout.version: Bout.version + 1,
        },
        synchronize_session=False,
    )
    if updated != 1:
        raise SlotTaken(side)

    # the ORM copy (if loaded) is now stale
    bout = db.get(Bout, bout_id)
    if bout is not None:
        db.expire(bout)
