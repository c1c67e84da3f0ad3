# fightcard_api/app/services/notify.py
"""
Notification fan-out for offer transitions.

Rows are written through a service session of their own, not the caller's
request session: broadcast writes touch follower rows the acting organiser
does not own, and a failed insert must never undo a committed transition.
Every failure here is logged and swallowed.
"""
from __future__ import annotations

from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..errors import ValidationError
from ..models import EventFollow, Notification

BOUT_OFFER = "bout_offer"
BOUT_ASSIGNED = "bout_assigned"
OFFER_ACCEPTED = "offer_accepted"
OFFER_DECLINED = "offer_declined"
EVENT_BOUT_MATCHED = "event_bout_matched"


class NotificationFanout:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory or SessionLocal

    def notify(self, type: str, recipient_id, actor_id, payload: dict) -> Optional[int]:
        """Insert one targeted notification. Returns its id, or None on failure."""
        try:
            if not recipient_id:
                raise ValidationError(f"{type} notification has no recipient")

            with self.session_factory() as db:
                row = Notification(
                    type=type,
                    recipient_profile_id=recipient_id,
                    actor_profile_id=actor_id,
                    data=dict(payload),
                )
                db.add(row)
                db.commit()
                return row.id
        except Exception:  # noqa: BLE001
            logger.exception("Failed to create {} notification for recipient={}", type, recipient_id)
            return None

    def notify_followers(
        self,
        event_id,
        actor_id,
        payload: dict,
        type: str = EVENT_BOUT_MATCHED,
    ) -> int:
        """Insert one notification per follower of the event. Returns how many were written."""
        try:
            with self.session_factory() as db:
                follower_ids = [
                    row.profile_id
                    for row in db.query(EventFollow.profile_id)
                    .filter(EventFollow.event_id == event_id)
                    .all()
                ]
                if not follower_ids:
                    return 0

                db.add_all(
                    Notification(
                        type=type,
                        recipient_profile_id=pid,
                        actor_profile_id=actor_id,
                        data=dict(payload),
                    )
                    for pid in follower_ids
                )
                db.commit()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to notify followers of event={} type={}", event_id, type)
            return 0

        logger.info("Notified {} followers of event={} type={}", len(follower_ids), event_id, type)
        return len(follower_ids)
