# fightcard_api/app/routers/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps.current_user import current_profile
from ..models import Notification, Profile
from ..schemas import MarkReadIn, NotificationOut

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    profile: Profile = Depends(current_profile),
):
    q = db.query(Notification).filter(Notification.recipient_profile_id == profile.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


@router.post("/mark-read")
def mark_read(
    payload: MarkReadIn,
    db: Session = Depends(get_db),
    profile: Profile = Depends(current_profile),
):
    if not payload.ids:
        return {"ok": True, "updated": 0}

    updated = (
        db.query(Notification)
        .filter(
            Notification.recipient_profile_id == profile.id,
            Notification.id.in_(payload.ids),
        )
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "updated": updated}


@router.post("/mark-read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    profile: Profile = Depends(current_profile),
):
    updated = (
        db.query(Notification)
        .filter(
            Notification.recipient_profile_id == profile.id,
            Notification.is_read.is_(False),
        )
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"ok": True, "updated": updated}
