from uuid import UUID
from datetime import date, timedelta
from typing import Optional

import sqlalchemy as sa
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..notify import EVENT_TEMPLATES

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

CATEGORIES = sorted({category for category, *_ in EVENT_TEMPLATES.values()})
PRIORITIES = ("low", "medium", "high", "urgent")


def _own(db: Session, user: models.User):
    return db.query(models.Notification).filter(models.Notification.user_id == user.id)


def _get_own(db: Session, user: models.User, notification_id: UUID) -> models.Notification:
    notif = _own(db, user).filter(models.Notification.id == notification_id).first()
    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notif


@router.get("/", response_model=list[schemas.NotificationOut])
def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read status"),
    category: Optional[str] = Query(None, description="bookings, samples, documents or account"),
    booking_id: Optional[UUID] = Query(None, description="Only notices about this booking"),
    event: Optional[str] = Query(None, description="Event name, e.g. booking_approved"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    query = _own(db, user)
    if is_read is not None:
        query = query.filter(models.Notification.is_read == is_read)
    if category:
        query = query.filter(models.Notification.category == category)
    if date_from:
        query = query.filter(models.Notification.created_at >= date_from)
    if date_to:
        query = query.filter(models.Notification.created_at < date_to + timedelta(days=1))

    notices = query.order_by(models.Notification.created_at.desc()).all()
    # meta is a JSON column; match booking and event in Python so SQLite and Postgres agree
    if booking_id:
        notices = [n for n in notices if (n.meta or {}).get("booking_id") == str(booking_id)]
    if event:
        notices = [n for n in notices if (n.meta or {}).get("event") == event]
    return notices


@router.get("/stats")
def get_notification_stats(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Unread count plus per-category, per-priority and per-event totals."""
    notices = _own(db, user).all()
    stats = {
        "total": len(notices),
        "unread": sum(1 for n in notices if not n.is_read),
        "by_category": dict.fromkeys(CATEGORIES, 0),
        "by_priority": dict.fromkeys(PRIORITIES, 0),
        "by_event": {},
    }
    for notice in notices:
        if notice.category in stats["by_category"]:
            stats["by_category"][notice.category] += 1
        if notice.priority in stats["by_priority"]:
            stats["by_priority"][notice.priority] += 1
        event = (notice.meta or {}).get("event")
        if event:
            stats["by_event"][event] = stats["by_event"].get(event, 0) + 1
    return stats


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    notif = _get_own(db, user, notification_id)
    notif.is_read = True
    db.commit()
    db.refresh(notif)
    return notif


@router.post("/mark-all-read")
def mark_all_read(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    stmt = (
        sa.update(models.Notification)
        .where(models.Notification.user_id == user.id)
        .where(models.Notification.is_read.is_(False))
    )
    if category:
        stmt = stmt.where(models.Notification.category == category)
    result = db.execute(stmt.values(is_read=True).execution_options(synchronize_session=False))
    db.commit()
    return {"updated": result.rowcount}


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    db.delete(_get_own(db, user, notification_id))
    db.commit()
    return Response(status_code=204)
