from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_admin
from .. import models, schemas
from ..services import bookings
from ..services.errors import BookingError
from .bookings import raise_http

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _status(booking: models.BookingRequest) -> schemas.BookingStatusOut:
    return schemas.BookingStatusOut(booking_id=booking.id, status=booking.status)


@router.get("/bookings", response_model=List[schemas.BookingSummaryOut])
def list_all_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return bookings.list_bookings(db, admin, status=status_filter, all_users=True)


@router.post("/bookings/{booking_id}/approve", response_model=schemas.BookingStatusOut)
def approve_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return _status(bookings.admin_approve(db, booking_id, admin))
    except BookingError as exc:
        raise_http(exc)


@router.post("/bookings/{booking_id}/reject", response_model=schemas.BookingStatusOut)
def reject_booking(
    booking_id: UUID,
    data: schemas.ReviewNote,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return _status(bookings.admin_reject(db, booking_id, admin, data.note))
    except BookingError as exc:
        raise_http(exc)


@router.post(
    "/bookings/{booking_id}/return-for-edit", response_model=schemas.BookingStatusOut
)
def return_booking_for_edit(
    booking_id: UUID,
    data: schemas.ReviewNote,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return _status(bookings.admin_return_for_edit(db, booking_id, admin, data.note))
    except BookingError as exc:
        raise_http(exc)


@router.post("/bookings/{booking_id}/cancel", response_model=schemas.BookingStatusOut)
def cancel_booking(
    booking_id: UUID,
    data: Optional[schemas.CancelRequest] = None,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    reason = data.reason if data else None
    try:
        return _status(bookings.cancel_by_admin(db, booking_id, admin, reason))
    except BookingError as exc:
        raise_http(exc)


@router.post(
    "/bookings/{booking_id}/force-complete", response_model=schemas.BookingStatusOut
)
def force_complete_booking(
    booking_id: UUID,
    data: schemas.ForceCompleteRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return _status(bookings.force_complete(db, booking_id, admin, data.reason))
    except BookingError as exc:
        raise_http(exc)


@router.post("/users/{user_id}/verify", response_model=schemas.UserVerifiedOut)
def verify_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        promoted = bookings.on_user_verified(db, user_id, admin)
    except BookingError as exc:
        raise_http(exc)
    return schemas.UserVerifiedOut(user_id=user_id, promoted_booking_ids=promoted)
