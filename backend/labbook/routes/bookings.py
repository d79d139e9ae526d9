from typing import List, NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import bookings, results
from ..services.errors import (
    BookingError,
    BookingForbidden,
    BookingGuardError,
    BookingNotFound,
    BookingValidationError,
    DocumentNotFound,
    ModificationNotFound,
    PricingNotFound,
    SampleNotFound,
)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def raise_http(exc: BookingError) -> NoReturn:
    """Translate a booking engine error into the matching HTTP response."""
    if isinstance(exc, BookingValidationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "issues": exc.issues},
        ) from exc
    if isinstance(exc, BookingGuardError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, BookingForbidden):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(
        exc, (BookingNotFound, SampleNotFound, DocumentNotFound, ModificationNotFound)
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, PricingNotFound):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": "pricing_missing",
                "message": str(exc),
                "service_id": str(exc.service_id),
                "user_type": exc.user_type,
            },
        ) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("", response_model=schemas.BookingCreatedOut, status_code=201)
def create_booking(
    data: Optional[schemas.BookingDraftUpdate] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        booking = bookings.create_draft(db, user, data)
    except BookingError as exc:
        raise_http(exc)
    return schemas.BookingCreatedOut(
        booking_id=booking.id, reference_number=booking.reference_number
    )


@router.get("", response_model=List[schemas.BookingSummaryOut])
def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return bookings.list_bookings(db, user, status=status_filter)


@router.get("/{booking_id}", response_model=schemas.BookingOut)
def read_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return bookings.get_booking(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)


@router.put("/{booking_id}", response_model=schemas.BookingOut)
def save_draft(
    booking_id: UUID,
    data: schemas.BookingDraftUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return bookings.save_draft(db, booking_id, user, data)
    except BookingError as exc:
        raise_http(exc)


@router.delete("/{booking_id}", status_code=204)
def delete_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        bookings.delete_draft(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)
    return Response(status_code=204)


@router.post("/{booking_id}/submit", response_model=schemas.BookingStatusOut)
def submit_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        booking = bookings.submit(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)
    return schemas.BookingStatusOut(booking_id=booking.id, status=booking.status)


@router.post("/{booking_id}/cancel", response_model=schemas.BookingStatusOut)
def cancel_booking(
    booking_id: UUID,
    data: Optional[schemas.CancelRequest] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    reason = data.reason if data else None
    try:
        booking = bookings.cancel_by_user(db, booking_id, user, reason)
    except BookingError as exc:
        raise_http(exc)
    return schemas.BookingStatusOut(booking_id=booking.id, status=booking.status)


@router.get("/{booking_id}/eligibility", response_model=schemas.DownloadEligibilityOut)
def download_eligibility(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return results.check_download_eligibility(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)
