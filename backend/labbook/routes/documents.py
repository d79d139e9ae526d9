from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, require_admin
from .. import models, schemas
from ..services import results
from ..services.errors import BookingError
from .bookings import raise_http

router = APIRouter(tags=["documents"])


@router.post(
    "/api/bookings/{booking_id}/documents",
    response_model=schemas.DocumentOut,
    status_code=201,
)
def upload_document(
    booking_id: UUID,
    data: schemas.DocumentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return results.upload_document(db, booking_id, user, data)
    except BookingError as exc:
        raise_http(exc)


@router.get(
    "/api/bookings/{booking_id}/documents", response_model=List[schemas.DocumentOut]
)
def list_documents(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return results.list_result_documents(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)


@router.get(
    "/api/bookings/{booking_id}/documents/state",
    response_model=schemas.DocumentVerificationStateOut,
)
def document_state(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        booking = results.booking_for_actor(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)
    return results.document_verification_state(booking)


@router.post("/api/booking-docs/{document_id}/verify", response_model=schemas.DocumentOut)
def verify_document(
    document_id: UUID,
    data: Optional[schemas.DocumentVerifyRequest] = None,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return results.verify_document(db, document_id, admin, data.note if data else None)
    except BookingError as exc:
        raise_http(exc)


@router.post("/api/booking-docs/{document_id}/reject", response_model=schemas.DocumentOut)
def reject_document(
    document_id: UUID,
    data: schemas.DocumentRejectRequest,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return results.reject_document(db, document_id, admin, data.reason)
    except BookingError as exc:
        raise_http(exc)
