from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user, require_admin
from .. import models, schemas
from ..services import modifications
from ..services.errors import BookingError
from .bookings import raise_http

router = APIRouter(tags=["modifications"])


@router.post(
    "/api/bookings/{booking_id}/modifications",
    response_model=schemas.ModificationOut,
    status_code=201,
)
def propose_modification(
    booking_id: UUID,
    data: schemas.ModificationCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return modifications.propose_modification(db, booking_id, admin, data)
    except BookingError as exc:
        raise_http(exc)


@router.get(
    "/api/bookings/{booking_id}/modifications",
    response_model=List[schemas.ModificationOut],
)
def list_modifications(
    booking_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return modifications.list_modifications(db, booking_id, user)
    except BookingError as exc:
        raise_http(exc)


@router.post(
    "/api/modifications/{modification_id}/decision",
    response_model=schemas.ModificationOut,
)
def decide_modification(
    modification_id: UUID,
    data: schemas.ModificationDecision,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    try:
        return modifications.decide_modification(
            db, modification_id, user, data.approved, data.notes
        )
    except BookingError as exc:
        raise_http(exc)
