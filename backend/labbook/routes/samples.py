from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_admin
from .. import models, schemas
from ..services import samples
from ..services.errors import BookingError
from .bookings import raise_http

router = APIRouter(prefix="/api/admin/samples", tags=["samples"])


@router.get("", response_model=List[schemas.SampleListItem])
def list_samples(
    status_filter: Optional[schemas.SampleStatus] = Query(None, alias="status"),
    booking_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return samples.list_samples(db, status=status_filter, booking_id=booking_id)


@router.patch("/{sample_id}", response_model=schemas.SampleStatusOut)
def update_sample(
    sample_id: UUID,
    data: schemas.SampleStatusUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        result = samples.update_sample_status(db, sample_id, data.status, admin.id)
    except BookingError as exc:
        raise_http(exc)
    return schemas.SampleStatusOut(
        sample=schemas.SampleOut.model_validate(result.sample),
        booking_id=result.booking.id,
        booking_status=result.booking.status,
        booking_completed=result.booking_completed,
    )
