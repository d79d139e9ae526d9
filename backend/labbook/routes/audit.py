from uuid import UUID
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import require_admin
from .. import models, schemas, audit

router = APIRouter(prefix="/api/admin/audit", tags=["audit"])


@router.get("/bookings/{booking_id}", response_model=list[schemas.AuditLogOut])
async def booking_audit_trail(
    booking_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return audit.list_for_target(db, "booking", booking_id)
