from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..services import pricing

router = APIRouter(prefix="/api/services", tags=["services"])


@router.get("", response_model=List[schemas.ServiceOut])
def list_services(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    services = (
        db.query(models.Service)
        .filter(models.Service.is_active.is_(True))
        .order_by(models.Service.name)
        .all()
    )
    prices = pricing.resolve_unit_prices(db, [s.id for s in services], user.user_type)
    out = []
    for service in services:
        item = schemas.ServiceOut.model_validate(service)
        row = prices.get(service.id)
        item.effective_price = row.price if row else None
        out.append(item)
    return out


@router.get("/add-ons", response_model=List[schemas.AddOnOut])
def list_add_on_catalog(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return (
        db.query(models.GlobalAddOnCatalog)
        .filter(models.GlobalAddOnCatalog.is_active.is_(True))
        .order_by(models.GlobalAddOnCatalog.name)
        .all()
    )


@router.get("/{service_id}", response_model=schemas.ServiceDetailOut)
def read_service(
    service_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Service with its price list; customers only see their own user type."""
    service = db.get(models.Service, service_id)
    if not service or not service.is_active:
        raise HTTPException(status_code=404, detail="Service not found")
    rows = sorted(service.pricing, key=lambda row: (row.user_type, row.effective_from))
    if not user.is_admin:
        rows = [row for row in rows if row.user_type == user.user_type]
    detail = schemas.ServiceDetailOut.model_validate(service)
    detail.prices = [schemas.ServicePriceOut.model_validate(row) for row in rows]
    effective = pricing.resolve_unit_prices(db, [service.id], user.user_type).get(service.id)
    detail.effective_price = effective.price if effective else None
    return detail


@router.get("/{service_id}/add-ons", response_model=List[schemas.ServiceAddOnOut])
def list_service_add_ons(
    service_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    service = db.get(models.Service, service_id)
    if not service or not service.is_active:
        raise HTTPException(status_code=404, detail="Service not found")
    kind = (
        "workspace" if service.category == pricing.WORKING_SPACE_CATEGORY else "sample"
    )
    add_ons = (
        db.query(models.GlobalAddOnCatalog)
        .filter(models.GlobalAddOnCatalog.is_active.is_(True))
        .order_by(models.GlobalAddOnCatalog.name)
        .all()
    )
    snapshot = pricing.load_add_on_catalog(db, [a.id for a in add_ons], [service.id])
    out = []
    for add_on in add_ons:
        resolved = snapshot.resolve(service.id, add_on.id, kind)
        if resolved is None:
            continue
        out.append(
            schemas.ServiceAddOnOut(
                add_on_id=resolved.add_on_id, name=resolved.name, amount=resolved.amount
            )
        )
    return out
