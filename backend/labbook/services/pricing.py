"""Catalog price and add-on resolution for booking line items."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Literal
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import models
from .errors import PricingNotFound

# purpose: resolve effective unit prices and add-on amounts as of a point in time
# status: active
# depends_on: labbook.models.ServicePricing, labbook.models.GlobalAddOnCatalog
# related_docs: DESIGN.md

WORKING_SPACE_CATEGORY = "working_space"

LineItemKind = Literal["sample", "workspace"]


def _effective_filter(user_type: str, as_of: datetime):
    return sa.and_(
        models.ServicePricing.user_type == user_type,
        models.ServicePricing.effective_from <= as_of,
        sa.or_(
            models.ServicePricing.effective_to.is_(None),
            models.ServicePricing.effective_to >= as_of,
        ),
    )


def resolve_unit_price(
    db: Session,
    service_id: UUID,
    user_type: str,
    as_of: datetime | None = None,
) -> models.ServicePricing:
    """Return the pricing row in effect for a service and user type."""

    as_of = as_of or datetime.now(timezone.utc)
    pricing = (
        db.query(models.ServicePricing)
        .filter(models.ServicePricing.service_id == service_id)
        .filter(_effective_filter(user_type, as_of))
        .order_by(models.ServicePricing.effective_from.desc())
        .first()
    )
    if pricing is None:
        raise PricingNotFound(service_id, user_type)
    return pricing


def resolve_unit_prices(
    db: Session,
    service_ids: Iterable[UUID],
    user_type: str,
    as_of: datetime | None = None,
) -> dict[UUID, models.ServicePricing]:
    """Batch variant of :func:`resolve_unit_price`.

    Services without an effective row are absent from the result; callers
    decide whether that is fatal.
    """

    ids = {sid for sid in service_ids if sid}
    if not ids:
        return {}
    as_of = as_of or datetime.now(timezone.utc)
    rows = (
        db.query(models.ServicePricing)
        .filter(models.ServicePricing.service_id.in_(ids))
        .filter(_effective_filter(user_type, as_of))
        .order_by(models.ServicePricing.effective_from.desc())
        .all()
    )
    resolved: dict[UUID, models.ServicePricing] = {}
    for row in rows:
        # rows are newest first, keep the first seen per service
        resolved.setdefault(row.service_id, row)
    return resolved


def get_working_space_service(db: Session) -> models.Service | None:
    return (
        db.query(models.Service)
        .filter(models.Service.category == WORKING_SPACE_CATEGORY)
        .filter(models.Service.is_active.is_(True))
        .order_by(models.Service.created_at.asc())
        .first()
    )


def resolve_workspace_monthly_rate(
    db: Session,
    user_type: str,
    as_of: datetime | None = None,
) -> tuple[UUID | None, Decimal | None]:
    """Return the working-space service id and its monthly rate for the user type.

    A missing service or price yields ``None`` rather than an error.
    """

    service = get_working_space_service(db)
    if service is None:
        return None, None
    try:
        pricing = resolve_unit_price(db, service.id, user_type, as_of)
    except PricingNotFound:
        return service.id, None
    return service.id, Decimal(pricing.price)


@dataclass(frozen=True)
class ResolvedAddOnAmount:
    add_on_id: UUID
    name: str
    amount: Decimal
    description: str | None = None


@dataclass
class AddOnCatalogSnapshot:
    """In-memory view of the add-on catalog and per-service overrides."""

    add_ons: dict[UUID, models.GlobalAddOnCatalog] = field(default_factory=dict)
    mappings: dict[tuple[UUID, UUID], models.ServiceAddOnMapping] = field(
        default_factory=dict
    )

    def resolve(
        self,
        service_id: UUID | None,
        add_on_id: UUID,
        kind: LineItemKind,
    ) -> ResolvedAddOnAmount | None:
        """Resolve the billable amount for one add-on, or ``None`` when not applicable."""

        add_on = self.add_ons.get(add_on_id)
        if add_on is None or not add_on.is_active:
            return None
        mapping = self.mappings.get((service_id, add_on_id)) if service_id else None
        # a disabled mapping counts as no mapping: the catalog default applies
        if mapping is not None and not mapping.is_enabled:
            mapping = None
        if mapping is not None:
            if mapping.custom_amount is not None:
                return ResolvedAddOnAmount(
                    add_on_id=add_on.id,
                    name=add_on.name,
                    amount=Decimal(mapping.custom_amount),
                    description=add_on.description,
                )
        elif add_on.applicable_to not in (kind, "both"):
            return None
        return ResolvedAddOnAmount(
            add_on_id=add_on.id,
            name=add_on.name,
            amount=Decimal(add_on.default_amount),
            description=add_on.description,
        )


def load_add_on_catalog(
    db: Session,
    add_on_ids: Iterable[UUID],
    service_ids: Iterable[UUID],
) -> AddOnCatalogSnapshot:
    """Fetch the catalog rows and overrides needed to price a draft."""

    add_on_ids = {aid for aid in add_on_ids if aid}
    service_ids = {sid for sid in service_ids if sid}
    snapshot = AddOnCatalogSnapshot()
    if not add_on_ids:
        return snapshot
    for add_on in (
        db.query(models.GlobalAddOnCatalog)
        .filter(models.GlobalAddOnCatalog.id.in_(add_on_ids))
        .all()
    ):
        snapshot.add_ons[add_on.id] = add_on
    if service_ids:
        for mapping in (
            db.query(models.ServiceAddOnMapping)
            .filter(models.ServiceAddOnMapping.service_id.in_(service_ids))
            .filter(models.ServiceAddOnMapping.add_on_id.in_(add_on_ids))
            .all()
        ):
            snapshot.mappings[(mapping.service_id, mapping.add_on_id)] = mapping
    return snapshot


def resolve_add_on_amount(
    db: Session,
    service_id: UUID | None,
    add_on_id: UUID,
    kind: LineItemKind = "sample",
) -> Decimal | None:
    """Return the override amount, else the catalog default, else ``None``."""

    snapshot = load_add_on_catalog(db, [add_on_id], [service_id] if service_id else [])
    resolved = snapshot.resolve(service_id, add_on_id, kind)
    return resolved.amount if resolved else None
