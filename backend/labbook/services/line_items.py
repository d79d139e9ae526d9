"""Line-item normalization and totals for booking drafts."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from . import pricing
from .errors import BookingValidationError, PricingNotFound

# purpose: turn raw draft items into priced, add-on resolved line items and a total
# status: active
# depends_on: labbook.services.pricing
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)

WORKSPACE_MIN_DAYS = int(os.getenv("WORKSPACE_MIN_DAYS", "30"))
DAYS_PER_BILLED_MONTH = 30

ZERO = Decimal("0")

_SERVICE_ITEM_PRICING_FIELDS = {
    "id",
    "service_id",
    "quantity",
    "duration_months",
    "add_on_catalog_ids",
}
_WORKSPACE_PRICING_FIELDS = {"id", "start_date", "end_date", "add_on_catalog_ids"}


class PricingMode(str, Enum):
    """How a service item's billing quantity is derived."""

    PER_COUNT = "per_count"
    PER_DURATION = "per_duration"

    @classmethod
    def for_category(cls, category: str | None) -> "PricingMode":
        if category == pricing.WORKING_SPACE_CATEGORY:
            return cls.PER_DURATION
        return cls.PER_COUNT


def inclusive_days(start: date, end: date) -> int:
    return max(0, (end - start).days + 1)


def billed_months(start: date, end: date) -> int:
    """Months billed for an inclusive date range, never less than one."""

    return max(1, math.ceil(inclusive_days(start, end) / DAYS_PER_BILLED_MONTH))


def workspace_range_issues(
    start: date,
    end: date,
    index: int,
    *,
    enforce_minimum: bool,
) -> list[dict[str, Any]]:
    """Return validation issues for one workspace booking's date range."""

    if end < start:
        return [
            {
                "path": ["workspace_bookings", index, "end_date"],
                "message": "End date must be on or after start date",
            }
        ]
    if enforce_minimum and inclusive_days(start, end) < WORKSPACE_MIN_DAYS:
        return [
            {
                "path": ["workspace_bookings", index, "end_date"],
                "message": f"Workspace bookings must cover at least {WORKSPACE_MIN_DAYS} days",
            }
        ]
    return []


@dataclass(frozen=True)
class NormalizedAddOn:
    add_on_catalog_id: UUID
    name: str
    amount: Decimal
    description: str | None = None


@dataclass
class NormalizedServiceItem:
    id: UUID | None
    service_id: UUID
    pricing_mode: PricingMode
    quantity: int
    duration_months: int
    unit_price: Decimal
    total_price: Decimal
    add_ons: tuple[NormalizedAddOn, ...] = ()
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def billing_quantity(self) -> int:
        if self.pricing_mode is PricingMode.PER_DURATION:
            return self.duration_months
        return self.quantity


@dataclass
class NormalizedWorkspaceBooking:
    id: UUID | None
    start_date: date
    end_date: date
    billed_months: int
    unit_price: Decimal
    total_price: Decimal
    add_ons: tuple[NormalizedAddOn, ...] = ()
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedLineItems:
    service_items: list[NormalizedServiceItem]
    workspace_bookings: list[NormalizedWorkspaceBooking]
    total_amount: Decimal


@dataclass
class PricingSnapshot:
    """Everything the normalizer reads from the catalog, captured up front."""

    user_type: str
    unit_prices: dict[UUID, Decimal] = field(default_factory=dict)
    categories: dict[UUID, str] = field(default_factory=dict)
    add_ons: pricing.AddOnCatalogSnapshot = field(default_factory=pricing.AddOnCatalogSnapshot)
    workspace_service_id: UUID | None = None
    workspace_monthly_rate: Decimal | None = None


def compute_total(
    service_items: Sequence[Any],
    workspace_bookings: Sequence[Any],
) -> Decimal:
    """Sum line item totals; accepts normalized items or ORM rows."""

    total = ZERO
    for item in service_items:
        total += Decimal(item.total_price)
    for workspace in workspace_bookings:
        total += Decimal(workspace.total_price)
    return total


def build_pricing_snapshot(
    db: Session,
    service_items: Sequence[schemas.ServiceItemDraft],
    workspace_bookings: Sequence[schemas.WorkspaceBookingDraft],
    user_type: str,
    as_of: datetime | None = None,
) -> PricingSnapshot:
    """Load prices, categories, add-ons and the workspace rate for a draft."""

    service_ids = {item.service_id for item in service_items}
    snapshot = PricingSnapshot(user_type=user_type)
    if service_ids:
        for service in (
            db.query(models.Service)
            .filter(models.Service.id.in_(service_ids))
            .filter(models.Service.is_active.is_(True))
            .all()
        ):
            snapshot.categories[service.id] = service.category
        for service_id, row in pricing.resolve_unit_prices(
            db, service_ids, user_type, as_of
        ).items():
            snapshot.unit_prices[service_id] = Decimal(row.price)

    if workspace_bookings:
        (
            snapshot.workspace_service_id,
            snapshot.workspace_monthly_rate,
        ) = pricing.resolve_workspace_monthly_rate(db, user_type, as_of)

    add_on_ids = [aid for item in service_items for aid in item.add_on_catalog_ids]
    add_on_ids += [aid for ws in workspace_bookings for aid in ws.add_on_catalog_ids]
    mapping_services = set(service_ids)
    if snapshot.workspace_service_id:
        mapping_services.add(snapshot.workspace_service_id)
    snapshot.add_ons = pricing.load_add_on_catalog(db, add_on_ids, mapping_services)
    return snapshot


def _resolve_add_ons(
    snapshot: PricingSnapshot,
    service_id: UUID | None,
    add_on_ids: Sequence[UUID],
    kind: pricing.LineItemKind,
) -> tuple[NormalizedAddOn, ...]:
    resolved: list[NormalizedAddOn] = []
    seen: set[UUID] = set()
    for add_on_id in add_on_ids:
        if add_on_id in seen:
            continue
        seen.add(add_on_id)
        amount = snapshot.add_ons.resolve(service_id, add_on_id, kind)
        if amount is None:
            continue
        resolved.append(
            NormalizedAddOn(
                add_on_catalog_id=amount.add_on_id,
                name=amount.name,
                amount=amount.amount,
                description=amount.description,
            )
        )
    return tuple(resolved)


def _attributes(payload: Any, exclude: set[str]) -> dict[str, Any]:
    data = payload.model_dump(exclude=exclude)
    # JSON columns cannot hold UUID objects
    if "equipment_ids" in data:
        data["equipment_ids"] = [str(value) for value in data["equipment_ids"] or []]
    return data


def duplicate_id_issues(collection: str, items: Sequence[Any]) -> list[dict[str, Any]]:
    """Flag line items that repeat an id already used earlier in the same list."""

    seen: set[UUID] = set()
    issues = []
    for index, item in enumerate(items):
        if item.id is None:
            continue
        if item.id in seen:
            issues.append(
                {"path": [collection, index, "id"], "message": "Duplicate line item id"}
            )
        seen.add(item.id)
    return issues


def normalize_service_item(
    item: schemas.ServiceItemDraft,
    index: int,
    snapshot: PricingSnapshot,
) -> NormalizedServiceItem:
    category = snapshot.categories.get(item.service_id)
    if category is None:
        raise BookingValidationError.single(
            f"service_items.{index}.service_id", "Unknown or inactive service"
        )
    unit_price = snapshot.unit_prices.get(item.service_id)
    if unit_price is None:
        raise PricingNotFound(item.service_id, snapshot.user_type)

    mode = PricingMode.for_category(category)
    normalized = NormalizedServiceItem(
        id=item.id,
        service_id=item.service_id,
        pricing_mode=mode,
        quantity=item.quantity,
        duration_months=item.duration_months,
        unit_price=unit_price,
        total_price=ZERO,
        add_ons=_resolve_add_ons(
            snapshot, item.service_id, item.add_on_catalog_ids, "sample"
        ),
        attributes=_attributes(item, _SERVICE_ITEM_PRICING_FIELDS),
    )
    quantity = normalized.billing_quantity
    base_price = unit_price * quantity
    add_ons_total = sum((add_on.amount * quantity for add_on in normalized.add_ons), ZERO)
    normalized.total_price = base_price + add_ons_total
    return normalized


def normalize_workspace_booking(
    workspace: schemas.WorkspaceBookingDraft,
    index: int,
    snapshot: PricingSnapshot,
) -> NormalizedWorkspaceBooking:
    issues = workspace_range_issues(
        workspace.start_date, workspace.end_date, index, enforce_minimum=False
    )
    if issues:
        raise BookingValidationError(issues)

    months = billed_months(workspace.start_date, workspace.end_date)
    rate = snapshot.workspace_monthly_rate
    if rate is None:
        logger.warning(
            "No working space rate for user type %s; pricing workspace at zero",
            snapshot.user_type,
        )
        base_price = ZERO
    else:
        base_price = rate * months

    add_ons = _resolve_add_ons(
        snapshot, snapshot.workspace_service_id, workspace.add_on_catalog_ids, "workspace"
    )
    return NormalizedWorkspaceBooking(
        id=workspace.id,
        start_date=workspace.start_date,
        end_date=workspace.end_date,
        billed_months=months,
        unit_price=rate if rate is not None else ZERO,
        total_price=base_price + sum((add_on.amount for add_on in add_ons), ZERO),
        add_ons=add_ons,
        attributes=_attributes(workspace, _WORKSPACE_PRICING_FIELDS),
    )


def normalize_line_items(
    service_items: Sequence[schemas.ServiceItemDraft],
    workspace_bookings: Sequence[schemas.WorkspaceBookingDraft],
    snapshot: PricingSnapshot,
) -> NormalizedLineItems:
    """Price every line item against the snapshot; any failure aborts the whole set."""

    issues = duplicate_id_issues("service_items", service_items)
    issues += duplicate_id_issues("workspace_bookings", workspace_bookings)
    if issues:
        raise BookingValidationError(issues)

    normalized_items = [
        normalize_service_item(item, index, snapshot)
        for index, item in enumerate(service_items)
    ]
    normalized_workspaces = [
        normalize_workspace_booking(workspace, index, snapshot)
        for index, workspace in enumerate(workspace_bookings)
    ]
    return NormalizedLineItems(
        service_items=normalized_items,
        workspace_bookings=normalized_workspaces,
        total_amount=compute_total(normalized_items, normalized_workspaces),
    )
