"""Post-approval changes to a line item's quantity or duration."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import audit, models, notify, schemas
from ..database import unit_of_work
from . import lifecycle, samples
from .bookings import add_on_rows, get_booking
from .errors import (
    BookingForbidden,
    BookingGuardError,
    BookingNotFound,
    BookingValidationError,
    ModificationNotFound,
)
from .line_items import (
    NormalizedServiceItem,
    PricingMode,
    build_pricing_snapshot,
    compute_total,
    normalize_service_item,
)
from .transitions import apply_transition

# purpose: let the lab propose item changes on running bookings and settle them
# status: active
# depends_on: labbook.services.line_items, labbook.services.samples, labbook.services.transitions
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)


def _describe(mode: PricingMode, quantity: int, duration_months: int) -> str:
    if mode is PricingMode.PER_DURATION:
        return f"{duration_months} month(s)"
    return f"{quantity} sample(s)"


def _reprice(
    db: Session,
    item: models.BookingServiceItem,
    user_type: str,
    quantity: int,
    duration_months: int,
) -> NormalizedServiceItem:
    """Price the item as it would stand after the change, at today's catalog."""

    draft = schemas.ServiceItemDraft(
        id=item.id,
        service_id=item.service_id,
        quantity=quantity,
        duration_months=duration_months,
        add_on_catalog_ids=[
            add_on.add_on_catalog_id
            for add_on in item.add_ons
            if add_on.add_on_catalog_id is not None
        ],
    )
    snapshot = build_pricing_snapshot(db, [draft], [], user_type)
    return normalize_service_item(draft, 0, snapshot)


def _locked_samples(item: models.BookingServiceItem) -> int:
    return sum(1 for sample in item.samples if sample.status != "pending")


def _sample_position(sample: models.SampleTracking) -> int:
    return int(sample.sample_identifier.rsplit("-", 1)[-1])


def _trim_samples(item: models.BookingServiceItem, quantity: int) -> int:
    """Drop pending samples beyond ``quantity``, newest positions first."""

    surplus = len(item.samples) - quantity
    if surplus <= 0:
        return 0
    removable = sorted(
        (sample for sample in item.samples if sample.status == "pending"),
        key=_sample_position,
        reverse=True,
    )
    if len(removable) < surplus:
        raise BookingGuardError(
            f"Cannot reduce to {quantity}: {_locked_samples(item)} sample(s) are already in the laboratory"
        )
    for sample in removable[:surplus]:
        item.samples.remove(sample)
    return surplus


def _effect(
    booking: models.BookingRequest,
    modification: models.SampleModification,
    event: str,
    audience: str,
) -> lifecycle.NotificationEffect:
    item = modification.service_item
    mode = PricingMode(item.pricing_mode)
    return lifecycle.NotificationEffect(
        event=event,
        audience=audience,
        user_id=booking.user_id if audience == "user" else None,
        payload={
            "booking_id": str(booking.id),
            "reference_number": booking.reference_number,
            "modification_id": str(modification.id),
            "service_name": item.service.name if item.service else "",
            "original_amount": _describe(
                mode, modification.original_quantity, modification.original_duration_months
            ),
            "new_amount": _describe(
                mode, modification.new_quantity, modification.new_duration_months
            ),
            "price_difference": str(modification.price_difference),
            "reason": modification.reason,
        },
    )


def propose_modification(
    db: Session,
    booking_id: UUID,
    admin: models.User,
    payload: schemas.ModificationCreate,
) -> models.SampleModification:
    """Record a pending change to one line item and ask the customer to accept it.

    The proposed total is priced now so the customer sees the difference;
    it is priced again when the change is accepted.
    """

    booking = db.get(models.BookingRequest, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    state = lifecycle.BookingState.of(booking)
    if state.status not in lifecycle.RECOMPUTABLE_STATUSES:
        raise BookingGuardError(
            f"Booking {booking.reference_number} cannot be modified in status {state.status.value}"
        )
    item = db.get(models.BookingServiceItem, payload.service_item_id)
    if item is None or item.booking_id != booking.id:
        raise BookingValidationError.single(
            "service_item_id", "Service item does not belong to this booking"
        )

    mode = PricingMode(item.pricing_mode)
    issues = []
    if mode is PricingMode.PER_COUNT and payload.new_duration_months is not None:
        issues.append(
            {
                "path": ["new_duration_months"],
                "message": "Only working space items are billed by duration",
            }
        )
    if mode is PricingMode.PER_DURATION and payload.new_quantity is not None:
        issues.append(
            {"path": ["new_quantity"], "message": "Working space items are billed by duration"}
        )
    new_quantity = payload.new_quantity if payload.new_quantity is not None else item.quantity
    new_duration = (
        payload.new_duration_months
        if payload.new_duration_months is not None
        else item.duration_months
    )
    if (new_quantity, new_duration) == (item.quantity, item.duration_months):
        issues.append({"path": [], "message": "The change leaves the item as it is"})
    locked = _locked_samples(item)
    if mode is PricingMode.PER_COUNT and new_quantity < locked:
        issues.append(
            {
                "path": ["new_quantity"],
                "message": f"{locked} sample(s) are already in the laboratory",
            }
        )
    if issues:
        raise BookingValidationError(issues)
    if any(existing.status == "pending" for existing in item.modifications):
        raise BookingGuardError("This item already has a change awaiting the customer")

    owner = db.get(models.User, booking.user_id)
    priced = _reprice(db, item, owner.user_type, new_quantity, new_duration)
    with unit_of_work(db):
        modification = models.SampleModification(
            service_item_id=item.id,
            original_quantity=item.quantity,
            new_quantity=new_quantity,
            original_duration_months=item.duration_months,
            new_duration_months=new_duration,
            original_total_price=item.total_price,
            new_total_price=priced.total_price,
            reason=payload.reason,
            status="pending",
            created_by=admin.id,
        )
        db.add(modification)
        db.flush()
        audit.log_action(
            db,
            admin.id,
            "modification.propose",
            "booking",
            booking.id,
            {
                "modification_id": str(modification.id),
                "service_item_id": str(item.id),
                "new_quantity": new_quantity,
                "new_duration_months": new_duration,
            },
        )
    db.refresh(modification)
    logger.info(
        "Proposed change %s to booking %s", modification.id, booking.reference_number
    )
    notify.dispatch_effects(
        db, (_effect(booking, modification, "modification_requested", "user"),)
    )
    return modification


def _claim(
    db: Session,
    modification: models.SampleModification,
    status: str,
    actor_id: UUID,
    notes: str | None,
    now: datetime,
    new_total_price=None,
) -> None:
    """Move a pending modification to its decision, once."""

    values = {
        "status": status,
        "decided_by": actor_id,
        "decided_at": now,
        "decision_notes": notes,
    }
    if new_total_price is not None:
        values["new_total_price"] = new_total_price
    result = db.execute(
        sa.update(models.SampleModification)
        .where(models.SampleModification.id == modification.id)
        .where(models.SampleModification.status == "pending")
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise BookingGuardError("This change has already been answered")


def decide_modification(
    db: Session,
    modification_id: UUID,
    actor: models.User,
    approved: bool,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> models.SampleModification:
    """Accept or decline a proposed change as the booking owner or an admin.

    Accepting re-prices the item, rewrites its samples and the booking
    total in one transaction, then lets the samples decide the booking
    status: dropping the last pending samples can complete it.
    """

    modification = db.get(models.SampleModification, modification_id)
    if modification is None:
        raise ModificationNotFound(f"modification {modification_id} not found")
    item = modification.service_item
    booking = item.booking
    if booking.user_id != actor.id and not actor.is_admin:
        raise BookingForbidden("Forbidden: you do not own this booking")
    if modification.status != "pending":
        raise BookingGuardError("This change has already been answered")
    state = lifecycle.BookingState.of(booking)
    now = now or datetime.now(timezone.utc)

    priced = None
    if approved:
        if state.status not in lifecycle.RECOMPUTABLE_STATUSES:
            raise BookingGuardError(
                f"Booking {booking.reference_number} cannot be modified in status {state.status.value}"
            )
        owner = db.get(models.User, booking.user_id)
        priced = _reprice(
            db,
            item,
            owner.user_type,
            modification.new_quantity,
            modification.new_duration_months,
        )

    transition = None
    with unit_of_work(db):
        _claim(
            db,
            modification,
            "approved" if approved else "rejected",
            actor.id,
            notes,
            now,
            new_total_price=priced.total_price if priced else None,
        )
        if priced is not None:
            # the booking must still be running when the new figures land
            apply_transition(
                db,
                lifecycle.Transition(state.id, state.status, state.status),
                expected=lifecycle.RECOMPUTABLE_STATUSES,
                now=now,
            )
            item.quantity = priced.quantity
            item.duration_months = priced.duration_months
            item.unit_price = priced.unit_price
            item.total_price = priced.total_price
            item.add_ons = add_on_rows(priced.add_ons)
            removed = 0
            if priced.pricing_mode is PricingMode.PER_COUNT:
                removed = _trim_samples(item, priced.quantity)
            db.flush()
            added = samples.ensure_samples_for_booking(db, booking)
            booking.total_amount = compute_total(
                booking.service_items, booking.workspace_bookings
            )
            db.flush()
            logger.info(
                "Applied change %s to booking %s: %d sample(s) added, %d removed",
                modification.id,
                booking.reference_number,
                len(added),
                removed,
            )

            transition = lifecycle.recompute_from_samples(
                state, samples.booking_sample_statuses(db, booking.id)
            )
            if not transition.changed or not apply_transition(
                db,
                transition,
                expected=lifecycle.RECOMPUTABLE_STATUSES,
                strict=False,
                now=now,
            ):
                transition = None
        audit.log_action(
            db,
            actor.id,
            "modification.approve" if approved else "modification.reject",
            "booking",
            booking.id,
            {
                "modification_id": str(modification.id),
                "price_difference": str(modification.price_difference) if approved else "0",
                "notes": notes,
            },
        )

    db.refresh(modification)
    db.refresh(booking)
    outcome = "approved" if approved else "rejected"
    # the side that did not answer hears about it
    if actor.id == booking.user_id:
        effects = [_effect(booking, modification, f"admin_modification_{outcome}", "admins")]
    else:
        effects = [_effect(booking, modification, f"modification_{outcome}", "user")]
    if transition is not None:
        effects.extend(transition.effects)
    notify.dispatch_effects(db, effects)
    return modification


def list_modifications(
    db: Session, booking_id: UUID, actor: models.User
) -> list[models.SampleModification]:
    booking = get_booking(db, booking_id, actor)
    return (
        db.query(models.SampleModification)
        .join(models.BookingServiceItem)
        .filter(models.BookingServiceItem.booking_id == booking.id)
        .order_by(models.SampleModification.created_at.desc())
        .all()
    )
