"""Booking operations: drafts, submission, review, cancellation and cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from .. import audit, models, notify, schemas
from ..database import unit_of_work
from ..reference import new_reference_number
from . import lifecycle, samples
from .errors import BookingForbidden, BookingNotFound, BookingValidationError
from .line_items import (
    PricingMode,
    build_pricing_snapshot,
    compute_total,
    normalize_line_items,
)
from .transitions import apply_transition

# purpose: orchestrate persisted booking flows around the pure lifecycle machine
# status: active
# depends_on: labbook.services.lifecycle, labbook.services.line_items, labbook.notify
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)

_HEADER_FIELDS = (
    "project_description",
    "preferred_start_date",
    "preferred_end_date",
    "notes",
    "payer_type",
    "billing_name",
    "billing_email",
    "billing_phone",
    "billing_address",
)


def _load(db: Session, booking_id: UUID) -> models.BookingRequest:
    booking = db.get(models.BookingRequest, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    return booking


def _dispatch(db: Session, transition: lifecycle.Transition) -> None:
    if transition.effects:
        notify.dispatch_effects(db, transition.effects)


def _finish(
    db: Session, booking: models.BookingRequest, transition: lifecycle.Transition
) -> models.BookingRequest:
    db.refresh(booking)
    _dispatch(db, transition)
    return booking


def get_booking(
    db: Session, booking_id: UUID, actor: models.User
) -> models.BookingRequest:
    """Return the booking if the caller owns it or administers the lab."""

    booking = _load(db, booking_id)
    if booking.user_id != actor.id and not actor.is_admin:
        raise BookingForbidden("Forbidden: you do not own this booking")
    return booking


def list_bookings(
    db: Session,
    actor: models.User,
    *,
    status: str | None = None,
    all_users: bool = False,
) -> list[models.BookingRequest]:
    query = db.query(models.BookingRequest)
    if not (all_users and actor.is_admin):
        query = query.filter(models.BookingRequest.user_id == actor.id)
    if status:
        query = query.filter(models.BookingRequest.status == status)
    return query.order_by(models.BookingRequest.created_at.desc()).all()


def create_draft(
    db: Session,
    actor: models.User,
    payload: schemas.BookingDraftUpdate | None = None,
) -> models.BookingRequest:
    """Create an empty draft, optionally seeded with the first draft save."""

    with unit_of_work(db):
        booking = models.BookingRequest(
            reference_number=new_reference_number(),
            user_id=actor.id,
            status=lifecycle.BookingStatus.DRAFT.value,
            total_amount=0,
        )
        db.add(booking)
        db.flush()
        if payload is not None:
            _apply_draft(db, booking, actor, payload)
    logger.info("Created draft %s for user %s", booking.reference_number, actor.id)
    db.refresh(booking)
    return booking


def add_on_rows(normalized_add_ons) -> list[models.ServiceAddOn]:
    return [
        models.ServiceAddOn(
            add_on_catalog_id=add_on.add_on_catalog_id,
            name=add_on.name,
            description=add_on.description,
            amount=add_on.amount,
        )
        for add_on in normalized_add_ons
    ]


def _apply_draft(
    db: Session,
    booking: models.BookingRequest,
    actor: models.User,
    payload: schemas.BookingDraftUpdate,
) -> None:
    """Normalize first, then write; a pricing failure leaves the row untouched."""

    service_items = payload.service_items
    workspace_bookings = payload.workspace_bookings
    normalized = None
    if service_items is not None or workspace_bookings is not None:
        snapshot = build_pricing_snapshot(
            db, service_items or [], workspace_bookings or [], actor.user_type
        )
        normalized = normalize_line_items(
            service_items or [], workspace_bookings or [], snapshot
        )

    for name, value in payload.model_dump(
        include=set(_HEADER_FIELDS), exclude_unset=True
    ).items():
        setattr(booking, name, value)

    if normalized is None:
        return

    if service_items is not None:
        existing = {item.id: item for item in booking.service_items}
        rows = []
        for item in normalized.service_items:
            row = existing.get(item.id) if item.id else None
            if row is None:
                row = models.BookingServiceItem(booking_id=booking.id)
            row.service_id = item.service_id
            row.quantity = item.quantity
            row.duration_months = item.duration_months
            row.pricing_mode = item.pricing_mode.value
            row.unit_price = item.unit_price
            row.total_price = item.total_price
            for name, value in item.attributes.items():
                setattr(row, name, value)
            row.add_ons = add_on_rows(item.add_ons)
            rows.append(row)
        booking.service_items = rows

    if workspace_bookings is not None:
        existing = {ws.id: ws for ws in booking.workspace_bookings}
        rows = []
        for workspace in normalized.workspace_bookings:
            row = existing.get(workspace.id) if workspace.id else None
            if row is None:
                row = models.WorkspaceBooking(booking_id=booking.id)
            row.start_date = workspace.start_date
            row.end_date = workspace.end_date
            row.billed_months = workspace.billed_months
            row.unit_price = workspace.unit_price
            row.total_price = workspace.total_price
            for name, value in workspace.attributes.items():
                setattr(row, name, value)
            row.add_ons = add_on_rows(workspace.add_ons)
            rows.append(row)
        booking.workspace_bookings = rows

    booking.total_amount = compute_total(booking.service_items, booking.workspace_bookings)
    db.flush()


def save_draft(
    db: Session,
    booking_id: UUID,
    actor: models.User,
    payload: schemas.BookingDraftUpdate,
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    state = lifecycle.BookingState.of(booking)
    lifecycle.ensure_owner(state, actor.id)
    lifecycle.ensure_editable(state)
    with unit_of_work(db):
        # re-assert draft status at write time so a concurrent submit wins cleanly
        apply_transition(db, lifecycle.Transition(state.id, state.status, state.status))
        _apply_draft(db, booking, actor, payload)
    db.refresh(booking)
    return booking


def default_payer_type(user: models.User) -> str:
    if user.user_type == "external_member":
        return "external"
    if user.academic_type == "staff":
        return "staff"
    return "student-self"


def _submission_data(booking: models.BookingRequest, user: models.User) -> dict[str, Any]:
    return {
        "project_description": booking.project_description,
        "preferred_start_date": booking.preferred_start_date,
        "preferred_end_date": booking.preferred_end_date,
        "payer_type": booking.payer_type or default_payer_type(user),
        "billing_name": booking.billing_name or user.full_name or None,
        "billing_email": booking.billing_email or user.email,
        "billing_phone": booking.billing_phone or user.phone_number,
        "service_items": [
            {
                "service_id": item.service_id,
                "quantity": item.quantity,
                "duration_months": item.duration_months,
                "sample_name": item.sample_name,
                "sample_type": item.sample_type,
            }
            for item in booking.service_items
        ],
        "workspace_bookings": [
            {"start_date": ws.start_date, "end_date": ws.end_date}
            for ws in booking.workspace_bookings
        ],
    }


def _validate_submission(
    booking: models.BookingRequest, user: models.User
) -> tuple[schemas.BookingSubmission | None, list[dict[str, Any]]]:
    try:
        submission = schemas.BookingSubmission.model_validate(
            _submission_data(booking, user)
        )
    except ValidationError as exc:
        return None, [
            {"path": list(error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
    issues = lifecycle.submission_issues(submission)
    for index, item in enumerate(booking.service_items):
        if item.pricing_mode == PricingMode.PER_DURATION.value:
            if item.duration_months < 1:
                issues.append(
                    {
                        "path": ["service_items", index, "duration_months"],
                        "message": "Duration in months is required for working space items",
                    }
                )
        elif item.quantity < 1:
            issues.append(
                {
                    "path": ["service_items", index, "quantity"],
                    "message": "Quantity must be at least 1",
                }
            )
    return submission, issues


def submit(
    db: Session, booking_id: UUID, actor: models.User
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    state = lifecycle.BookingState.of(booking)
    submission, issues = _validate_submission(booking, actor)
    transition = lifecycle.submit(
        state, actor.id, account_status=actor.status, issues=issues
    )
    with unit_of_work(db):
        booking.payer_type = submission.payer_type
        booking.billing_name = submission.billing_name
        booking.billing_email = submission.billing_email
        booking.billing_phone = submission.billing_phone
        apply_transition(db, transition)
    return _finish(db, booking, transition)


def admin_approve(
    db: Session, booking_id: UUID, admin: models.User
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    transition = lifecycle.approve(lifecycle.BookingState.of(booking), admin.id)
    with unit_of_work(db):
        apply_transition(db, transition)
        samples.ensure_samples_for_booking(db, booking)
        audit.log_action(db, admin.id, "booking.approve", "booking", booking.id)
    return _finish(db, booking, transition)


def admin_reject(
    db: Session, booking_id: UUID, admin: models.User, note: str | None
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    transition = lifecycle.reject(lifecycle.BookingState.of(booking), admin.id, note)
    with unit_of_work(db):
        apply_transition(db, transition)
        audit.log_action(
            db, admin.id, "booking.reject", "booking", booking.id, {"note": note}
        )
    return _finish(db, booking, transition)


def admin_return_for_edit(
    db: Session, booking_id: UUID, admin: models.User, note: str | None
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    transition = lifecycle.return_for_edit(
        lifecycle.BookingState.of(booking), admin.id, note
    )
    with unit_of_work(db):
        apply_transition(db, transition)
        audit.log_action(
            db, admin.id, "booking.return_for_edit", "booking", booking.id, {"note": note}
        )
    return _finish(db, booking, transition)


def cancel_by_user(
    db: Session, booking_id: UUID, actor: models.User, reason: str | None = None
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    transition = lifecycle.cancel_by_user(
        lifecycle.BookingState.of(booking), actor.id, reason
    )
    with unit_of_work(db):
        apply_transition(db, transition)
    return _finish(db, booking, transition)


def cancel_by_admin(
    db: Session, booking_id: UUID, admin: models.User, reason: str | None = None
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    transition = lifecycle.cancel_by_admin(
        lifecycle.BookingState.of(booking), admin.id, reason
    )
    with unit_of_work(db):
        apply_transition(db, transition)
        audit.log_action(
            db, admin.id, "booking.cancel", "booking", booking.id, {"reason": reason}
        )
    return _finish(db, booking, transition)


def force_complete(
    db: Session, booking_id: UUID, admin: models.User, reason: str | None
) -> models.BookingRequest:
    booking = _load(db, booking_id)
    state = lifecycle.BookingState.of(booking)
    transition = lifecycle.force_complete(state, admin.id, reason)
    with unit_of_work(db):
        apply_transition(db, transition)
        audit.log_action(
            db,
            admin.id,
            "booking.force_complete",
            "booking",
            booking.id,
            {"reason": reason, "from_status": state.status.value},
        )
    return _finish(db, booking, transition)


def on_user_verified(
    db: Session, user_id: UUID, admin: models.User
) -> list[UUID]:
    """Activate a user and promote every booking that was waiting on them."""

    user = db.get(models.User, user_id)
    if user is None:
        raise BookingValidationError.single("user_id", "Unknown user")
    waiting = (
        db.query(models.BookingRequest)
        .filter(models.BookingRequest.user_id == user_id)
        .filter(
            models.BookingRequest.status
            == lifecycle.BookingStatus.PENDING_USER_VERIFICATION.value
        )
        .all()
    )
    transitions, _ = lifecycle.user_verified(
        [lifecycle.BookingState.of(booking) for booking in waiting], user_id
    )
    promoted: list[UUID] = []
    with unit_of_work(db):
        user.status = "active"
        for transition in transitions:
            if apply_transition(db, transition, strict=False):
                promoted.append(transition.booking_id)
        audit.log_action(
            db,
            admin.id,
            "user.verify",
            "user",
            user_id,
            {"promoted": [str(booking_id) for booking_id in promoted]},
        )
    # bookings that lost the race to another writer are not announced
    effects = lifecycle.verification_effects(user_id, promoted)
    if effects:
        notify.dispatch_effects(db, effects)
    logger.info("Verified user %s, promoted %d bookings", user_id, len(promoted))
    return promoted


def delete_draft(db: Session, booking_id: UUID, actor: models.User) -> None:
    booking = _load(db, booking_id)
    state = lifecycle.BookingState.of(booking)
    if not actor.is_admin:
        lifecycle.ensure_owner(state, actor.id)
    lifecycle.ensure_deletable(state)
    with unit_of_work(db):
        apply_transition(db, lifecycle.Transition(state.id, state.status, state.status))
        db.delete(booking)
    logger.info("Deleted booking %s", state.reference_number)


def purge_expired_drafts(
    db: Session,
    retention_days: int = 30,
    *,
    now: datetime | None = None,
) -> int:
    """Delete drafts untouched for longer than ``retention_days``."""

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)
    expired = (
        db.query(models.BookingRequest)
        .filter(models.BookingRequest.status == lifecycle.BookingStatus.DRAFT.value)
        .filter(models.BookingRequest.updated_at < cutoff)
        .all()
    )
    with unit_of_work(db):
        for booking in expired:
            db.delete(booking)
    if expired:
        logger.info("Purged %d drafts older than %d days", len(expired), retention_days)
    return len(expired)
