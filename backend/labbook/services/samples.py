"""Sample tracking and booking completion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, notify
from ..database import unit_of_work
from . import lifecycle
from .errors import BookingGuardError, SampleNotFound
from .line_items import PricingMode
from .transitions import apply_transition

# purpose: materialise samples on approval and complete bookings when all samples finish
# status: active
# depends_on: labbook.services.lifecycle, labbook.services.transitions
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)

STATUS_TIMESTAMPS = {
    "received": "received_at",
    "in_analysis": "analysis_start_at",
    "analysis_complete": "analysis_complete_at",
    "return_requested": "return_requested_at",
    "returned": "returned_at",
}

TRACKABLE_BOOKING_STATUSES = frozenset(
    {
        lifecycle.BookingStatus.APPROVED,
        lifecycle.BookingStatus.IN_PROGRESS,
        lifecycle.BookingStatus.COMPLETED,
    }
)


@dataclass
class SampleUpdateResult:
    sample: models.SampleTracking
    booking: models.BookingRequest
    booking_completed: bool


def sample_identifier(item: models.BookingServiceItem, index: int) -> str:
    if item.sample_name:
        return f"{item.sample_name}-{index + 1}"
    return f"SAMPLE-{str(item.id)[:8].upper()}-{index + 1}"


def ensure_samples_for_booking(
    db: Session, booking: models.BookingRequest
) -> list[models.SampleTracking]:
    """Create one tracking record per requested sample; existing records are kept."""

    created: list[models.SampleTracking] = []
    for item in booking.service_items:
        if item.pricing_mode != PricingMode.PER_COUNT.value:
            continue
        if item.service is not None and not item.service.requires_sample:
            continue
        used = {sample.sample_identifier for sample in item.samples}
        position = 0
        for _ in range(len(item.samples), item.quantity):
            # positions freed by a quantity decrease are filled first
            while sample_identifier(item, position) in used:
                position += 1
            identifier = sample_identifier(item, position)
            used.add(identifier)
            sample = models.SampleTracking(
                sample_identifier=identifier,
                status="pending",
            )
            item.samples.append(sample)
            created.append(sample)
    if created:
        db.flush()
        logger.info(
            "Created %d sample records for booking %s", len(created), booking.reference_number
        )
    return created


def booking_sample_statuses(db: Session, booking_id: UUID) -> list[str]:
    rows = (
        db.query(models.SampleTracking.status)
        .join(models.BookingServiceItem)
        .filter(models.BookingServiceItem.booking_id == booking_id)
        .all()
    )
    return [row[0] for row in rows]


def count_completed_samples(db: Session, booking_id: UUID) -> int:
    return sum(
        1
        for status in booking_sample_statuses(db, booking_id)
        if status in lifecycle.TERMINAL_SAMPLE_STATUSES
    )


def update_sample_status(
    db: Session,
    sample_id: UUID,
    status: str,
    updated_by: UUID,
    *,
    now: datetime | None = None,
) -> SampleUpdateResult:
    """Record a sample status and roll the owning booking forward.

    The completion effect fires only for the write that actually moved the
    booking to ``completed``; re-saving a status or a concurrent writer that
    lost the compare-and-set sees no change.
    """

    sample = db.get(models.SampleTracking, sample_id)
    if sample is None:
        raise SampleNotFound(f"sample {sample_id} not found")
    booking = sample.service_item.booking
    state = lifecycle.BookingState.of(booking)
    if state.status not in TRACKABLE_BOOKING_STATUSES:
        raise BookingGuardError(
            f"Samples of booking {booking.reference_number} cannot be updated in status {state.status.value}"
        )

    now = now or datetime.now(timezone.utc)
    completed = False
    transition = None
    with unit_of_work(db):
        if sample.status != status:
            sample.status = status
            stamp = STATUS_TIMESTAMPS.get(status)
            if stamp:
                setattr(sample, stamp, now)
        sample.updated_by = updated_by
        sample.updated_at = now
        db.flush()

        transition = lifecycle.recompute_from_samples(
            state, booking_sample_statuses(db, booking.id)
        )
        if transition.changed:
            moved = apply_transition(
                db,
                transition,
                expected=lifecycle.RECOMPUTABLE_STATUSES,
                strict=False,
                now=now,
            )
            completed = moved and transition.to_status is lifecycle.BookingStatus.COMPLETED
            if not moved:
                transition = None

    db.refresh(booking)
    if transition is not None and transition.effects:
        notify.dispatch_effects(db, transition.effects)
    return SampleUpdateResult(sample=sample, booking=booking, booking_completed=completed)


def list_samples(
    db: Session,
    *,
    status: str | None = None,
    booking_id: UUID | None = None,
) -> list[dict]:
    query = (
        db.query(
            models.SampleTracking,
            models.BookingRequest,
            models.Service,
            models.User,
        )
        .join(models.BookingServiceItem, models.SampleTracking.service_item_id == models.BookingServiceItem.id)
        .join(models.BookingRequest, models.BookingServiceItem.booking_id == models.BookingRequest.id)
        .join(models.Service, models.BookingServiceItem.service_id == models.Service.id)
        .join(models.User, models.BookingRequest.user_id == models.User.id)
    )
    if status:
        query = query.filter(models.SampleTracking.status == status)
    if booking_id:
        query = query.filter(models.BookingRequest.id == booking_id)
    rows = query.order_by(models.SampleTracking.updated_at.desc()).all()
    return [
        {
            "id": sample.id,
            "sample_identifier": sample.sample_identifier,
            "status": sample.status,
            "booking_id": booking.id,
            "reference_number": booking.reference_number,
            "service_name": service.name,
            "customer_name": user.full_name or user.email,
            "updated_at": sample.updated_at,
        }
        for sample, booking, service, user in rows
    ]
