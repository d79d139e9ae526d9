"""Persist lifecycle transitions with an optimistic status check."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import models
from .errors import BookingGuardError
from .lifecycle import BookingStatus, Transition

# purpose: compare-and-set booking status writes shared by booking and sample flows
# status: active
# depends_on: labbook.services.lifecycle
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)


def apply_transition(
    db: Session,
    transition: Transition,
    *,
    expected: Iterable[BookingStatus] | None = None,
    strict: bool = True,
    now: datetime | None = None,
) -> bool:
    """Write ``transition`` only if the row still holds an expected status.

    ``expected`` defaults to the transition's own ``from_status``. When no row
    matches, a second writer got there first: ``strict`` callers get a
    :class:`BookingGuardError`, others get ``False``.
    """

    now = now or datetime.now(timezone.utc)
    expected_values = [
        status.value for status in (expected or (transition.from_status,))
    ]
    values: dict = {"status": transition.to_status.value, "updated_at": now}
    if transition.review is not None:
        values.update(
            review_notes=transition.review.notes,
            reviewed_by=transition.review.reviewed_by,
            reviewed_at=transition.review.reviewed_at,
        )
    if transition.stamp_released_at:
        values["released_at"] = sa.func.coalesce(models.BookingRequest.released_at, now)

    result = db.execute(
        sa.update(models.BookingRequest)
        .where(models.BookingRequest.id == transition.booking_id)
        .where(models.BookingRequest.status.in_(expected_values))
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        if strict:
            raise BookingGuardError(
                f"Booking {transition.booking_id} changed status concurrently; "
                f"expected {', '.join(expected_values)}"
            )
        return False

    if transition.changed:
        logger.info(
            "Booking %s moved %s -> %s",
            transition.booking_id,
            transition.from_status.value,
            transition.to_status.value,
        )
    return True
