"""Booking lifecycle state machine.

Every public function here is pure: it takes the booking's current state and
the caller's intent, validates guards, and returns a :class:`Transition`
describing the new status, the review stamp to persist and the notification
effects to dispatch once the write has committed. Persistence and delivery
live in :mod:`labbook.services.bookings` and :mod:`labbook.notify`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Literal, Sequence
from uuid import UUID

from .. import schemas
from .errors import BookingForbidden, BookingGuardError, BookingValidationError
from .line_items import workspace_range_issues

# purpose: own booking status transitions, guards and requested side effects
# status: active
# related_docs: DESIGN.md


class BookingStatus(str, Enum):
    DRAFT = "draft"
    PENDING_USER_VERIFICATION = "pending_user_verification"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


EDITABLE_STATUSES = frozenset({BookingStatus.DRAFT})
DELETABLE_STATUSES = frozenset(
    {BookingStatus.DRAFT, BookingStatus.REJECTED, BookingStatus.CANCELLED}
)
TERMINAL_STATUSES = frozenset(
    {BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.COMPLETED}
)
RECOMPUTABLE_STATUSES = frozenset({BookingStatus.APPROVED, BookingStatus.IN_PROGRESS})

TERMINAL_SAMPLE_STATUSES = frozenset({"analysis_complete", "returned"})
ACTIVE_SAMPLE_STATUSES = frozenset({"received", "in_analysis", "return_requested"})


@dataclass(frozen=True)
class BookingState:
    """The slice of a booking the state machine reasons about."""

    id: UUID
    reference_number: str
    user_id: UUID
    status: BookingStatus

    @classmethod
    def of(cls, booking: Any) -> "BookingState":
        return cls(
            id=booking.id,
            reference_number=booking.reference_number,
            user_id=booking.user_id,
            status=BookingStatus(booking.status),
        )


@dataclass(frozen=True)
class NotificationEffect:
    """A request to notify someone, dispatched after commit."""

    event: str
    audience: Literal["user", "admins"]
    payload: dict[str, Any] = field(default_factory=dict)
    user_id: UUID | None = None


@dataclass(frozen=True)
class ReviewStamp:
    notes: str | None
    reviewed_by: UUID | None
    reviewed_at: datetime | None


CLEARED_REVIEW = ReviewStamp(notes=None, reviewed_by=None, reviewed_at=None)


@dataclass(frozen=True)
class Transition:
    booking_id: UUID
    from_status: BookingStatus
    to_status: BookingStatus
    review: ReviewStamp | None = None
    effects: tuple[NotificationEffect, ...] = ()
    stamp_released_at: bool = False

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def _owner_effect(state: BookingState, event: str, **payload: Any) -> NotificationEffect:
    return NotificationEffect(
        event=event,
        audience="user",
        user_id=state.user_id,
        payload={
            "booking_id": str(state.id),
            "reference_number": state.reference_number,
            **payload,
        },
    )


def _admins_effect(state: BookingState, event: str, **payload: Any) -> NotificationEffect:
    return NotificationEffect(
        event=event,
        audience="admins",
        payload={
            "booking_id": str(state.id),
            "reference_number": state.reference_number,
            **payload,
        },
    )


def _require_note(note: str | None, message: str) -> str:
    if note is None or not note.strip():
        raise BookingValidationError.single("note", message)
    return note.strip()


def ensure_owner(state: BookingState, actor_id: UUID) -> None:
    if state.user_id != actor_id:
        raise BookingForbidden("Forbidden: you do not own this booking")


def ensure_editable(state: BookingState) -> None:
    if state.status not in EDITABLE_STATUSES:
        raise BookingGuardError(
            f"Booking {state.reference_number} is not editable in status {state.status.value}"
        )


def ensure_deletable(state: BookingState) -> None:
    if state.status not in DELETABLE_STATUSES:
        raise BookingGuardError(
            f"Booking {state.reference_number} cannot be deleted in status {state.status.value}"
        )


def submission_issues(submission: schemas.BookingSubmission) -> list[dict[str, Any]]:
    """Cross-field checks that a well-formed submission must also pass."""

    issues: list[dict[str, Any]] = []
    if not submission.service_items and not submission.workspace_bookings:
        issues.append(
            {
                "path": ["service_items"],
                "message": "At least one service item or workspace booking is required for submission",
            }
        )
    if (
        submission.preferred_start_date
        and submission.preferred_end_date
        and submission.preferred_end_date < submission.preferred_start_date
    ):
        issues.append(
            {
                "path": ["preferred_end_date"],
                "message": "End date must be after start date",
            }
        )
    for index, workspace in enumerate(submission.workspace_bookings):
        issues.extend(
            workspace_range_issues(
                workspace.start_date, workspace.end_date, index, enforce_minimum=True
            )
        )
    return issues


def submit(
    state: BookingState,
    actor_id: UUID,
    *,
    account_status: str,
    issues: Sequence[dict[str, Any]] = (),
) -> Transition:
    ensure_owner(state, actor_id)
    if state.status not in EDITABLE_STATUSES:
        raise BookingGuardError(
            f"Booking {state.reference_number} is not submittable in status {state.status.value}"
        )
    if issues:
        raise BookingValidationError(issues)

    target = (
        BookingStatus.PENDING_APPROVAL
        if account_status == "active"
        else BookingStatus.PENDING_USER_VERIFICATION
    )
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=target,
        review=CLEARED_REVIEW,
        effects=(
            _owner_effect(state, "booking_submitted", status=target.value),
            _admins_effect(state, "admin_new_booking", status=target.value),
        ),
    )


def approve(state: BookingState, admin_id: UUID, *, now: datetime | None = None) -> Transition:
    if state.status is not BookingStatus.PENDING_APPROVAL:
        raise BookingGuardError("Can only approve bookings that are pending approval")
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.APPROVED,
        review=ReviewStamp(notes=None, reviewed_by=admin_id, reviewed_at=_now(now)),
        effects=(_owner_effect(state, "booking_approved"),),
    )


def reject(
    state: BookingState,
    admin_id: UUID,
    note: str | None,
    *,
    now: datetime | None = None,
) -> Transition:
    note = _require_note(note, "Note is required when rejecting booking")
    if state.status is not BookingStatus.PENDING_APPROVAL:
        raise BookingGuardError("Can only reject bookings that are pending approval")
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.REJECTED,
        review=ReviewStamp(notes=note, reviewed_by=admin_id, reviewed_at=_now(now)),
        effects=(_owner_effect(state, "booking_rejected", note=note),),
    )


def return_for_edit(
    state: BookingState,
    admin_id: UUID,
    note: str | None,
    *,
    now: datetime | None = None,
) -> Transition:
    if state.status is BookingStatus.REJECTED:
        raise BookingGuardError(
            "Cannot return rejected bookings for edit. Rejected bookings are immutable."
        )
    if state.status is not BookingStatus.PENDING_APPROVAL:
        raise BookingGuardError("Can only return bookings that are pending approval for edit")
    note = _require_note(note, "Note is required when returning booking for edit")
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.DRAFT,
        review=ReviewStamp(notes=note, reviewed_by=admin_id, reviewed_at=_now(now)),
        effects=(_owner_effect(state, "booking_returned_for_edit", note=note),),
    )


def _ensure_cancellable(state: BookingState) -> None:
    if state.status is BookingStatus.CANCELLED:
        raise BookingGuardError("Booking is already cancelled")
    if state.status in TERMINAL_STATUSES:
        raise BookingGuardError(
            f"Cannot cancel a booking in status {state.status.value}"
        )


def cancel_by_user(
    state: BookingState,
    actor_id: UUID,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> Transition:
    ensure_owner(state, actor_id)
    _ensure_cancellable(state)
    reason = (reason or "").strip() or None
    notes = f"User cancellation: {reason}" if reason else "Booking cancelled by user"
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.CANCELLED,
        review=ReviewStamp(notes=notes, reviewed_by=actor_id, reviewed_at=_now(now)),
        effects=(
            _owner_effect(state, "booking_cancelled_by_user", reason=reason),
            _admins_effect(state, "admin_booking_cancelled_by_user", reason=reason),
        ),
    )


def cancel_by_admin(
    state: BookingState,
    admin_id: UUID,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> Transition:
    _ensure_cancellable(state)
    reason = (reason or "").strip() or None
    notes = f"Cancellation reason: {reason}" if reason else "Booking cancelled by administrator"
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.CANCELLED,
        review=ReviewStamp(notes=notes, reviewed_by=admin_id, reviewed_at=_now(now)),
        effects=(_owner_effect(state, "booking_cancelled_by_admin", reason=reason),),
    )


def user_verified(
    states: Iterable[BookingState],
    user_id: UUID,
) -> tuple[list[Transition], tuple[NotificationEffect, ...]]:
    """Promote every booking waiting on the user's verification.

    Effects are aggregated: the owner and the admins hear about it once,
    not once per booking.
    """

    transitions = [
        Transition(
            booking_id=state.id,
            from_status=state.status,
            to_status=BookingStatus.PENDING_APPROVAL,
            review=CLEARED_REVIEW,
        )
        for state in states
        if state.status is BookingStatus.PENDING_USER_VERIFICATION
    ]
    if not transitions:
        return [], ()
    return transitions, verification_effects(user_id, [t.booking_id for t in transitions])


def verification_effects(
    user_id: UUID, promoted_ids: Sequence[UUID]
) -> tuple[NotificationEffect, ...]:
    """Aggregated notices for the bookings a verification actually promoted."""

    if not promoted_ids:
        return ()
    booking_ids = [str(booking_id) for booking_id in promoted_ids]
    return (
        NotificationEffect(
            event="account_verified",
            audience="user",
            user_id=user_id,
            payload={"booking_ids": booking_ids},
        ),
        NotificationEffect(
            event="admin_user_verified",
            audience="admins",
            payload={
                "user_id": str(user_id),
                "booking_count": len(booking_ids),
                "booking_ids": booking_ids,
            },
        ),
    )


def recompute_from_samples(
    state: BookingState,
    sample_statuses: Sequence[str],
) -> Transition:
    """Derive the booking status implied by its samples.

    Only ``approved`` and ``in_progress`` bookings move. All samples terminal
    means ``completed``; any sample in the lab means ``in_progress``; only
    pending samples means ``approved``.
    """

    if state.status not in RECOMPUTABLE_STATUSES or not sample_statuses:
        return Transition(state.id, state.status, state.status)

    if all(status in TERMINAL_SAMPLE_STATUSES for status in sample_statuses):
        return Transition(
            booking_id=state.id,
            from_status=state.status,
            to_status=BookingStatus.COMPLETED,
            effects=(_owner_effect(state, "booking_completed"),),
            stamp_released_at=True,
        )
    if any(status in ACTIVE_SAMPLE_STATUSES for status in sample_statuses):
        target = BookingStatus.IN_PROGRESS
    elif any(status in TERMINAL_SAMPLE_STATUSES for status in sample_statuses):
        # some finished, the rest still pending: work has started
        target = BookingStatus.IN_PROGRESS
    else:
        target = BookingStatus.APPROVED
    return Transition(state.id, state.status, target)


def force_complete(
    state: BookingState,
    admin_id: UUID,
    reason: str | None,
) -> Transition:
    reason = _require_note(reason, "Reason is required to force-complete a booking")
    if state.status in TERMINAL_STATUSES or state.status is BookingStatus.DRAFT:
        raise BookingGuardError(
            f"Cannot force-complete a booking in status {state.status.value}"
        )
    return Transition(
        booking_id=state.id,
        from_status=state.status,
        to_status=BookingStatus.COMPLETED,
        effects=(_owner_effect(state, "booking_completed", forced=True, reason=reason),),
        stamp_released_at=True,
    )
