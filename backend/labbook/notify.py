import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Iterable

from sqlalchemy.orm import Session

from . import models

# purpose: deliver booking lifecycle notifications as in-app rows and email
# status: active
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

# event -> (category, priority, title, message template)
EVENT_TEMPLATES: dict[str, tuple[str, str, str, str]] = {
    "booking_submitted": (
        "bookings",
        "medium",
        "Booking submitted",
        "Your booking {reference_number} has been submitted ({status}).",
    ),
    "admin_new_booking": (
        "bookings",
        "high",
        "New booking request",
        "Booking {reference_number} was submitted and is {status}.",
    ),
    "booking_approved": (
        "bookings",
        "high",
        "Booking approved",
        "Your booking {reference_number} has been approved.",
    ),
    "booking_rejected": (
        "bookings",
        "high",
        "Booking rejected",
        "Your booking {reference_number} was rejected: {note}",
    ),
    "booking_returned_for_edit": (
        "bookings",
        "high",
        "Booking returned for edit",
        "Your booking {reference_number} needs changes: {note}",
    ),
    "booking_cancelled_by_user": (
        "bookings",
        "medium",
        "Booking cancelled",
        "Your booking {reference_number} has been cancelled.",
    ),
    "admin_booking_cancelled_by_user": (
        "bookings",
        "medium",
        "Booking cancelled by customer",
        "Booking {reference_number} was cancelled by the customer.",
    ),
    "booking_cancelled_by_admin": (
        "bookings",
        "high",
        "Booking cancelled by the laboratory",
        "Your booking {reference_number} was cancelled by an administrator.",
    ),
    "booking_completed": (
        "samples",
        "high",
        "Results ready",
        "Analysis for booking {reference_number} is complete.",
    ),
    "account_verified": (
        "account",
        "medium",
        "Account verified",
        "Your account has been verified and your bookings were sent for approval.",
    ),
    "admin_user_verified": (
        "account",
        "low",
        "User verified",
        "A verified user has {booking_count} booking(s) awaiting approval.",
    ),
    "modification_requested": (
        "bookings",
        "high",
        "Booking change proposed",
        "The laboratory proposed changing {service_name} on booking {reference_number} "
        "from {original_amount} to {new_amount}: {reason}",
    ),
    "modification_approved": (
        "bookings",
        "medium",
        "Booking change applied",
        "The change to {service_name} on booking {reference_number} was applied: {new_amount}.",
    ),
    "modification_rejected": (
        "bookings",
        "medium",
        "Booking change withdrawn",
        "The proposed change to {service_name} on booking {reference_number} was withdrawn.",
    ),
    "admin_modification_approved": (
        "bookings",
        "medium",
        "Booking change accepted",
        "The customer accepted the change to {service_name} on booking {reference_number}.",
    ),
    "admin_modification_rejected": (
        "bookings",
        "medium",
        "Booking change declined",
        "The customer declined the change to {service_name} on booking {reference_number}.",
    ),
    "document_verified": (
        "documents",
        "medium",
        "Document verified",
        "Your {document_type} for booking {reference_number} was verified.",
    ),
    "document_rejected": (
        "documents",
        "high",
        "Document rejected",
        "Your {document_type} for booking {reference_number} was rejected: {reason}",
    ),
}


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def _render(event: str, payload: dict) -> tuple[str, str, str, str]:
    category, priority, title, template = EVENT_TEMPLATES.get(
        event, ("bookings", "medium", event.replace("_", " ").capitalize(), "{reference_number}")
    )
    return category, priority, title, template.format_map(_Defaults(payload))


def _recipients(db: Session, effect) -> list[models.User]:
    if effect.audience == "admins":
        return (
            db.query(models.User)
            .filter(models.User.user_type == "lab_administrator")
            .filter(models.User.status == "active")
            .all()
        )
    user = db.get(models.User, effect.user_id) if effect.user_id else None
    return [user] if user else []


def dispatch_effects(db: Session, effects: Iterable) -> int:
    """Deliver notification effects after the booking write has committed.

    Delivery is best-effort: a failing effect is logged and skipped so the
    committed state change is never undone by a notification problem.
    Returns the number of in-app notifications written.
    """

    delivered = 0
    for effect in effects:
        try:
            category, priority, title, message = _render(effect.event, effect.payload)
            recipients = _recipients(db, effect)
            meta = {"event": effect.event, **effect.payload}
            if effect.payload.get("booking_id"):
                meta.setdefault("action_url", f"/bookings/{effect.payload['booking_id']}")
            for user in recipients:
                db.add(
                    models.Notification(
                        user_id=user.id,
                        title=title,
                        message=message,
                        category=category,
                        priority=priority,
                        meta=meta,
                    )
                )
            db.commit()
            for user in recipients:
                if user.email:
                    send_email(user.email, title, message)
            delivered += len(recipients)
        except Exception:
            db.rollback()
            logger.error("Failed to dispatch %s notification", effect.event, exc_info=True)
    return delivered
