"""Result release gate and booking document verification."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, notify, schemas
from ..database import unit_of_work
from .errors import (
    BookingForbidden,
    BookingGuardError,
    BookingNotFound,
    BookingValidationError,
    DocumentNotFound,
)
from .lifecycle import NotificationEffect
from .samples import count_completed_samples

# purpose: decide whether sample results may be released and verify gating documents
# status: active
# depends_on: labbook.models.BookingDocument, labbook.services.samples
# related_docs: DESIGN.md

logger = logging.getLogger(__name__)

SERVICE_FORM = "service_form_signed"
WORKSPACE_FORM = "workspace_form_signed"
PAYMENT_RECEIPT = "payment_receipt"
RESULT_DOCUMENT = "sample_result"

# documents only the laboratory issues; they need no verification
ADMIN_DOCUMENT_TYPES = frozenset(
    {"service_form_unsigned", "workspace_form_unsigned", "invoice", RESULT_DOCUMENT}
)

DOCUMENT_LABELS = {
    SERVICE_FORM: "signed service form",
    WORKSPACE_FORM: "signed workspace form",
    PAYMENT_RECEIPT: "payment receipt",
}

NOT_UPLOADED = "not_uploaded"
VERIFIED = "verified"
PENDING = "pending_verification"
REJECTED = "rejected"


def latest_document_statuses(
    documents: Iterable[models.BookingDocument],
) -> dict[str, str]:
    """Map each document type to the verification status of its newest upload."""

    latest: dict[str, models.BookingDocument] = {}
    for document in documents:
        current = latest.get(document.type)
        if current is None or document.created_at >= current.created_at:
            latest[document.type] = document
    return {doc_type: doc.verification_status for doc_type, doc in latest.items()}


def required_documents(has_workspace: bool) -> list[str]:
    required = [SERVICE_FORM, PAYMENT_RECEIPT]
    if has_workspace:
        required.insert(1, WORKSPACE_FORM)
    return required


def can_release(
    latest_statuses: Mapping[str, str],
    has_workspace: bool,
    completed_sample_count: int,
) -> bool:
    """Results are released only when every required document is verified and work is done."""

    if completed_sample_count < 1:
        return False
    return all(
        latest_statuses.get(doc_type) == VERIFIED
        for doc_type in required_documents(has_workspace)
    )


def booking_for_actor(db: Session, booking_id: UUID, actor: models.User) -> models.BookingRequest:
    booking = db.get(models.BookingRequest, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    if booking.user_id != actor.id and not actor.is_admin:
        raise BookingForbidden("Forbidden: you do not own this booking")
    return booking


def document_verification_state(
    booking: models.BookingRequest,
) -> schemas.DocumentVerificationStateOut:
    statuses = latest_document_statuses(booking.documents)
    return schemas.DocumentVerificationStateOut(
        service_form_signed=statuses.get(SERVICE_FORM, NOT_UPLOADED),
        workspace_form_signed=statuses.get(WORKSPACE_FORM, NOT_UPLOADED),
        payment_receipt=statuses.get(PAYMENT_RECEIPT, NOT_UPLOADED),
        requires_workspace_form=bool(booking.workspace_bookings),
    )


def _eligibility_message(
    statuses: Mapping[str, str], has_workspace: bool, completed_sample_count: int
) -> str:
    pending = [
        DOCUMENT_LABELS[doc_type]
        for doc_type in required_documents(has_workspace)
        if statuses.get(doc_type) != VERIFIED
    ]
    parts = []
    if pending:
        parts.append("Awaiting verification of: " + ", ".join(pending))
    if completed_sample_count < 1:
        parts.append("No completed samples yet")
    if not parts:
        return "Results are available for download"
    return ". ".join(parts)


def check_download_eligibility(
    db: Session, booking_id: UUID, actor: models.User
) -> schemas.DownloadEligibilityOut:
    booking = booking_for_actor(db, booking_id, actor)
    statuses = latest_document_statuses(booking.documents)
    has_workspace = bool(booking.workspace_bookings)
    completed = count_completed_samples(db, booking.id)
    return schemas.DownloadEligibilityOut(
        is_eligible=can_release(statuses, has_workspace, completed),
        service_form_verified=statuses.get(SERVICE_FORM) == VERIFIED,
        workspace_form_verified=statuses.get(WORKSPACE_FORM) == VERIFIED,
        payment_verified=statuses.get(PAYMENT_RECEIPT) == VERIFIED,
        requires_workspace_form=has_workspace,
        completed_sample_count=completed,
        message=_eligibility_message(statuses, has_workspace, completed),
    )


def upload_document(
    db: Session,
    booking_id: UUID,
    actor: models.User,
    payload: schemas.DocumentCreate,
) -> models.BookingDocument:
    """Register an uploaded file against a booking.

    Laboratory-issued documents are uploaded by administrators and start
    verified; customer uploads wait for verification.
    """

    booking = booking_for_actor(db, booking_id, actor)
    if payload.type in ADMIN_DOCUMENT_TYPES and not actor.is_admin:
        raise BookingForbidden(f"Only administrators can upload {payload.type} documents")
    if booking.status == "draft":
        raise BookingGuardError("Documents cannot be attached to a draft booking")
    now = datetime.now(timezone.utc)
    issued = payload.type in ADMIN_DOCUMENT_TYPES
    with unit_of_work(db):
        document = models.BookingDocument(
            booking_id=booking.id,
            type=payload.type,
            file_name=payload.file_name,
            storage_path=payload.storage_path,
            note=payload.note,
            created_by=actor.id,
            verification_status=VERIFIED if issued else PENDING,
            verified_by=actor.id if issued else None,
            verified_at=now if issued else None,
            created_at=now,
        )
        db.add(document)
    db.refresh(document)
    return document


def _pending_document(db: Session, document_id: UUID) -> models.BookingDocument:
    document = db.get(models.BookingDocument, document_id)
    if document is None:
        raise DocumentNotFound(f"document {document_id} not found")
    if document.verification_status != PENDING:
        raise BookingGuardError(
            f"Document is already {document.verification_status}"
        )
    return document


def _document_effect(document: models.BookingDocument, event: str, **payload) -> NotificationEffect:
    booking = document.booking
    return NotificationEffect(
        event=event,
        audience="user",
        user_id=booking.user_id,
        payload={
            "booking_id": str(booking.id),
            "reference_number": booking.reference_number,
            "document_type": DOCUMENT_LABELS.get(document.type, document.type),
            **payload,
        },
    )


def verify_document(
    db: Session,
    document_id: UUID,
    admin: models.User,
    note: str | None = None,
) -> models.BookingDocument:
    document = _pending_document(db, document_id)
    with unit_of_work(db):
        document.verification_status = VERIFIED
        document.verified_by = admin.id
        document.verified_at = datetime.now(timezone.utc)
        document.rejection_reason = None
        if note:
            document.note = note
        audit.log_action(db, admin.id, "document.verify", "booking_document", document.id)
    db.refresh(document)
    notify.dispatch_effects(db, [_document_effect(document, "document_verified")])
    return document


def reject_document(
    db: Session,
    document_id: UUID,
    admin: models.User,
    reason: str | None,
) -> models.BookingDocument:
    if reason is None or not reason.strip():
        raise BookingValidationError.single("reason", "Reason is required when rejecting a document")
    document = _pending_document(db, document_id)
    reason = reason.strip()
    with unit_of_work(db):
        document.verification_status = REJECTED
        document.verified_by = admin.id
        document.verified_at = datetime.now(timezone.utc)
        document.rejection_reason = reason
        audit.log_action(
            db, admin.id, "document.reject", "booking_document", document.id, {"reason": reason}
        )
    db.refresh(document)
    notify.dispatch_effects(
        db, [_document_effect(document, "document_rejected", reason=reason)]
    )
    return document


def list_result_documents(
    db: Session, booking_id: UUID, actor: models.User
) -> list[models.BookingDocument]:
    """List booking documents; customers see result files only once released."""

    booking = booking_for_actor(db, booking_id, actor)
    documents = list(booking.documents)
    if actor.is_admin:
        return documents
    statuses = latest_document_statuses(documents)
    released = can_release(
        statuses, bool(booking.workspace_bookings), count_completed_samples(db, booking.id)
    )
    if released:
        return documents
    return [doc for doc in documents if doc.type != RESULT_DOCUMENT]
