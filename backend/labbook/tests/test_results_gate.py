from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth_headers, make_service
from labbook import models, schemas
from labbook.services import bookings, results, samples


@pytest.mark.parametrize(
    "statuses,has_workspace,completed,expected",
    [
        ({"service_form_signed": "verified", "payment_receipt": "verified"}, False, 1, True),
        ({"service_form_signed": "verified", "payment_receipt": "verified"}, False, 0, False),
        ({"service_form_signed": "verified", "payment_receipt": "verified"}, True, 2, False),
        (
            {
                "service_form_signed": "verified",
                "workspace_form_signed": "verified",
                "payment_receipt": "verified",
            },
            True,
            1,
            True,
        ),
        ({"service_form_signed": "verified", "payment_receipt": "pending_verification"}, False, 3, False),
        ({"payment_receipt": "verified"}, False, 1, False),
    ],
)
def test_can_release(statuses, has_workspace, completed, expected):
    assert results.can_release(statuses, has_workspace, completed) is expected


def test_latest_document_of_each_type_decides():
    now = datetime.now(timezone.utc)
    older = models.BookingDocument(
        type="payment_receipt", verification_status="verified", created_at=now - timedelta(days=2)
    )
    newer = models.BookingDocument(
        type="payment_receipt", verification_status="rejected", created_at=now
    )

    assert results.latest_document_statuses([newer, older]) == {"payment_receipt": "rejected"}


def _completed_booking(db, customer, admin):
    service = make_service(db, prices={customer.user_type: "30.00"})
    booking = bookings.create_draft(
        db,
        customer,
        schemas.BookingDraftUpdate(
            project_description="XRD",
            service_items=[{"service_id": service.id, "quantity": 1, "sample_name": "XRD"}],
        ),
    )
    bookings.submit(db, booking.id, customer)
    booking = bookings.admin_approve(db, booking.id, admin)
    sample_id = booking.service_items[0].samples[0].id
    samples.update_sample_status(db, sample_id, "analysis_complete", admin.id)
    return booking


def _upload(client, user, booking_id, doc_type):
    resp = client.post(
        f"/api/bookings/{booking_id}/documents",
        json={"type": doc_type, "file_name": f"{doc_type}.pdf"},
        headers=auth_headers(user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_release_gate_end_to_end(client, db, customer, admin):
    booking = _completed_booking(db, customer, admin)
    owner, staff = auth_headers(customer), auth_headers(admin)
    result_doc = _upload(client, admin, booking.id, "sample_result")
    form = _upload(client, customer, booking.id, "service_form_signed")
    receipt = _upload(client, customer, booking.id, "payment_receipt")

    gate = client.get(f"/api/bookings/{booking.id}/eligibility", headers=owner).json()
    assert gate["is_eligible"] is False
    assert gate["completed_sample_count"] == 1
    assert "signed service form" in gate["message"]
    assert "payment receipt" in gate["message"]
    listed = client.get(f"/api/bookings/{booking.id}/documents", headers=owner).json()
    assert result_doc["id"] not in {d["id"] for d in listed}

    client.post(f"/api/booking-docs/{form['id']}/verify", json={}, headers=staff)
    client.post(f"/api/booking-docs/{receipt['id']}/verify", json={}, headers=staff)

    gate = client.get(f"/api/bookings/{booking.id}/eligibility", headers=owner).json()
    assert gate["is_eligible"] is True
    assert gate["message"] == "Results are available for download"
    listed = client.get(f"/api/bookings/{booking.id}/documents", headers=owner).json()
    assert result_doc["id"] in {d["id"] for d in listed}

    # a newer receipt awaiting verification closes the gate again
    _upload(client, customer, booking.id, "payment_receipt")
    gate = client.get(f"/api/bookings/{booking.id}/eligibility", headers=owner).json()
    assert gate["is_eligible"] is False
    assert gate["payment_verified"] is False


def test_document_rejection_requires_reason(client, db, customer, admin):
    booking = _completed_booking(db, customer, admin)
    receipt = _upload(client, customer, booking.id, "payment_receipt")
    staff = auth_headers(admin)

    missing = client.post(f"/api/booking-docs/{receipt['id']}/reject", json={"reason": " "}, headers=staff)
    rejected = client.post(
        f"/api/booking-docs/{receipt['id']}/reject", json={"reason": "illegible scan"}, headers=staff
    )
    again = client.post(f"/api/booking-docs/{receipt['id']}/verify", json={}, headers=staff)

    assert missing.status_code == 422
    assert rejected.status_code == 200
    assert rejected.json()["rejection_reason"] == "illegible scan"
    assert again.status_code == 409
    state = client.get(f"/api/bookings/{booking.id}/documents/state", headers=auth_headers(customer)).json()
    assert state["payment_receipt"] == "rejected"
    assert state["service_form_signed"] == "not_uploaded"


def test_customers_cannot_upload_laboratory_documents(client, db, customer, admin):
    booking = _completed_booking(db, customer, admin)

    resp = client.post(
        f"/api/bookings/{booking.id}/documents",
        json={"type": "sample_result", "file_name": "fake.pdf"},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 403


def test_documents_cannot_be_attached_to_drafts(client, db, customer):
    draft = bookings.create_draft(db, customer)

    resp = client.post(
        f"/api/bookings/{draft.id}/documents",
        json={"type": "payment_receipt", "file_name": "r.pdf"},
        headers=auth_headers(customer),
    )

    assert resp.status_code == 409
