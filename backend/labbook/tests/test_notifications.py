import uuid

from conftest import auth_headers, make_service
from labbook import models, notify, schemas
from labbook.services import bookings
from labbook.services.lifecycle import NotificationEffect


def _pending_booking(db, customer):
    service = make_service(db, prices={customer.user_type: "10.00"})
    booking = bookings.create_draft(
        db,
        customer,
        schemas.BookingDraftUpdate(
            project_description="GC-MS screening",
            service_items=[{"service_id": service.id, "quantity": 1}],
        ),
    )
    return bookings.submit(db, booking.id, customer)


def test_dispatch_writes_rows_and_emails(db, customer):
    effect = NotificationEffect(
        event="booking_rejected",
        audience="user",
        user_id=customer.id,
        payload={"booking_id": str(uuid.uuid4()), "reference_number": "BK-X-0001", "note": "no MSDS"},
    )

    delivered = notify.dispatch_effects(db, [effect])

    assert delivered == 1
    row = db.query(models.Notification).filter_by(user_id=customer.id).one()
    assert row.message == "Your booking BK-X-0001 was rejected: no MSDS"
    assert row.action_url.startswith("/bookings/")
    assert notify.EMAIL_OUTBOX == [(customer.email, "Booking rejected", row.message)]


def test_delivery_failure_never_undoes_the_transition(db, customer, admin, monkeypatch, caplog):
    booking = _pending_booking(db, customer)

    def broken_send(*args, **kwargs):
        raise ConnectionError("smtp down")

    monkeypatch.setattr(notify, "send_email", broken_send)
    with caplog.at_level("ERROR", logger=notify.__name__):
        approved = bookings.admin_approve(db, booking.id, admin)

    assert approved.status == "approved"
    db.expire_all()
    assert db.get(models.BookingRequest, booking.id).status == "approved"
    assert "Failed to dispatch booking_approved notification" in caplog.text


def test_notification_api_lists_and_marks_read(client, db, customer):
    _pending_booking(db, customer)
    headers = auth_headers(customer)

    listed = client.get("/api/notifications/", headers=headers).json()
    assert [n["meta"]["event"] for n in listed] == ["booking_submitted"]

    stats = client.get("/api/notifications/stats", headers=headers).json()
    assert stats["unread"] == 1
    assert stats["by_category"]["bookings"] == 1

    read = client.post(f"/api/notifications/{listed[0]['id']}/read", headers=headers)
    assert read.json()["is_read"] is True
    assert client.get("/api/notifications/", params={"is_read": False}, headers=headers).json() == []


def test_notifications_filter_by_booking_and_bulk_read(client, db, customer):
    first = _pending_booking(db, customer)
    _pending_booking(db, customer)
    headers = auth_headers(customer)

    scoped = client.get(
        "/api/notifications/", params={"booking_id": str(first.id)}, headers=headers
    ).json()
    stats = client.get("/api/notifications/stats", headers=headers).json()
    bulk = client.post("/api/notifications/mark-all-read", headers=headers).json()

    assert [n["meta"]["reference_number"] for n in scoped] == [first.reference_number]
    assert stats["by_event"] == {"booking_submitted": 2}
    assert bulk["updated"] == 2
    assert client.get("/api/notifications/stats", headers=headers).json()["unread"] == 0

    gone = client.delete(f"/api/notifications/{scoped[0]['id']}", headers=headers)
    assert gone.status_code == 204
    assert client.delete(f"/api/notifications/{scoped[0]['id']}", headers=headers).status_code == 404
