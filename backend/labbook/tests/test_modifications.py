from decimal import Decimal

from conftest import auth_headers, make_add_on, make_service, make_user
from labbook import models, schemas
from labbook.services import bookings, modifications, samples


def _approved_booking(db, customer, admin, *, quantity=2, add_on_ids=()):
    service = make_service(db, prices={customer.user_type: "25.00"})
    booking = bookings.create_draft(db, customer)
    booking = bookings.save_draft(
        db,
        booking.id,
        customer,
        schemas.BookingDraftUpdate(
            project_description="XRD phase check",
            service_items=[
                {
                    "service_id": service.id,
                    "quantity": quantity,
                    "add_on_catalog_ids": list(add_on_ids),
                }
            ],
        ),
    )
    bookings.submit(db, booking.id, customer)
    return bookings.admin_approve(db, booking.id, admin)


def _propose(client, admin, booking, **change):
    body = {
        "service_item_id": str(booking.service_items[0].id),
        "reason": "Sample count confirmed at drop-off",
        **change,
    }
    return client.post(
        f"/api/bookings/{booking.id}/modifications", json=body, headers=auth_headers(admin)
    )


def _decide(client, user, modification_id, approved=True):
    return client.post(
        f"/api/modifications/{modification_id}/decision",
        json={"approved": approved},
        headers=auth_headers(user),
    )


def _line_item_sum(body):
    return sum(
        Decimal(line["total_price"])
        for line in body["service_items"] + body["workspace_bookings"]
    )


def test_accepted_increase_reprices_item_and_adds_samples(client, db, customer, admin):
    packaging = make_add_on(db, "2.00")
    booking = _approved_booking(db, customer, admin, add_on_ids=[packaging.id])
    assert booking.total_amount == Decimal("54.00")

    proposed = _propose(client, admin, booking, new_quantity=3)
    assert proposed.status_code == 201, proposed.text
    change = proposed.json()
    assert change["status"] == "pending"
    assert Decimal(change["new_total_price"]) == Decimal("81.00")
    assert Decimal(change["price_difference"]) == Decimal("27.00")
    notices = db.query(models.Notification).filter_by(user_id=customer.id).all()
    assert "modification_requested" in {n.meta.get("event") for n in notices}

    accepted = _decide(client, customer, change["id"])
    assert accepted.status_code == 200, accepted.text
    assert accepted.json()["status"] == "approved"

    body = client.get(f"/api/bookings/{booking.id}", headers=auth_headers(customer)).json()
    item = body["service_items"][0]
    assert item["quantity"] == 3
    assert len(item["samples"]) == 3
    assert Decimal(body["total_amount"]) == Decimal("81.00")
    assert Decimal(body["total_amount"]) == _line_item_sum(body)
    assert body["status"] == "approved"


def test_accepted_decrease_drops_pending_samples_and_completes(db, customer, admin):
    booking = _approved_booking(db, customer, admin, quantity=3)
    item = booking.service_items[0]
    finished = item.samples[0]
    samples.update_sample_status(db, finished.id, "analysis_complete", admin.id)

    change = modifications.propose_modification(
        db,
        booking.id,
        admin,
        schemas.ModificationCreate(
            service_item_id=item.id,
            new_quantity=1,
            reason="Two vials arrived broken",
        ),
    )
    modifications.decide_modification(db, change.id, customer, True)

    db.refresh(booking)
    assert [s.id for s in booking.service_items[0].samples] == [finished.id]
    assert booking.total_amount == Decimal("25.00")
    assert booking.status == "completed"
    assert booking.released_at is not None
    events = {
        n.meta.get("event")
        for n in db.query(models.Notification).filter_by(user_id=customer.id).all()
    }
    assert "booking_completed" in events


def test_freed_sample_positions_are_reused(db, customer, admin):
    booking = _approved_booking(db, customer, admin, quantity=3)
    item = booking.service_items[0]
    last = item.samples[2]
    samples.update_sample_status(db, last.id, "received", admin.id)

    shrink = modifications.propose_modification(
        db,
        booking.id,
        admin,
        schemas.ModificationCreate(
            service_item_id=item.id, new_quantity=2, reason="One vial was mislabelled"
        ),
    )
    modifications.decide_modification(db, shrink.id, customer, True)
    grow = modifications.propose_modification(
        db,
        booking.id,
        admin,
        schemas.ModificationCreate(
            service_item_id=item.id, new_quantity=3, reason="Relabelled vial re-submitted"
        ),
    )
    modifications.decide_modification(db, grow.id, customer, True)

    db.refresh(booking)
    identifiers = [s.sample_identifier for s in booking.service_items[0].samples]
    assert len(identifiers) == len(set(identifiers)) == 3


def test_cannot_shrink_below_samples_in_the_lab(client, db, customer, admin):
    booking = _approved_booking(db, customer, admin)
    for sample in booking.service_items[0].samples:
        samples.update_sample_status(db, sample.id, "received", admin.id)

    resp = _propose(client, admin, booking, new_quantity=1)

    assert resp.status_code == 422


def test_change_must_alter_the_item(client, db, customer, admin):
    booking = _approved_booking(db, customer, admin)

    unchanged = _propose(client, admin, booking, new_quantity=2)
    wrong_axis = _propose(client, admin, booking, new_duration_months=2)

    assert unchanged.status_code == 422
    assert wrong_axis.status_code == 422


def test_one_pending_change_per_item(client, db, customer, admin):
    booking = _approved_booking(db, customer, admin)

    assert _propose(client, admin, booking, new_quantity=3).status_code == 201
    assert _propose(client, admin, booking, new_quantity=4).status_code == 409


def test_only_admins_propose_and_only_owner_or_admin_answers(client, db, customer, admin):
    booking = _approved_booking(db, customer, admin)
    stranger = make_user(db)

    assert _propose(client, customer, booking, new_quantity=3).status_code == 403
    change_id = _propose(client, admin, booking, new_quantity=3).json()["id"]

    assert _decide(client, stranger, change_id).status_code == 403
    assert client.get(
        f"/api/bookings/{booking.id}/modifications", headers=auth_headers(stranger)
    ).status_code == 403

    answered = _decide(client, admin, change_id)
    assert answered.status_code == 200, answered.text
    owner_events = {
        n.meta.get("event")
        for n in db.query(models.Notification).filter_by(user_id=customer.id).all()
    }
    assert "modification_approved" in owner_events


def test_declined_change_keeps_total_and_cannot_be_answered_twice(client, db, customer, admin):
    booking = _approved_booking(db, customer, admin)
    change_id = _propose(client, admin, booking, new_quantity=5).json()["id"]

    declined = _decide(client, customer, change_id, approved=False)
    again = _decide(client, customer, change_id, approved=True)

    assert declined.status_code == 200
    assert declined.json()["status"] == "rejected"
    assert again.status_code == 409
    body = client.get(f"/api/bookings/{booking.id}", headers=auth_headers(customer)).json()
    assert Decimal(body["total_amount"]) == Decimal("50.00")
    assert body["service_items"][0]["quantity"] == 2
    listed = client.get(
        f"/api/bookings/{booking.id}/modifications", headers=auth_headers(customer)
    ).json()
    assert [m["status"] for m in listed] == ["rejected"]
    admin_events = {
        n.meta.get("event")
        for n in db.query(models.Notification).filter_by(user_id=admin.id).all()
    }
    assert "admin_modification_rejected" in admin_events


def test_changes_need_a_running_booking(client, db, customer, admin):
    service = make_service(db, prices={customer.user_type: "25.00"})
    draft = bookings.create_draft(
        db,
        customer,
        schemas.BookingDraftUpdate(service_items=[{"service_id": service.id, "quantity": 1}]),
    )

    assert _propose(client, admin, draft, new_quantity=2).status_code == 409

    booking = _approved_booking(db, customer, admin)
    change_id = _propose(client, admin, booking, new_quantity=3).json()["id"]
    bookings.cancel_by_admin(db, booking.id, admin, "Instrument down")

    assert _decide(client, customer, change_id).status_code == 409
