from decimal import Decimal

from conftest import auth_headers, make_add_on, make_service
from labbook import models


def test_catalog_lists_effective_price_for_caller(client, db, customer):
    service = make_service(db, prices={"external_member": "42.00", "utm_member": "21.00"})
    unpriced = make_service(db, prices={"utm_member": "5.00"})

    listed = {s["id"]: s for s in client.get("/api/services", headers=auth_headers(customer)).json()}

    assert Decimal(listed[str(service.id)]["effective_price"]) == Decimal("42.00")
    assert listed[str(unpriced.id)]["effective_price"] is None


def test_service_detail_hides_other_user_types_from_customers(client, db, customer, admin):
    service = make_service(db, prices={"external_member": "42.00", "utm_member": "21.00"})

    mine = client.get(f"/api/services/{service.id}", headers=auth_headers(customer)).json()
    everything = client.get(f"/api/services/{service.id}", headers=auth_headers(admin)).json()

    assert [p["user_type"] for p in mine["prices"]] == ["external_member"]
    assert Decimal(mine["effective_price"]) == Decimal("42.00")
    assert [p["user_type"] for p in everything["prices"]] == ["external_member", "utm_member"]
    assert client.get(
        "/api/services/00000000-0000-0000-0000-000000000000", headers=auth_headers(customer)
    ).status_code == 404


def test_add_on_catalog_lists_active_entries(client, db, customer):
    active = make_add_on(db, "3.00")
    retired = make_add_on(db, "4.00", is_active=False)

    ids = {a["id"] for a in client.get("/api/services/add-ons", headers=auth_headers(customer)).json()}

    assert str(active.id) in ids
    assert str(retired.id) not in ids


def test_service_add_ons_apply_mapping_overrides(client, db, customer):
    service = make_service(db, prices={"external_member": "10.00"})
    overridden = make_add_on(db, "5.00")
    switched_off = make_add_on(db, "6.00")
    db.add_all(
        [
            models.ServiceAddOnMapping(
                service_id=service.id, add_on_id=overridden.id, custom_amount=Decimal("1.50")
            ),
            models.ServiceAddOnMapping(
                service_id=service.id,
                add_on_id=switched_off.id,
                custom_amount=Decimal("0.50"),
                is_enabled=False,
            ),
        ]
    )
    db.commit()

    amounts = {
        a["add_on_id"]: Decimal(a["amount"])
        for a in client.get(
            f"/api/services/{service.id}/add-ons", headers=auth_headers(customer)
        ).json()
    }

    assert amounts[str(overridden.id)] == Decimal("1.50")
    assert amounts[str(switched_off.id)] == Decimal("6.00")
