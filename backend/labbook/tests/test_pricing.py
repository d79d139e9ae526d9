import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import make_add_on, make_service
from labbook import models
from labbook.services import pricing
from labbook.services.errors import PricingNotFound


def _price(db, service, price, *, start, end=None, user_type="external_member"):
    db.add(
        models.ServicePricing(
            service_id=service.id,
            user_type=user_type,
            price=Decimal(price),
            effective_from=start,
            effective_to=end,
        )
    )
    db.commit()


def test_latest_effective_row_wins(db):
    now = datetime.now(timezone.utc)
    service = make_service(db)
    _price(db, service, "10.00", start=now - timedelta(days=60))
    _price(db, service, "12.00", start=now - timedelta(days=10))
    _price(db, service, "99.00", start=now + timedelta(days=10))

    row = pricing.resolve_unit_price(db, service.id, "external_member", now)

    assert row.price == Decimal("12.00")


def test_expired_rows_are_ignored(db):
    now = datetime.now(timezone.utc)
    service = make_service(db)
    _price(db, service, "8.00", start=now - timedelta(days=90), end=now - timedelta(days=30))

    with pytest.raises(PricingNotFound):
        pricing.resolve_unit_price(db, service.id, "external_member", now)


def test_price_is_scoped_to_user_type(db):
    service = make_service(db, prices={"utm_member": "5.00"})

    with pytest.raises(PricingNotFound) as excinfo:
        pricing.resolve_unit_price(db, service.id, "external_member")
    assert excinfo.value.user_type == "external_member"
    assert pricing.resolve_unit_price(db, service.id, "utm_member").price == Decimal("5.00")


def test_batch_resolution_omits_unpriced_services(db):
    priced = make_service(db, prices={"external_member": "15.00"})
    unpriced = make_service(db)

    resolved = pricing.resolve_unit_prices(db, [priced.id, unpriced.id], "external_member")

    assert set(resolved) == {priced.id}


def test_add_on_override_precedence(db):
    service = make_service(db, prices={"external_member": "10.00"})
    overridden = make_add_on(db, "5.00")
    disabled = make_add_on(db, "6.00")
    default = make_add_on(db, "7.00")
    workspace_only = make_add_on(db, "8.00", applicable_to="workspace")
    db.add_all(
        [
            models.ServiceAddOnMapping(
                service_id=service.id, add_on_id=overridden.id, custom_amount=Decimal("3.25")
            ),
            models.ServiceAddOnMapping(
                service_id=service.id,
                add_on_id=disabled.id,
                custom_amount=Decimal("9.00"),
                is_enabled=False,
            ),
        ]
    )
    db.commit()

    assert pricing.resolve_add_on_amount(db, service.id, overridden.id) == Decimal("3.25")
    assert pricing.resolve_add_on_amount(db, service.id, disabled.id) == Decimal("6.00")
    assert pricing.resolve_add_on_amount(db, service.id, default.id) == Decimal("7.00")
    assert pricing.resolve_add_on_amount(db, service.id, workspace_only.id) is None
    assert pricing.resolve_add_on_amount(db, service.id, uuid.uuid4()) is None


def test_enabled_mapping_makes_add_on_applicable(db):
    service = make_service(db, prices={"external_member": "10.00"})
    workspace_only = make_add_on(db, "8.00", applicable_to="workspace")
    db.add(models.ServiceAddOnMapping(service_id=service.id, add_on_id=workspace_only.id))
    db.commit()

    assert pricing.resolve_add_on_amount(db, service.id, workspace_only.id) == Decimal("8.00")


def test_workspace_rate_comes_from_working_space_service(db, workspace_service):
    service_id, rate = pricing.resolve_workspace_monthly_rate(db, "mjiit_member")

    assert service_id == workspace_service
    assert rate == Decimal("200.00")


def test_disabled_mapping_does_not_unlock_other_kinds(db):
    service = make_service(db, prices={"external_member": "10.00"})
    workspace_only = make_add_on(db, "8.00", applicable_to="workspace")
    db.add(
        models.ServiceAddOnMapping(
            service_id=service.id,
            add_on_id=workspace_only.id,
            custom_amount=Decimal("1.00"),
            is_enabled=False,
        )
    )
    db.commit()

    assert pricing.resolve_add_on_amount(db, service.id, workspace_only.id) is None
