import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from labbook import models, schemas
from labbook.services import line_items, pricing
from labbook.services.errors import BookingValidationError, PricingNotFound
from labbook.services.line_items import (
    PricingMode,
    PricingSnapshot,
    billed_months,
    compute_total,
    normalize_line_items,
    workspace_range_issues,
)


def _add_on(amount: str, applicable_to: str = "both", is_active: bool = True):
    return models.GlobalAddOnCatalog(
        id=uuid.uuid4(),
        name="Rush processing",
        default_amount=Decimal(amount),
        applicable_to=applicable_to,
        is_active=is_active,
    )


def _snapshot(*, services=None, add_ons=(), rate=None):
    snapshot = PricingSnapshot(user_type="external_member")
    for service_id, (category, price) in (services or {}).items():
        snapshot.categories[service_id] = category
        if price is not None:
            snapshot.unit_prices[service_id] = Decimal(price)
    snapshot.add_ons = pricing.AddOnCatalogSnapshot(add_ons={a.id: a for a in add_ons})
    if rate is not None:
        snapshot.workspace_service_id = uuid.uuid4()
        snapshot.workspace_monthly_rate = Decimal(rate)
    return snapshot


@pytest.mark.parametrize(
    "days,months",
    [(1, 1), (29, 1), (30, 1), (31, 2), (60, 2), (61, 3), (90, 3)],
)
def test_billed_months_rounds_up_inclusive_days(days, months):
    start = date(2026, 1, 1)
    assert billed_months(start, start + timedelta(days=days - 1)) == months


def test_workspace_minimum_duration_enforced_only_on_submit():
    start = date(2026, 3, 1)
    short_end = start + timedelta(days=28)  # 29 inclusive days
    assert workspace_range_issues(start, short_end, 0, enforce_minimum=False) == []
    issues = workspace_range_issues(start, short_end, 0, enforce_minimum=True)
    assert issues and issues[0]["path"] == ["workspace_bookings", 0, "end_date"]
    assert workspace_range_issues(start, start + timedelta(days=29), 0, enforce_minimum=True) == []


def test_workspace_end_before_start_is_always_invalid():
    start = date(2026, 3, 10)
    issues = workspace_range_issues(start, start - timedelta(days=1), 2, enforce_minimum=False)
    assert issues[0]["path"] == ["workspace_bookings", 2, "end_date"]


def test_count_based_item_multiplies_price_and_add_ons_by_quantity():
    service_id = uuid.uuid4()
    add_on = _add_on("2.00", applicable_to="sample")
    snapshot = _snapshot(services={service_id: ("ftir_atr", "10.00")}, add_ons=[add_on])
    item = schemas.ServiceItemDraft(
        service_id=service_id, quantity=5, duration_months=9, add_on_catalog_ids=[add_on.id]
    )

    result = normalize_line_items([item], [], snapshot)

    normalized = result.service_items[0]
    assert normalized.pricing_mode is PricingMode.PER_COUNT
    assert normalized.total_price == Decimal("60.00")
    assert result.total_amount == Decimal("60.00")
    assert [a.amount for a in normalized.add_ons] == [Decimal("2.00")]


def test_working_space_item_bills_duration_and_ignores_quantity():
    service_id = uuid.uuid4()
    snapshot = _snapshot(services={service_id: ("working_space", "200.00")})
    item = schemas.ServiceItemDraft(service_id=service_id, quantity=7, duration_months=3)

    result = normalize_line_items([item], [], snapshot)

    assert result.service_items[0].pricing_mode is PricingMode.PER_DURATION
    assert result.service_items[0].total_price == Decimal("600.00")


def test_workspace_booking_add_ons_are_flat():
    add_on = _add_on("50.00", applicable_to="workspace")
    snapshot = _snapshot(add_ons=[add_on], rate="200.00")
    start = date(2026, 5, 1)
    workspace = schemas.WorkspaceBookingDraft(
        start_date=start,
        end_date=start + timedelta(days=30),  # 31 inclusive days
        add_on_catalog_ids=[add_on.id],
    )

    result = normalize_line_items([], [workspace], snapshot)

    booked = result.workspace_bookings[0]
    assert booked.billed_months == 2
    assert booked.total_price == Decimal("450.00")


def test_workspace_without_rate_is_priced_at_zero(caplog):
    snapshot = _snapshot()
    start = date(2026, 5, 1)
    workspace = schemas.WorkspaceBookingDraft(start_date=start, end_date=start + timedelta(days=40))

    with caplog.at_level("WARNING", logger=line_items.__name__):
        result = normalize_line_items([], [workspace], snapshot)

    assert result.workspace_bookings[0].total_price == Decimal("0")
    assert "No working space rate" in caplog.text


def test_missing_price_fails_whole_normalization():
    priced, unpriced = uuid.uuid4(), uuid.uuid4()
    snapshot = _snapshot(
        services={priced: ("ftir_atr", "10.00"), unpriced: ("hplc_pda", None)}
    )
    items = [
        schemas.ServiceItemDraft(service_id=priced, quantity=1),
        schemas.ServiceItemDraft(service_id=unpriced, quantity=1),
    ]

    with pytest.raises(PricingNotFound) as excinfo:
        normalize_line_items(items, [], snapshot)
    assert excinfo.value.service_id == unpriced


def test_unknown_service_is_a_validation_error():
    snapshot = _snapshot()
    item = schemas.ServiceItemDraft(service_id=uuid.uuid4(), quantity=1)

    with pytest.raises(BookingValidationError) as excinfo:
        normalize_line_items([item], [], snapshot)
    assert excinfo.value.issues[0]["path"] == ["service_items.0.service_id"]


def test_inapplicable_and_duplicate_add_ons_are_skipped():
    service_id = uuid.uuid4()
    workspace_only = _add_on("9.00", applicable_to="workspace")
    inactive = _add_on("4.00", is_active=False)
    valid = _add_on("1.50", applicable_to="both")
    snapshot = _snapshot(
        services={service_id: ("ftir_atr", "10.00")},
        add_ons=[workspace_only, inactive, valid],
    )
    item = schemas.ServiceItemDraft(
        service_id=service_id,
        quantity=2,
        add_on_catalog_ids=[workspace_only.id, inactive.id, valid.id, valid.id, uuid.uuid4()],
    )

    normalized = normalize_line_items([item], [], snapshot).service_items[0]

    assert [a.add_on_catalog_id for a in normalized.add_ons] == [valid.id]
    assert normalized.total_price == Decimal("23.00")


def test_normalization_is_idempotent():
    service_id = uuid.uuid4()
    add_on = _add_on("2.00")
    snapshot = _snapshot(
        services={service_id: ("ftir_atr", "12.50")}, add_ons=[add_on], rate="200.00"
    )
    items = [schemas.ServiceItemDraft(service_id=service_id, quantity=3, add_on_catalog_ids=[add_on.id])]
    start = date(2026, 1, 1)
    workspaces = [schemas.WorkspaceBookingDraft(start_date=start, end_date=start + timedelta(days=59))]

    first = normalize_line_items(items, workspaces, snapshot)
    second = normalize_line_items(items, workspaces, snapshot)

    assert first == second
    assert first.total_amount == Decimal("443.50")


def test_compute_total_uses_decimal_arithmetic():
    class Row:
        def __init__(self, total):
            self.total_price = total

    total = compute_total([Row(Decimal("0.10")), Row(Decimal("0.20"))], [Row(Decimal("0.30"))])
    assert total == Decimal("0.60")
    assert isinstance(total, Decimal)


def test_repeated_item_ids_abort_normalization():
    service_id, item_id = uuid.uuid4(), uuid.uuid4()
    snapshot = _snapshot(services={service_id: ("ftir_atr", "10.00")})
    item = schemas.ServiceItemDraft(id=item_id, service_id=service_id, quantity=2)
    fresh = schemas.ServiceItemDraft(service_id=service_id, quantity=1)

    with pytest.raises(BookingValidationError) as excinfo:
        normalize_line_items([item, fresh, item], [], snapshot)

    assert excinfo.value.issues == [
        {"path": ["service_items", 2, "id"], "message": "Duplicate line item id"}
    ]
