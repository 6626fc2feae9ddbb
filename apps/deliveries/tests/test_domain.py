"""Unit tests for the shared delivery domain helpers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import random

import pytest

from packages.fleet_common import (
    Billing,
    CalculationPrecondition,
    DeliveryRecord,
    ExpenseRecord,
    FilterCriteria,
    build_billing,
    billings_total,
    compute_dashboard_metrics,
    expense_breakdown,
    expense_total,
    filter_deliveries,
    generate_invoice_number,
    group_by_owner,
    normalize_expense,
    quote_billing,
    sort_billings,
    sort_deliveries,
    to_decimal,
    unique_owners,
    validate_rate,
)


def _delivery(id, owner="A", weight="1000", **kwargs):
    values = dict(
        id=id,
        plate_number=f"PL-{id}",
        driver_names="Driver",
        loading_date=date(2024, 1, id),
        unloading_date=date(2024, 1, id + 1),
        weight_loaded=Decimal(weight),
        bond_number=f"BN-{id}",
        owner=owner,
    )
    values.update(kwargs)
    return DeliveryRecord(**values)


def test_expense_total_combines_all_lines():
    expense = ExpenseRecord(
        delivery_id=1,
        road_costs=Decimal("100"),
        diesel_liters=Decimal("50"),
        diesel_price_unit=Decimal("755"),
        toll_costs=Decimal("20"),
        extra_costs=Decimal("0"),
    )
    assert expense_total(expense) == Decimal("37870")


def test_expense_total_defaults_missing_or_zero_diesel_price():
    unset = ExpenseRecord(delivery_id=1, diesel_liters=Decimal("10"), diesel_price_unit=None)
    zero = ExpenseRecord(delivery_id=1, diesel_liters=Decimal("10"), diesel_price_unit=Decimal("0"))
    assert expense_total(unset) == Decimal("7550")
    assert expense_total(zero) == Decimal("7550")


def test_expense_total_without_record_is_zero():
    assert expense_total(None) == Decimal("0")
    assert expense_breakdown(None)["total"] == Decimal("0")


def test_expense_breakdown_matches_total():
    expense = ExpenseRecord(
        delivery_id=1,
        road_costs=Decimal("100"),
        diesel_liters=Decimal("2"),
        toll_costs=Decimal("50"),
    )
    breakdown = expense_breakdown(expense)
    assert breakdown["diesel_total"] == Decimal("1510")
    assert breakdown["total"] == expense_total(expense) == Decimal("1660")


@pytest.mark.parametrize(
    "payload, expected_id",
    [
        (None, None),
        ([], None),
        ({"id": 7, "delivery_id": 1}, 7),
        ([{"id": 8, "delivery_id": 1}, {"id": 9, "delivery_id": 1}], 8),
    ],
)
def test_normalize_expense_shapes(payload, expected_id):
    result = normalize_expense(payload)
    if expected_id is None:
        assert result is None
    else:
        assert result.id == expected_id


def test_to_decimal_rejects_non_numbers():
    assert to_decimal("  ") == Decimal("0")
    assert to_decimal(1.5) == Decimal("1.5")
    with pytest.raises(ValueError):
        to_decimal("abc")
    with pytest.raises(ValueError):
        to_decimal("NaN")


def test_filter_by_owner_and_group_subtotals():
    deliveries = [
        _delivery(1, owner="A", weight="1000"),
        _delivery(2, owner="B", weight="2000"),
        _delivery(3, owner="A", weight="1500"),
    ]
    filtered = filter_deliveries(deliveries, FilterCriteria(owners=("A",)))
    assert [d.id for d in filtered] == [1, 3]

    groups = group_by_owner(filtered)
    assert len(groups) == 1
    assert groups[0].owner == "A"
    assert groups[0].count == 2
    assert groups[0].total_weight == Decimal("2500")


def test_filter_is_idempotent_and_returns_subset():
    deliveries = [_delivery(i, owner="AB"[i % 2], weight=str(i * 100)) for i in range(1, 10)]
    criteria = FilterCriteria(
        search="pl",
        date_from=date(2024, 1, 2),
        date_to=date(2024, 1, 8),
        weight_min=Decimal("300"),
    )
    once = filter_deliveries(deliveries, criteria)
    assert filter_deliveries(once, criteria) == once
    assert all(d in deliveries for d in once)
    assert [d.id for d in once] == [3, 4, 5, 6, 7, 8]


def test_empty_filter_keeps_everything():
    deliveries = [_delivery(1), _delivery(2)]
    assert FilterCriteria().is_empty()
    assert filter_deliveries(deliveries, FilterCriteria()) == deliveries


def test_search_is_case_insensitive_across_fields():
    deliveries = [
        _delivery(1, driver_names="Paul Obiang"),
        _delivery(2, bond_number="XY-778"),
    ]
    assert [d.id for d in filter_deliveries(deliveries, FilterCriteria(search="OBIANG"))] == [1]
    assert [d.id for d in filter_deliveries(deliveries, FilterCriteria(search="xy-7"))] == [2]


def test_sort_is_stable_for_equal_keys():
    deliveries = [
        _delivery(1, weight="100"),
        _delivery(2, weight="200"),
        _delivery(3, weight="100"),
    ]
    ascending = sort_deliveries(deliveries, "weight_loaded", "asc")
    descending = sort_deliveries(deliveries, "weight_loaded", "desc")
    assert [d.id for d in ascending] == [1, 3, 2]
    assert [d.id for d in descending] == [2, 1, 3]


def test_sort_rejects_unknown_field():
    with pytest.raises(ValueError):
        sort_deliveries([], "colour")


def test_group_order_ignores_accents_and_case():
    deliveries = [
        _delivery(1, owner="zeta"),
        _delivery(2, owner="Écurie"),
        _delivery(3, owner="alpha"),
        _delivery(4, owner="Ecole"),
    ]
    assert [g.owner for g in group_by_owner(deliveries)] == ["alpha", "Ecole", "Écurie", "zeta"]
    assert unique_owners(deliveries) == ["alpha", "Ecole", "Écurie", "zeta"]


def test_group_members_keep_sort_order():
    deliveries = sort_deliveries(
        [_delivery(1, weight="5"), _delivery(2, weight="9"), _delivery(3, weight="7")],
        "weight_loaded",
        "desc",
    )
    assert [d.id for d in group_by_owner(deliveries)[0].deliveries] == [2, 3, 1]


def test_quote_billing_converts_kilograms_to_tons():
    deliveries = [_delivery(1, weight="10000"), _delivery(2, weight="2500")]
    quote = quote_billing(deliveries, "5000")
    assert quote.total_weight_kg == Decimal("12500")
    assert quote.tons == Decimal("12.5")
    assert quote.amount == Decimal("62500")
    assert quote.delivery_ids == (1, 2)


@pytest.mark.parametrize("rate", ["0", "-10", "", "abc", None])
def test_non_positive_or_invalid_rate_is_rejected(rate):
    with pytest.raises(CalculationPrecondition):
        validate_rate(rate)


def test_build_billing_requires_deliveries():
    quote = quote_billing([], "5000")
    with pytest.raises(CalculationPrecondition):
        build_billing(quote, "INV-20240101-0001")


def test_build_billing_is_pending_with_note():
    quote = quote_billing([_delivery(1, weight="12500")], "5000")
    billing = build_billing(quote, "INV-20240101-0001")
    assert billing.status == "pending"
    assert billing.total_weight == Decimal("12.5")
    assert billing.total_amount == Decimal("62500")
    assert billing.notes == "Invoice for 1 deliveries"


def test_invoice_number_format():
    number = generate_invoice_number(date(2024, 3, 9), random.Random(4))
    prefix, day, suffix = number.split("-")
    assert prefix == "INV"
    assert day == "20240309"
    assert len(suffix) == 4 and suffix.isdigit()


def test_invoice_numbers_can_collide_on_the_same_day():
    first = generate_invoice_number(date(2024, 3, 9), random.Random(1))
    second = generate_invoice_number(date(2024, 3, 9), random.Random(1))
    assert first == second


def test_billing_history_sort_and_total():
    billings = [
        Billing("INV-1", Decimal("1"), Decimal("10"), Decimal("10"), created_at=datetime(2024, 1, 2)),
        Billing("INV-2", Decimal("1"), Decimal("30"), Decimal("30"), created_at=datetime(2024, 1, 1)),
    ]
    assert [b.billing_number for b in sort_billings(billings)] == ["INV-1", "INV-2"]
    assert [b.billing_number for b in sort_billings(billings, "total_amount", "desc")] == [
        "INV-2",
        "INV-1",
    ]
    assert billings_total(billings) == Decimal("40")


def test_dashboard_metrics_windows():
    today = date(2024, 6, 30)
    deliveries = [
        _delivery(1, plate_number="P1", loading_date=date(2024, 6, 28)),
        _delivery(2, plate_number="P1", loading_date=date(2024, 6, 5)),
        _delivery(3, plate_number="P2", loading_date=date(2024, 4, 1)),
    ]
    metrics = compute_dashboard_metrics(deliveries, today=today)
    assert metrics.total_deliveries == 3
    assert metrics.total_weight == Decimal("3000")
    assert metrics.active_trucks == 1
    assert metrics.recent_activity == 1


def test_group_subtotals_sum_to_filtered_total():
    deliveries = [
        _delivery(i, owner=owner, weight=weight)
        for i, (owner, weight) in enumerate(
            [("A", "1000"), ("B", "2000"), ("A", "1500"), ("C", "750.5")], start=1
        )
    ]
    groups = group_by_owner(deliveries)
    assert sum((g.total_weight for g in groups), Decimal()) == Decimal("5250.5")
    assert sum(g.count for g in groups) == len(deliveries)


def test_plate_filter_is_case_insensitive_substring_combined_with_search():
    deliveries = [
        _delivery(1, plate_number="LT-204-AA", owner="Transco"),
        _delivery(2, plate_number="LT-204-BB", owner="Logitrans"),
        _delivery(3, plate_number="GA-551-AA", owner="Transco"),
    ]
    by_plate = filter_deliveries(deliveries, FilterCriteria(plate_number="lt-204"))
    assert [d.id for d in by_plate] == [1, 2]

    both = filter_deliveries(
        deliveries, FilterCriteria(plate_number="lt-204", search="transco")
    )
    assert [d.id for d in both] == [1]


def test_weight_bounds_are_inclusive():
    deliveries = [
        _delivery(1, weight="999.99"),
        _delivery(2, weight="1000"),
        _delivery(3, weight="2500"),
        _delivery(4, weight="2500.01"),
    ]
    criteria = FilterCriteria(weight_min=Decimal("1000"), weight_max=Decimal("2500"))
    assert [d.id for d in filter_deliveries(deliveries, criteria)] == [2, 3]

    only_max = FilterCriteria(weight_max=Decimal("1000"))
    assert [d.id for d in filter_deliveries(deliveries, only_max)] == [1, 2]


def test_date_bounds_are_inclusive_on_loading_date():
    deliveries = [_delivery(i) for i in range(1, 6)]
    criteria = FilterCriteria(date_from=date(2024, 1, 2), date_to=date(2024, 1, 4))
    assert [d.id for d in filter_deliveries(deliveries, criteria)] == [2, 3, 4]

    single_day = FilterCriteria(date_from=date(2024, 1, 5), date_to=date(2024, 1, 5))
    assert [d.id for d in filter_deliveries(deliveries, single_day)] == [5]


def test_rate_is_limited_to_cents():
    assert validate_rate("12.5") == Decimal("12.50")
    assert validate_rate(Decimal("5000.000")) == Decimal("5000")
    with pytest.raises(CalculationPrecondition):
        validate_rate("0.004")
    with pytest.raises(CalculationPrecondition):
        validate_rate("12.345")
