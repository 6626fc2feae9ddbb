"""Tests for CSV export and invoice preview rendering."""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal
import io

import pytest

from packages.fleet_common import (
    CalculationPrecondition,
    DeliveryRecord,
    ExpenseRecord,
    FilterCriteria,
    quote_billing,
)

from fleet_deliveries_web.services import (
    EXPORT_HEADERS,
    build_invoice_preview,
    describe_filters,
    export_csv,
)


def _delivery(**kwargs):
    values = dict(
        id=1,
        plate_number="AB-123",
        driver_names='Paul "Big" Obiang',
        loading_date=date(2024, 5, 2),
        unloading_date=date(2024, 5, 4),
        weight_loaded=Decimal("12500.00"),
        bond_number="BN-1",
        owner="Transco, SA",
        expense=ExpenseRecord(delivery_id=1, road_costs=Decimal("5000")),
        billing_id=4,
    )
    values.update(kwargs)
    return DeliveryRecord(**values)


def test_export_empty_selection_is_rejected():
    with pytest.raises(CalculationPrecondition):
        export_csv([])


def test_export_quotes_text_and_writes_bare_numbers():
    body = export_csv([_delivery(), _delivery(id=2, billing_id=None, expense=None)])
    lines = body.splitlines()
    assert lines[0] == ",".join(f'"{h}"' for h in EXPORT_HEADERS)
    assert lines[1].startswith('1,"AB-123","Paul ""Big"" Obiang","2024-05-02"')
    assert ',12500,"BN-1","Transco, SA","Semi-Truck",5000,"Yes"' in lines[1]
    assert lines[2].endswith(',0,"No"')

    rows = list(csv.reader(io.StringIO(body)))
    assert len(rows) == 3
    assert rows[1][7] == "Transco, SA"


def test_describe_filters_defaults():
    summary = describe_filters(FilterCriteria())
    assert summary == {"owners": "All owners", "period": "Start to End"}

    summary = describe_filters(
        FilterCriteria(owners=("A", "B"), date_from=date(2024, 1, 1), plate_number="AB")
    )
    assert summary["owners"] == "A, B"
    assert summary["period"] == "2024-01-01 to End"
    assert summary["plate_number"] == "AB"


def test_invoice_preview_lists_deliveries_and_amount():
    deliveries = [_delivery()]
    text = build_invoice_preview(
        quote_billing(deliveries, "5000"), deliveries, FilterCriteria()
    )
    assert text.startswith("Invoice preview")
    assert "AB-123 | BN-1 | Transco, SA" in text
    assert "Amount due: 62500" in text
