"""Business logic helpers for the Fleet Deliveries UI."""

from __future__ import annotations

import csv
import io
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence, Union

from packages.fleet_common import (
    BillingQuote,
    DeliveryRecord,
    FilterCriteria,
    expense_total,
    to_decimal,
)

from .errors import CalculationPrecondition

EXPORT_FILENAME = "livraisons_export.csv"

EXPORT_HEADERS: List[str] = [
    "ID",
    "Plate",
    "Driver",
    "Loading Date",
    "Unloading Date",
    "Weight (kg)",
    "Bond #",
    "Owner",
    "Truck Type",
    "Total Expenses",
    "Billed",
]


def _csv_number(value: Decimal) -> Union[int, Decimal]:
    if value == value.to_integral_value():
        return int(value)
    return value


def export_rows(deliveries: Iterable[DeliveryRecord]) -> List[List[Any]]:
    """Return one CSV row per delivery in :data:`EXPORT_HEADERS` order."""

    rows: List[List[Any]] = []
    for delivery in deliveries:
        rows.append(
            [
                delivery.id,
                delivery.plate_number,
                delivery.driver_names,
                delivery.loading_date.isoformat(),
                delivery.unloading_date.isoformat(),
                _csv_number(to_decimal(delivery.weight_loaded)),
                delivery.bond_number,
                delivery.owner,
                delivery.truck_type,
                _csv_number(expense_total(delivery.expense)),
                "Yes" if delivery.is_billed else "No",
            ]
        )
    return rows


def export_csv(deliveries: Sequence[DeliveryRecord]) -> str:
    """Render ``deliveries`` as CSV text.

    Numbers are written bare and every text field is double quoted.

    Raises:
        CalculationPrecondition: If there is nothing to export.
    """

    if not deliveries:
        raise CalculationPrecondition("No data to export.")
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(export_rows(deliveries))
    return buffer.getvalue()


def describe_filters(criteria: FilterCriteria) -> Dict[str, str]:
    """Summarise the active filters for the invoice header."""

    owners = ", ".join(criteria.owners) if criteria.owners else "All owners"
    start = criteria.date_from.isoformat() if criteria.date_from else "Start"
    end = criteria.date_to.isoformat() if criteria.date_to else "End"
    summary = {"owners": owners, "period": f"{start} to {end}"}
    if criteria.plate_number:
        summary["plate_number"] = criteria.plate_number
    return summary


def build_invoice_preview(
    quote: BillingQuote, deliveries: Sequence[DeliveryRecord], criteria: FilterCriteria
) -> str:
    """Render a copy-ready text version of an invoice before it is saved."""

    filters = describe_filters(criteria)
    lines = [
        "Invoice preview",
        f"Owners: {filters['owners']}",
        f"Period: {filters['period']}",
        "",
        "Deliveries:",
    ]
    for delivery in deliveries:
        lines.append(
            "  - "
            f"{delivery.loading_date:%Y-%m-%d} | {delivery.plate_number} | "
            f"{delivery.bond_number} | {delivery.owner} | {delivery.weight_loaded} kg"
        )
    lines.extend(
        [
            "",
            f"Total weight: {quote.total_weight_kg} kg ({quote.tons} t)",
            f"Price per ton: {quote.rate}",
            f"Amount due: {quote.amount:.0f}",
        ]
    )
    return "\n".join(lines)
