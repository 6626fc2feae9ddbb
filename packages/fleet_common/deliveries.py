"""Delivery domain models and the expense calculator.

These dataclasses describe truck deliveries and the cost breakdown attached
to each of them. They deliberately carry no persistence concerns so the same
types can be produced by the database adapter, by form parsing, or by tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

TRUCK_TYPES: Tuple[str, ...] = (
    "Semi-Truck",
    "Box Truck",
    "Flatbed",
    "Refrigerated",
    "Tanker",
    "Other",
)

DEFAULT_DIESEL_PRICE = Decimal("755")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce numbers or numeric strings to :class:`~decimal.Decimal`.

    Weights and amounts may arrive as text from the store or from form
    fields. Blank and ``None`` values return ``default``; anything that is
    not numeric raises :class:`ValueError`.
    """

    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    text = str(value).strip()
    if not text:
        return default
    try:
        result = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return result


@dataclass(slots=True)
class ExpenseRecord:
    """Cost breakdown attached to a single delivery."""

    delivery_id: int
    road_costs: Decimal = Decimal("0")
    diesel_liters: Decimal = Decimal("0")
    diesel_price_unit: Optional[Decimal] = DEFAULT_DIESEL_PRICE
    toll_costs: Decimal = Decimal("0")
    extra_costs: Decimal = Decimal("0")
    extra_description: str = ""
    id: Optional[int] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ExpenseRecord":
        """Build a record from a store row or JSON object."""

        price = values.get("diesel_price_unit")
        return cls(
            id=values.get("id"),
            delivery_id=values["delivery_id"],
            road_costs=to_decimal(values.get("road_costs")),
            diesel_liters=to_decimal(values.get("diesel_liters")),
            diesel_price_unit=None if price is None else to_decimal(price),
            toll_costs=to_decimal(values.get("toll_costs")),
            extra_costs=to_decimal(values.get("extra_costs")),
            extra_description=values.get("extra_description") or "",
        )


@dataclass(slots=True)
class DeliveryRecord:
    """One truck trip with its load, dates and parties."""

    plate_number: str
    driver_names: str
    loading_date: date
    unloading_date: date
    weight_loaded: Decimal
    bond_number: str
    owner: str
    truck_type: str = "Semi-Truck"
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    expense: Optional[ExpenseRecord] = None
    billing_id: Optional[int] = None

    @property
    def is_billed(self) -> bool:
        return self.billing_id is not None

    @property
    def expenses_total(self) -> Decimal:
        return expense_total(self.expense)


@dataclass(slots=True)
class Billing:
    """An invoice raised over a set of deliveries."""

    billing_number: str
    total_weight: Decimal
    price_per_ton: Decimal
    total_amount: Decimal
    status: str = "pending"
    notes: str = ""
    id: Optional[int] = None
    created_at: Optional[datetime] = None


BILLING_STATUSES: Dict[str, str] = {
    "pending": "Pending",
    "paid": "Paid",
    "overdue": "Overdue",
}


@dataclass(slots=True)
class FilterCriteria:
    """User-selected constraints on the delivery list.

    Every field is optional; an empty value means "no constraint".
    """

    search: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    plate_number: str = ""
    owners: Tuple[str, ...] = ()
    weight_min: Optional[Decimal] = None
    weight_max: Optional[Decimal] = None

    def is_empty(self) -> bool:
        return not any(
            [
                self.search,
                self.date_from,
                self.date_to,
                self.plate_number,
                self.owners,
                self.weight_min is not None,
                self.weight_max is not None,
            ]
        )


ExpensePayload = Union[
    None, ExpenseRecord, Mapping[str, Any], Sequence[Union[ExpenseRecord, Mapping[str, Any]]]
]


def normalize_expense(payload: ExpensePayload) -> Optional[ExpenseRecord]:
    """Collapse the shapes an expense join can take into one optional record.

    The store may hand back the joined expense as a single object, a list
    holding zero or one object, or nothing at all. Only the first element of
    a list is kept since a delivery owns at most one expense row.
    """

    if payload is None:
        return None
    if isinstance(payload, ExpenseRecord):
        return payload
    if isinstance(payload, Mapping):
        return ExpenseRecord.from_mapping(payload)
    if isinstance(payload, (list, tuple)):
        if not payload:
            return None
        return normalize_expense(payload[0])
    raise TypeError(f"Unsupported expense payload: {type(payload).__name__}")


def effective_diesel_price(expense: ExpenseRecord) -> Decimal:
    """Return the configured diesel price, or the default when unset or zero."""

    price = expense.diesel_price_unit
    if price is None or price == 0:
        return DEFAULT_DIESEL_PRICE
    return price


def expense_total(expense: Optional[ExpenseRecord]) -> Decimal:
    """Compute the total cost of a delivery's expenses.

    ``road + liters * price + tolls + extras``; a delivery without an expense
    record costs nothing.
    """

    if expense is None:
        return Decimal("0")
    diesel = (expense.diesel_liters or Decimal("0")) * effective_diesel_price(expense)
    return (
        (expense.road_costs or Decimal("0"))
        + diesel
        + (expense.toll_costs or Decimal("0"))
        + (expense.extra_costs or Decimal("0"))
    )


def expense_breakdown(expense: Optional[ExpenseRecord]) -> Dict[str, Decimal]:
    """Return the individual cost lines shown on the delivery detail page."""

    if expense is None:
        zero = Decimal("0")
        return {
            "road_costs": zero,
            "diesel_total": zero,
            "toll_costs": zero,
            "extra_costs": zero,
            "total": zero,
        }
    return {
        "road_costs": expense.road_costs or Decimal("0"),
        "diesel_total": (expense.diesel_liters or Decimal("0"))
        * effective_diesel_price(expense),
        "toll_costs": expense.toll_costs or Decimal("0"),
        "extra_costs": expense.extra_costs or Decimal("0"),
        "total": expense_total(expense),
    }
