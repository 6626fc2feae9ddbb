"""Form parsing and validation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple

from packages.fleet_common import (
    DEFAULT_DIESEL_PRICE,
    TRUCK_TYPES,
    ExpenseRecord,
    FilterCriteria,
    ValidationError,
    to_decimal,
)

DATE_INPUT_FORMAT = "%Y-%m-%d"
MAX_PLATE_LENGTH = 20
MIN_DRIVER_LENGTH = 3
MAX_WEIGHT_KG = Decimal("100000")


@dataclass(slots=True)
class DeliveryFormData:
    """Validated delivery fields returned by :func:`parse_delivery_form`."""

    plate_number: str
    driver_names: str
    loading_date: date
    unloading_date: date
    weight_loaded: Decimal
    bond_number: str
    owner: str
    truck_type: str


def _parse_date(raw: Optional[str]) -> Optional[date]:
    try:
        return datetime.strptime((raw or "").strip(), DATE_INPUT_FORMAT).date()
    except ValueError:
        return None


def parse_delivery_form(
    form: Mapping[str, str]
) -> Tuple[Optional[DeliveryFormData], Dict[str, str]]:
    """Validate a delivery create or edit submission.

    Returns a tuple of ``(result, errors)`` where ``errors`` maps each
    offending field to its message. ``result`` is ``None`` when validation
    fails.
    """

    errors: Dict[str, str] = {}

    plate_number = form.get("plate_number", "").strip()
    driver_names = form.get("driver_names", "").strip()
    bond_number = form.get("bond_number", "").strip()
    owner = form.get("owner", "").strip()
    truck_type = form.get("truck_type", "").strip() or TRUCK_TYPES[0]

    if not plate_number or len(plate_number) > MAX_PLATE_LENGTH:
        errors["plate_number"] = f"Required (max {MAX_PLATE_LENGTH} characters)."
    if not driver_names or len(driver_names) < MIN_DRIVER_LENGTH:
        errors["driver_names"] = f"Required (min {MIN_DRIVER_LENGTH} characters)."

    loading_date = _parse_date(form.get("loading_date"))
    unloading_date = _parse_date(form.get("unloading_date"))
    if loading_date is None:
        errors["loading_date"] = "Loading date is required and must be YYYY-MM-DD."
    if unloading_date is None:
        errors["unloading_date"] = "Unloading date is required and must be YYYY-MM-DD."
    elif loading_date and unloading_date < loading_date:
        errors["unloading_date"] = "Unloading date must be on or after the loading date."

    try:
        weight_loaded = to_decimal(form.get("weight_loaded"))
    except ValueError:
        weight_loaded = Decimal("0")
    if weight_loaded <= 0 or weight_loaded > MAX_WEIGHT_KG:
        errors["weight_loaded"] = "Weight must be greater than 0 and at most 100,000 kg."

    if not bond_number:
        errors["bond_number"] = "Bond number is required."
    if not owner:
        errors["owner"] = "Owner is required."
    if truck_type not in TRUCK_TYPES:
        errors["truck_type"] = "Choose a truck type from the list."

    if errors:
        return None, errors

    return (
        DeliveryFormData(
            plate_number=plate_number,
            driver_names=driver_names,
            loading_date=loading_date,
            unloading_date=unloading_date,
            weight_loaded=weight_loaded,
            bond_number=bond_number,
            owner=owner,
            truck_type=truck_type,
        ),
        {},
    )


_EXPENSE_LABELS = {
    "road_costs": "Road costs",
    "diesel_liters": "Diesel liters",
    "diesel_price_unit": "Diesel price",
    "toll_costs": "Toll costs",
    "extra_costs": "Extra costs",
}


def parse_expense_form(
    form: Mapping[str, str], delivery_id: int
) -> Tuple[Optional[ExpenseRecord], Dict[str, str]]:
    """Validate an expense submission for ``delivery_id``.

    Blank amounts count as zero and a blank diesel price falls back to the
    default unit price.
    """

    errors: Dict[str, str] = {}
    amounts: Dict[str, Decimal] = {}
    for name, label in _EXPENSE_LABELS.items():
        default = DEFAULT_DIESEL_PRICE if name == "diesel_price_unit" else Decimal("0")
        try:
            value = to_decimal(form.get(name), default)
        except ValueError:
            errors[name] = f"{label} must be a valid number."
            continue
        if value < 0:
            errors[name] = f"{label} cannot be negative."
            continue
        amounts[name] = value

    if errors:
        return None, errors

    return (
        ExpenseRecord(
            delivery_id=delivery_id,
            extra_description=form.get("extra_description", "").strip(),
            **amounts,
        ),
        {},
    )


def parse_filter_args(
    args: Mapping[str, str], owners: Optional[List[str]] = None
) -> Tuple[FilterCriteria, List[str]]:
    """Build :class:`FilterCriteria` from query-string arguments.

    Malformed dates or weights are reported in the returned error list and
    otherwise ignored so the list still renders. ``owners`` holds the values
    of the repeated ``owner`` argument when the caller has them.
    """

    errors: List[str] = []
    date_from = date_to = None
    if args.get("date_from"):
        date_from = _parse_date(args.get("date_from"))
        if date_from is None:
            errors.append("Ignoring invalid start date.")
    if args.get("date_to"):
        date_to = _parse_date(args.get("date_to"))
        if date_to is None:
            errors.append("Ignoring invalid end date.")

    weights: Dict[str, Optional[Decimal]] = {"weight_min": None, "weight_max": None}
    for name in weights:
        raw = (args.get(name) or "").strip()
        if not raw:
            continue
        try:
            weights[name] = to_decimal(raw)
        except ValueError:
            errors.append(f"Ignoring invalid {name.replace('_', ' ')}.")

    selected = tuple(o for o in (owners or []) if o)
    criteria = FilterCriteria(
        search=(args.get("search") or "").strip(),
        date_from=date_from,
        date_to=date_to,
        plate_number=(args.get("plate_number") or "").strip(),
        owners=selected,
        weight_min=weights["weight_min"],
        weight_max=weights["weight_max"],
    )
    return criteria, errors


def require_delivery(form: Mapping[str, str]) -> DeliveryFormData:
    """Return the parsed delivery or raise :class:`ValidationError`."""

    result, errors = parse_delivery_form(form)
    if errors or result is None:
        raise ValidationError(errors)
    return result


def require_expense(form: Mapping[str, str], delivery_id: int) -> ExpenseRecord:
    """Return the parsed expense or raise :class:`ValidationError`."""

    result, errors = parse_expense_form(form, delivery_id)
    if errors or result is None:
        raise ValidationError(errors, "Please correct the expense information.")
    return result
