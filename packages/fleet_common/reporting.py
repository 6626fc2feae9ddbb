"""Filtering, sorting and grouping helpers for delivery lists.

Everything here is a pure function over an in-memory list of
:class:`~packages.fleet_common.deliveries.DeliveryRecord` objects. The web
app fetches the full list from the store and runs these helpers on every
request so the grand total, the owner subtotals and a billing estimate are
all derived from the same filtered set.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .deliveries import DeliveryRecord, FilterCriteria, to_decimal

ACTIVE_TRUCK_DAYS = 30
RECENT_ACTIVITY_DAYS = 7

SORT_DIRECTIONS = ("asc", "desc")


def _contains(haystack: str, needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def matches_filter(delivery: DeliveryRecord, criteria: FilterCriteria) -> bool:
    """Return ``True`` when ``delivery`` satisfies every active constraint."""

    if criteria.search:
        if not any(
            _contains(value, criteria.search)
            for value in (
                delivery.plate_number,
                delivery.driver_names,
                delivery.bond_number,
                delivery.owner,
            )
        ):
            return False
    if criteria.date_from and delivery.loading_date < criteria.date_from:
        return False
    if criteria.date_to and delivery.loading_date > criteria.date_to:
        return False
    if criteria.plate_number and not _contains(
        delivery.plate_number, criteria.plate_number
    ):
        return False
    if criteria.owners and delivery.owner not in criteria.owners:
        return False
    weight = to_decimal(delivery.weight_loaded)
    if criteria.weight_min is not None and weight < criteria.weight_min:
        return False
    if criteria.weight_max is not None and weight > criteria.weight_max:
        return False
    return True


def filter_deliveries(
    deliveries: Iterable[DeliveryRecord], criteria: FilterCriteria
) -> List[DeliveryRecord]:
    """Return the deliveries matching ``criteria`` in their input order."""

    return [delivery for delivery in deliveries if matches_filter(delivery, criteria)]


def total_weight(deliveries: Iterable[DeliveryRecord]) -> Decimal:
    """Sum ``weight_loaded`` across ``deliveries`` in kilograms."""

    return sum((to_decimal(d.weight_loaded) for d in deliveries), Decimal())


def total_expenses(deliveries: Iterable[DeliveryRecord]) -> Decimal:
    """Sum the expense totals across ``deliveries``."""

    return sum((d.expenses_total for d in deliveries), Decimal())


def _text_key(value: Optional[str]) -> str:
    return (value or "").casefold()


SORT_FIELDS: Dict[str, Callable[[DeliveryRecord], Any]] = {
    "plate_number": lambda d: _text_key(d.plate_number),
    "driver_names": lambda d: _text_key(d.driver_names),
    "loading_date": lambda d: d.loading_date,
    "unloading_date": lambda d: d.unloading_date,
    "weight_loaded": lambda d: to_decimal(d.weight_loaded),
    "bond_number": lambda d: _text_key(d.bond_number),
    "owner": lambda d: _text_key(d.owner),
    "truck_type": lambda d: _text_key(d.truck_type),
    "created_at": lambda d: d.created_at,
    "expenses_total": lambda d: d.expenses_total,
}


def sort_deliveries(
    deliveries: Sequence[DeliveryRecord],
    sort_field: str = "loading_date",
    direction: str = "desc",
) -> List[DeliveryRecord]:
    """Sort deliveries on a single column.

    Python's sort is stable in both directions, so deliveries comparing
    equal keep their input order. Records with no value for the column
    (only ``created_at`` can be missing) are placed last.

    Raises:
        ValueError: If ``sort_field`` or ``direction`` is not recognised.
    """

    if sort_field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {sort_field}")
    if direction not in SORT_DIRECTIONS:
        raise ValueError(f"Unknown sort direction: {direction}")
    key = SORT_FIELDS[sort_field]
    present = [d for d in deliveries if key(d) is not None]
    missing = [d for d in deliveries if key(d) is None]
    return sorted(present, key=key, reverse=direction == "desc") + missing


def owner_sort_key(owner: str) -> Tuple[str, str]:
    """Collation key approximating a locale-aware comparison of owner names.

    Accents and case are ignored for the primary ordering; the raw string
    breaks ties so distinct owners never compare equal.
    """

    decomposed = unicodedata.normalize("NFKD", owner)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold(), owner


@dataclass(slots=True)
class OwnerGroup:
    """Deliveries sharing one owner together with their subtotals."""

    owner: str
    deliveries: List[DeliveryRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.deliveries)

    @property
    def total_weight(self) -> Decimal:
        return total_weight(self.deliveries)

    @property
    def total_expenses(self) -> Decimal:
        return total_expenses(self.deliveries)


def group_by_owner(deliveries: Iterable[DeliveryRecord]) -> List[OwnerGroup]:
    """Partition deliveries by owner, ordering groups by owner name.

    Members keep the order in which they appear in ``deliveries`` so a column
    sort applied beforehand is preserved inside every group.
    """

    groups: Dict[str, OwnerGroup] = {}
    for delivery in deliveries:
        group = groups.get(delivery.owner)
        if group is None:
            group = groups[delivery.owner] = OwnerGroup(owner=delivery.owner)
        group.deliveries.append(delivery)
    return [groups[owner] for owner in sorted(groups, key=owner_sort_key)]


def unique_owners(deliveries: Iterable[DeliveryRecord]) -> List[str]:
    """Return the distinct owner names in collation order."""

    return sorted({d.owner for d in deliveries if d.owner}, key=owner_sort_key)


@dataclass(slots=True)
class DashboardMetrics:
    total_deliveries: int
    total_weight: Decimal
    active_trucks: int
    recent_activity: int


def compute_dashboard_metrics(
    deliveries: Sequence[DeliveryRecord], today: Optional[date] = None
) -> DashboardMetrics:
    """Headline figures shown above the delivery table.

    Active trucks are the distinct plates loaded within
    :data:`ACTIVE_TRUCK_DAYS`; recent activity counts deliveries created (or,
    lacking a creation stamp, loaded) within :data:`RECENT_ACTIVITY_DAYS`.
    """

    today = today or date.today()
    active_threshold = today - timedelta(days=ACTIVE_TRUCK_DAYS)
    recent_threshold = today - timedelta(days=RECENT_ACTIVITY_DAYS)

    active_plates = {
        d.plate_number for d in deliveries if d.loading_date >= active_threshold
    }
    recent = 0
    for delivery in deliveries:
        reference = delivery.created_at or delivery.loading_date
        if isinstance(reference, datetime):
            reference = reference.date()
        if reference >= recent_threshold:
            recent += 1
    return DashboardMetrics(
        total_deliveries=len(deliveries),
        total_weight=total_weight(deliveries),
        active_trucks=len(active_plates),
        recent_activity=recent,
    )
