"""Tonnage-based billing calculations.

An invoice is priced per metric ton over a selection of deliveries,
usually the currently filtered list. :func:`quote_billing` performs the
arithmetic and :func:`build_billing` turns a quote into the
:class:`~packages.fleet_common.deliveries.Billing` row that gets stored.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .deliveries import Billing, DeliveryRecord, to_decimal
from .errors import CalculationPrecondition
from .reporting import total_weight

KG_PER_TON = Decimal("1000")
# Matches the scale of the stored price_per_ton column.
RATE_QUANTUM = Decimal("0.01")
INVOICE_PREFIX = "INV"


@dataclass(slots=True)
class BillingQuote:
    """Totals for a prospective invoice."""

    delivery_ids: Tuple[int, ...]
    total_weight_kg: Decimal
    rate: Decimal

    @property
    def delivery_count(self) -> int:
        return len(self.delivery_ids)

    @property
    def tons(self) -> Decimal:
        return self.total_weight_kg / KG_PER_TON

    @property
    def amount(self) -> Decimal:
        return self.tons * self.rate


def validate_rate(rate: Any) -> Decimal:
    """Return ``rate`` as a positive :class:`Decimal`.

    Raises:
        CalculationPrecondition: If the rate is missing, not numeric, not
            strictly positive, or has more than two decimal places.
    """

    try:
        value = to_decimal(rate)
    except ValueError as exc:
        raise CalculationPrecondition("Please enter a valid price per ton.") from exc
    if value <= 0:
        raise CalculationPrecondition("Please enter a valid price per ton.")
    try:
        quantized = value.quantize(RATE_QUANTUM)
    except InvalidOperation as exc:
        raise CalculationPrecondition("Please enter a valid price per ton.") from exc
    if quantized != value:
        raise CalculationPrecondition(
            "The price per ton can have at most two decimal places."
        )
    return quantized


def quote_billing(deliveries: Sequence[DeliveryRecord], rate: Any) -> BillingQuote:
    """Price ``deliveries`` at ``rate`` per ton.

    ``tons = total_weight_kg / 1000`` and ``amount = tons * rate``. The rate
    is checked first so nothing reaches the store when it is not positive.
    """

    price = validate_rate(rate)
    return BillingQuote(
        delivery_ids=tuple(d.id for d in deliveries if d.id is not None),
        total_weight_kg=total_weight(deliveries),
        rate=price,
    )


def generate_invoice_number(
    today: Optional[date] = None, rng: Optional[random.Random] = None
) -> str:
    """Return an ``INV-YYYYMMDD-NNNN`` label.

    The suffix is four random digits, so two invoices raised on the same day
    can share a number. The label is informational and the store does not
    enforce uniqueness.
    """

    today = today or date.today()
    suffix = (rng or random).randint(0, 9999)
    return f"{INVOICE_PREFIX}-{today:%Y%m%d}-{suffix:04d}"


def build_billing(quote: BillingQuote, billing_number: str) -> Billing:
    """Create the pending :class:`Billing` recorded for ``quote``."""

    if not quote.delivery_ids:
        raise CalculationPrecondition("There are no deliveries to invoice.")
    return Billing(
        billing_number=billing_number,
        total_weight=quote.tons,
        price_per_ton=quote.rate,
        total_amount=quote.amount,
        status="pending",
        notes=f"Invoice for {quote.delivery_count} deliveries",
    )


BILLING_SORT_FIELDS: Dict[str, Callable[[Billing], Any]] = {
    "created_at": lambda b: b.created_at,
    "total_amount": lambda b: b.total_amount,
    "status": lambda b: (b.status or "").lower(),
    "billing_number": lambda b: (b.billing_number or "").lower(),
}


def sort_billings(
    billings: Iterable[Billing], sort_field: str = "created_at", direction: str = "desc"
) -> List[Billing]:
    """Order the billing history on one column; unknown columns raise ``ValueError``."""

    if sort_field not in BILLING_SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {sort_field}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction: {direction}")
    key = BILLING_SORT_FIELDS[sort_field]
    rows = list(billings)
    present = [b for b in rows if key(b) is not None]
    missing = [b for b in rows if key(b) is None]
    return sorted(present, key=key, reverse=direction == "desc") + missing


def billings_total(billings: Iterable[Billing]) -> Decimal:
    """Sum ``total_amount`` over the billing history."""

    return sum((to_decimal(b.total_amount) for b in billings), Decimal())
