"""Delivery domain models and calculations shared across Fleet apps."""

from .billing import (
    BillingQuote,
    billings_total,
    build_billing,
    generate_invoice_number,
    quote_billing,
    sort_billings,
    validate_rate,
)
from .deliveries import (
    BILLING_STATUSES,
    DEFAULT_DIESEL_PRICE,
    TRUCK_TYPES,
    Billing,
    DeliveryRecord,
    ExpenseRecord,
    FilterCriteria,
    expense_breakdown,
    expense_total,
    normalize_expense,
    to_decimal,
)
from .errors import CalculationPrecondition, DeliveryAppError, ValidationError
from .reporting import (
    DashboardMetrics,
    OwnerGroup,
    compute_dashboard_metrics,
    filter_deliveries,
    group_by_owner,
    sort_deliveries,
    total_expenses,
    total_weight,
    unique_owners,
)

__all__ = [
    "BILLING_STATUSES",
    "DEFAULT_DIESEL_PRICE",
    "TRUCK_TYPES",
    "Billing",
    "BillingQuote",
    "CalculationPrecondition",
    "DashboardMetrics",
    "DeliveryAppError",
    "DeliveryRecord",
    "ExpenseRecord",
    "FilterCriteria",
    "OwnerGroup",
    "ValidationError",
    "billings_total",
    "build_billing",
    "compute_dashboard_metrics",
    "expense_breakdown",
    "expense_total",
    "filter_deliveries",
    "generate_invoice_number",
    "group_by_owner",
    "normalize_expense",
    "quote_billing",
    "sort_billings",
    "sort_deliveries",
    "to_decimal",
    "total_expenses",
    "total_weight",
    "unique_owners",
    "validate_rate",
]
