"""HTTP routes for logging deliveries and their expenses."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy.exc import NoResultFound

from packages.fleet_common import (
    TRUCK_TYPES,
    CalculationPrecondition,
    DeliveryRecord,
    FilterCriteria,
    compute_dashboard_metrics,
    expense_breakdown,
    filter_deliveries,
    group_by_owner,
    quote_billing,
    sort_deliveries,
    total_expenses,
    total_weight,
    unique_owners,
)
from packages.fleet_common.reporting import SORT_DIRECTIONS, SORT_FIELDS

from .. import get_repository
from ..errors import PermissionDenied, StoreError, ValidationError
from ..forms import parse_filter_args, require_delivery, require_expense
from ..services import EXPORT_FILENAME, export_csv

deliveries_bp = Blueprint("deliveries", __name__)

DEFAULT_SORT_FIELD = "loading_date"
DEFAULT_SORT_DIRECTION = "desc"


@dataclass(slots=True)
class DeliveryListing:
    """The full list, the active filter and the filtered subset for one request."""

    all_deliveries: List[DeliveryRecord]
    criteria: FilterCriteria
    filtered: List[DeliveryRecord]


def load_filtered_deliveries() -> DeliveryListing:
    """Fetch deliveries from the store and apply the query-string filters.

    Store failures are logged and flashed; the page then renders with an
    empty list instead of failing.
    """

    repo = get_repository()
    try:
        all_deliveries = repo.list_deliveries()
    except StoreError as exc:
        current_app.logger.error("Failed to load deliveries: %s", exc)
        flash("Failed to load deliveries.", "danger")
        all_deliveries = []
    criteria, filter_errors = parse_filter_args(
        request.args, request.args.getlist("owner")
    )
    for message in filter_errors:
        flash(message, "warning")
    return DeliveryListing(
        all_deliveries=all_deliveries,
        criteria=criteria,
        filtered=filter_deliveries(all_deliveries, criteria),
    )


def _sort_state() -> tuple[str, str]:
    sort_field = request.args.get("sort", DEFAULT_SORT_FIELD)
    direction = request.args.get("dir", DEFAULT_SORT_DIRECTION)
    if sort_field not in SORT_FIELDS:
        sort_field = DEFAULT_SORT_FIELD
    if direction not in SORT_DIRECTIONS:
        direction = DEFAULT_SORT_DIRECTION
    return sort_field, direction


def _billing_rate() -> str:
    rate = request.args.get("rate")
    if rate is None and current_app.config.get("DEFAULT_RATE") is not None:
        rate = str(current_app.config["DEFAULT_RATE"])
    return (rate or "").strip()


def _load_or_404(delivery_id: int) -> DeliveryRecord:
    try:
        return get_repository().get_delivery(delivery_id)
    except NoResultFound:
        abort(404)
    except StoreError as exc:
        current_app.logger.error("Failed to load delivery %s: %s", delivery_id, exc)
        abort(503)


def _form_context(delivery: Optional[DeliveryRecord] = None) -> Dict[str, Any]:
    try:
        owners = unique_owners(get_repository().list_deliveries())
    except StoreError as exc:
        current_app.logger.warning("Owner suggestions unavailable: %s", exc)
        owners = []
    return {"delivery": delivery, "truck_types": TRUCK_TYPES, "owners": owners}


@deliveries_bp.get("/")
def index() -> str:
    """Render the dashboard and the filtered, owner-grouped delivery table."""

    listing = load_filtered_deliveries()
    sort_field, direction = _sort_state()
    ordered = sort_deliveries(listing.filtered, sort_field, direction)
    rate = _billing_rate()
    estimate = None
    if rate:
        try:
            estimate = quote_billing(listing.filtered, rate)
        except CalculationPrecondition:
            estimate = None
    return render_template(
        "deliveries/index.html",
        metrics=compute_dashboard_metrics(listing.all_deliveries),
        criteria=listing.criteria,
        owners=unique_owners(listing.all_deliveries),
        groups=group_by_owner(ordered),
        filtered_count=len(listing.filtered),
        filtered_weight=total_weight(listing.filtered),
        filtered_expenses=total_expenses(listing.filtered),
        sort_field=sort_field,
        sort_direction=direction,
        rate=rate,
        estimate=estimate,
    )


@deliveries_bp.get("/deliveries.json")
def list_deliveries_json() -> Response:
    """Return the filtered deliveries and their totals as JSON."""

    listing = load_filtered_deliveries()
    sort_field, direction = _sort_state()
    ordered = sort_deliveries(listing.filtered, sort_field, direction)
    payload = {
        "count": len(ordered),
        "total_weight": float(total_weight(ordered)),
        "total_expenses": float(total_expenses(ordered)),
        "groups": [
            {
                "owner": group.owner,
                "count": group.count,
                "total_weight": float(group.total_weight),
                "total_expenses": float(group.total_expenses),
            }
            for group in group_by_owner(ordered)
        ],
        "deliveries": [_delivery_payload(d) for d in ordered],
    }
    return jsonify(payload)


@deliveries_bp.get("/deliveries/export.csv")
def export_deliveries() -> Response:
    """Download the filtered deliveries as CSV."""

    listing = load_filtered_deliveries()
    sort_field, direction = _sort_state()
    try:
        body = export_csv(sort_deliveries(listing.filtered, sort_field, direction))
    except CalculationPrecondition as exc:
        flash(exc.message, "danger")
        return redirect(url_for("deliveries.index", **request.args.to_dict(flat=False)))
    return Response(
        body,
        mimetype="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'
        },
    )


@deliveries_bp.get("/deliveries/new")
def new_delivery_form() -> str:
    """Render the delivery creation form."""

    return render_template("deliveries/form.html", errors={}, form={}, **_form_context())


@deliveries_bp.post("/deliveries")
def create_delivery() -> Response:
    """Handle creation of a new delivery."""

    try:
        form_data = require_delivery(request.form)
    except ValidationError as exc:
        flash(exc.message, "danger")
        return (
            render_template(
                "deliveries/form.html",
                errors=exc.errors,
                form=request.form,
                **_form_context(),
            ),
            400,
        )
    try:
        saved = get_repository().create_delivery(form_data)
    except StoreError as exc:
        current_app.logger.error("Failed to create delivery: %s", exc)
        flash(f"Error saving the delivery: {exc.message}", "danger")
        return (
            render_template(
                "deliveries/form.html",
                errors={"bond_number": "Error saving. The bond number may already exist."},
                form=request.form,
                **_form_context(),
            ),
            502,
        )
    flash("Delivery created.", "success")
    return redirect(url_for("deliveries.view_delivery", delivery_id=saved.id))


@deliveries_bp.get("/deliveries/<int:delivery_id>")
def view_delivery(delivery_id: int) -> str:
    """Display a delivery with its expense breakdown."""

    delivery = _load_or_404(delivery_id)
    return render_template(
        "deliveries/detail.html",
        delivery=delivery,
        breakdown=expense_breakdown(delivery.expense),
    )


@deliveries_bp.get("/deliveries/<int:delivery_id>/edit")
def edit_delivery_form(delivery_id: int) -> str:
    """Render the edit form pre-filled with the stored values."""

    delivery = _load_or_404(delivery_id)
    return render_template(
        "deliveries/form.html",
        errors={},
        form=_delivery_form_values(delivery),
        **_form_context(delivery),
    )


@deliveries_bp.post("/deliveries/<int:delivery_id>")
def update_delivery(delivery_id: int) -> Response:
    """Replace the editable fields of a delivery."""

    existing = _load_or_404(delivery_id)
    try:
        form_data = require_delivery(request.form)
    except ValidationError as exc:
        flash(exc.message, "danger")
        return (
            render_template(
                "deliveries/form.html",
                errors=exc.errors,
                form=request.form,
                **_form_context(existing),
            ),
            400,
        )
    try:
        get_repository().update_delivery(delivery_id, form_data)
    except NoResultFound:
        abort(404)
    except StoreError as exc:
        current_app.logger.error("Failed to update delivery %s: %s", delivery_id, exc)
        flash(f"Error updating the delivery: {exc.message}", "danger")
        return redirect(url_for("deliveries.edit_delivery_form", delivery_id=delivery_id))
    flash("Delivery updated.", "success")
    return redirect(url_for("deliveries.index"))


@deliveries_bp.post("/deliveries/<int:delivery_id>/delete")
def delete_delivery(delivery_id: int) -> Response:
    """Delete a delivery permanently."""

    try:
        get_repository().delete_delivery(delivery_id)
    except NoResultFound:
        abort(404)
    except PermissionDenied as exc:
        current_app.logger.warning("Delete of delivery %s refused: %s", delivery_id, exc)
        flash(
            "Permission denied: this record cannot be deleted (row-level security).",
            "danger",
        )
        return redirect(url_for("deliveries.index"))
    except StoreError as exc:
        current_app.logger.error("Failed to delete delivery %s: %s", delivery_id, exc)
        flash(exc.message or "Failed to delete the delivery.", "danger")
        return redirect(url_for("deliveries.index"))
    flash("Delivery permanently deleted.", "info")
    return redirect(url_for("deliveries.index"))


@deliveries_bp.get("/deliveries/<int:delivery_id>/expenses")
def expense_form(delivery_id: int) -> str:
    """Render the expense form for a delivery."""

    delivery = _load_or_404(delivery_id)
    return render_template(
        "deliveries/expenses.html",
        delivery=delivery,
        errors={},
        form=_expense_form_values(delivery),
        breakdown=expense_breakdown(delivery.expense),
    )


@deliveries_bp.post("/deliveries/<int:delivery_id>/expenses")
def save_expenses(delivery_id: int) -> Response:
    """Create or replace the expense record of a delivery."""

    delivery = _load_or_404(delivery_id)
    try:
        expense = require_expense(request.form, delivery_id)
    except ValidationError as exc:
        flash(exc.message, "danger")
        return (
            render_template(
                "deliveries/expenses.html",
                delivery=delivery,
                errors=exc.errors,
                form=request.form,
                breakdown=expense_breakdown(delivery.expense),
            ),
            400,
        )
    try:
        get_repository().upsert_expense(expense)
    except NoResultFound:
        abort(404)
    except StoreError as exc:
        current_app.logger.error("Failed to save expenses for %s: %s", delivery_id, exc)
        flash("Error saving the expenses.", "danger")
        return redirect(url_for("deliveries.expense_form", delivery_id=delivery_id))
    flash("Expenses saved.", "success")
    return redirect(url_for("deliveries.index"))


def _delivery_form_values(delivery: DeliveryRecord) -> Dict[str, str]:
    return {
        "plate_number": delivery.plate_number,
        "driver_names": delivery.driver_names,
        "loading_date": delivery.loading_date.isoformat(),
        "unloading_date": delivery.unloading_date.isoformat(),
        "weight_loaded": str(delivery.weight_loaded),
        "bond_number": delivery.bond_number,
        "owner": delivery.owner,
        "truck_type": delivery.truck_type,
    }


def _expense_form_values(delivery: DeliveryRecord) -> Dict[str, str]:
    expense = delivery.expense
    if expense is None:
        return {"diesel_price_unit": "755"}
    return {
        "road_costs": str(expense.road_costs),
        "diesel_liters": str(expense.diesel_liters),
        "diesel_price_unit": ""
        if expense.diesel_price_unit is None
        else str(expense.diesel_price_unit),
        "toll_costs": str(expense.toll_costs),
        "extra_costs": str(expense.extra_costs),
        "extra_description": expense.extra_description,
    }


def _number(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def _delivery_payload(delivery: DeliveryRecord) -> Dict[str, Any]:
    expense = delivery.expense
    return {
        "id": delivery.id,
        "plate_number": delivery.plate_number,
        "driver_names": delivery.driver_names,
        "loading_date": delivery.loading_date.isoformat(),
        "unloading_date": delivery.unloading_date.isoformat(),
        "weight_loaded": float(delivery.weight_loaded),
        "bond_number": delivery.bond_number,
        "owner": delivery.owner,
        "truck_type": delivery.truck_type,
        "billing_id": delivery.billing_id,
        "created_at": delivery.created_at.isoformat() if delivery.created_at else None,
        "expenses_total": float(delivery.expenses_total),
        "expense": None
        if expense is None
        else {
            "id": expense.id,
            "road_costs": _number(expense.road_costs),
            "diesel_liters": _number(expense.diesel_liters),
            "diesel_price_unit": _number(expense.diesel_price_unit),
            "toll_costs": _number(expense.toll_costs),
            "extra_costs": _number(expense.extra_costs),
            "extra_description": expense.extra_description,
        },
    }
