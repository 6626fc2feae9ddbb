"""Routes for tonnage billing: preview, save and history."""

from __future__ import annotations

import re
from typing import List

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from packages.fleet_common import (
    BILLING_STATUSES,
    CalculationPrecondition,
    build_billing,
    billings_total,
    generate_invoice_number,
    quote_billing,
    sort_billings,
    validate_rate,
)
from packages.fleet_common.billing import BILLING_SORT_FIELDS

from .. import get_repository
from ..errors import StoreError
from ..services import build_invoice_preview, describe_filters
from .deliveries import load_filtered_deliveries

billing_bp = Blueprint("billing", __name__)

INVOICE_NUMBER_PATTERN = re.compile(r"^INV-\d{8}-\d{4}$")


def _filter_args() -> dict:
    """Return the current query string minus billing-only keys."""

    args = request.args.to_dict(flat=False)
    args.pop("rate", None)
    return args


@billing_bp.get("/billing/preview")
def preview() -> Response:
    """Show the invoice that would be raised over the filtered deliveries."""

    listing = load_filtered_deliveries()
    rate = (request.args.get("rate") or "").strip()
    if not rate and current_app.config.get("DEFAULT_RATE") is not None:
        rate = str(current_app.config["DEFAULT_RATE"])
    try:
        quote = quote_billing(listing.filtered, rate)
    except CalculationPrecondition as exc:
        flash(exc.message, "danger")
        return redirect(url_for("deliveries.index", **_filter_args()))
    if not quote.delivery_ids:
        flash("There are no deliveries to invoice.", "warning")
        return redirect(url_for("deliveries.index", **_filter_args()))

    return render_template(
        "billing/preview.html",
        quote=quote,
        deliveries=listing.filtered,
        filters=describe_filters(listing.criteria),
        billing_number=generate_invoice_number(),
        invoice_text=build_invoice_preview(quote, listing.filtered, listing.criteria),
    )


@billing_bp.post("/billing")
def save_billing() -> Response:
    """Persist a billing and link the previewed deliveries to it."""

    rate = request.form.get("rate", "")
    try:
        rate = validate_rate(rate)
    except CalculationPrecondition as exc:
        flash(exc.message, "danger")
        return redirect(url_for("deliveries.index"))

    repo = get_repository()
    billing_number = (request.form.get("billing_number") or "").strip()
    if not INVOICE_NUMBER_PATTERN.match(billing_number):
        billing_number = generate_invoice_number()

    requested: List[int] = []
    for raw in request.form.getlist("delivery_id"):
        try:
            requested.append(int(raw))
        except ValueError:
            current_app.logger.warning("Ignoring malformed delivery id %r", raw)

    try:
        wanted = set(requested)
        selected = [d for d in repo.list_deliveries() if d.id in wanted]
        quote = quote_billing(selected, rate)
        billing = build_billing(quote, billing_number)
        saved = repo.create_billing(billing, list(quote.delivery_ids))
    except CalculationPrecondition as exc:
        flash(exc.message, "danger")
        return redirect(url_for("deliveries.index"))
    except StoreError as exc:
        current_app.logger.error("Failed to save billing %s: %s", billing_number, exc)
        flash("Error saving the invoice.", "danger")
        return redirect(url_for("deliveries.index"))

    flash(f"Invoice {saved.billing_number} saved.", "success")
    return redirect(url_for("billing.history"))


def _history_sort() -> tuple[str, str]:
    sort_field = request.args.get("sort", "created_at")
    direction = request.args.get("dir", "desc")
    if sort_field not in BILLING_SORT_FIELDS:
        sort_field = "created_at"
    if direction not in ("asc", "desc"):
        direction = "desc"
    return sort_field, direction


@billing_bp.get("/billing/history")
def history() -> str:
    """List saved billings with their grand total."""

    sort_field, direction = _history_sort()
    try:
        billings = sort_billings(get_repository().list_billings(), sort_field, direction)
    except StoreError as exc:
        current_app.logger.error("Failed to load billings: %s", exc)
        flash("Failed to load the billing history.", "danger")
        billings = []
    return render_template(
        "billing/history.html",
        billings=billings,
        grand_total=billings_total(billings),
        statuses=BILLING_STATUSES,
        sort_field=sort_field,
        sort_direction=direction,
    )


@billing_bp.get("/billings.json")
def list_billings_json() -> Response:
    """Return the billing history as JSON."""

    sort_field, direction = _history_sort()
    try:
        billings = sort_billings(get_repository().list_billings(), sort_field, direction)
    except StoreError as exc:
        current_app.logger.error("Failed to load billings: %s", exc)
        return jsonify({"error": "Failed to load the billing history."}), 503
    return jsonify(
        {
            "count": len(billings),
            "total_amount": float(billings_total(billings)),
            "billings": [
                {
                    "id": b.id,
                    "billing_number": b.billing_number,
                    "total_weight": float(b.total_weight),
                    "price_per_ton": float(b.price_per_ton),
                    "total_amount": float(b.total_amount),
                    "status": b.status,
                    "notes": b.notes,
                    "created_at": b.created_at.isoformat() if b.created_at else None,
                }
                for b in billings
            ],
        }
    )
