from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from giftops.application.invoice_service import InvoiceService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.domain.contracts import InvoiceCreateInput, InvoiceItemInput
from giftops.errors import validation_failed
from giftops.validation import clean_text, optional_text, parse_optional_float, parse_optional_int
from giftops.validation import tax_rate as parse_tax_rate


invoice_bp = Blueprint("invoices", __name__)

_INVOICE_SERVICE = InvoiceService()


@invoice_bp.route("/api/invoices", methods=["GET", "POST"])
def invoices_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        invoice = _INVOICE_SERVICE.create(db, actor, _invoice_input(payload))
        return jsonify(invoice), 201

    list_filter = clean_text(request.args.get("filter")) or "all"
    return jsonify({"items": _INVOICE_SERVICE.list_invoices(db, actor, list_filter)}), 200


@invoice_bp.route("/api/invoices/<string:invoice_id>", methods=["GET"])
def invoice_detail_api(invoice_id: str):
    return jsonify(_INVOICE_SERVICE.get_invoice(get_db(), current_actor(), invoice_id)), 200


@invoice_bp.route("/api/invoices/<string:invoice_id>/approve", methods=["POST"])
def approve_invoice_api(invoice_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_INVOICE_SERVICE.approve(get_db(), current_actor(), invoice_id, payload.get("notes"))), 200


@invoice_bp.route("/api/invoices/<string:invoice_id>/reject", methods=["POST"])
def reject_invoice_api(invoice_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_INVOICE_SERVICE.reject(get_db(), current_actor(), invoice_id, payload.get("reason"))), 200


@invoice_bp.route("/api/invoices/<string:invoice_id>/pay", methods=["POST"])
def pay_invoice_api(invoice_id: str):
    payload = request.get_json(silent=True) or {}
    invoice = _INVOICE_SERVICE.mark_paid(get_db(), current_actor(), invoice_id, payload.get("transaction_id"))
    return jsonify(invoice), 200


@invoice_bp.route("/api/invoices/<string:invoice_id>/cancel", methods=["POST"])
def cancel_invoice_api(invoice_id: str):
    return jsonify(_INVOICE_SERVICE.cancel(get_db(), current_actor(), invoice_id)), 200


def _invoice_input(payload: Dict[str, Any]) -> InvoiceCreateInput:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise validation_failed("items_required", "items")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise validation_failed("items_required", "items")
        items.append(
            InvoiceItemInput(
                description=clean_text(raw.get("description")),
                quantity=parse_optional_int(raw.get("quantity")),
                unit_price=parse_optional_float(raw.get("unit_price")),
            )
        )

    fulfilled = payload.get("fulfilled_quantity")
    fulfilled_quantity = parse_optional_int(fulfilled)
    if fulfilled not in (None, "") and fulfilled_quantity is None:
        raise validation_failed("fulfilled_quantity_invalid", "fulfilled_quantity")

    return InvoiceCreateInput(
        items=items,
        tax_rate=parse_tax_rate(payload.get("tax_rate")),
        invoice_date=payload.get("invoice_date"),
        due_date=payload.get("due_date"),
        notes=payload.get("notes"),
        stock_request_id=optional_text(payload.get("stock_request_id")),
        fulfilled_quantity=fulfilled_quantity,
    )
