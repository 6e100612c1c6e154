from __future__ import annotations

from datetime import date

from flask import Blueprint, Response, request

from giftops.application.invoice_service import InvoiceService
from giftops.application.order_service import OrderService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.policies import ADMIN, DISPATCH_MANAGER, FINANCE_MANAGER, require_roles
from giftops.validation import clean_text, parse_csv_values
from giftops.workflow.csv_export import invoices_csv, orders_csv


export_bp = Blueprint("exports", __name__)

_ORDER_SERVICE = OrderService()
_INVOICE_SERVICE = InvoiceService()
_EXPORT_LIMIT = 5000


@export_bp.route("/api/exports/orders.csv", methods=["GET"])
def export_orders_csv():
    actor = current_actor()
    require_roles(actor.role, ADMIN, FINANCE_MANAGER, DISPATCH_MANAGER)
    statuses = parse_csv_values(request.args.get("status"))
    orders = _ORDER_SERVICE.list_orders(get_db(), actor, statuses=statuses or None, limit=_EXPORT_LIMIT)
    return _csv_response(orders_csv(orders), "orders")


@export_bp.route("/api/exports/invoices.csv", methods=["GET"])
def export_invoices_csv():
    actor = current_actor()
    require_roles(actor.role, ADMIN, FINANCE_MANAGER)
    list_filter = clean_text(request.args.get("filter")) or "all"
    invoices = _INVOICE_SERVICE.list_invoices(get_db(), actor, list_filter)
    return _csv_response(invoices_csv(invoices), "invoices")


def _csv_response(body: str, name: str) -> Response:
    filename = f"{name}-{date.today().isoformat()}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
