from __future__ import annotations

import csv
import io
from typing import Any, Callable, Iterable, List, Sequence, Tuple


CSV_BOM = "\ufeff"

Column = Tuple[str, Callable[[dict], Any]]


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def render_csv(columns: Sequence[Column], records: Iterable[dict]) -> str:
    """BOM-prefixed CSV with CRLF row endings and RFC 4180 quoting.

    Rows are built from the column getters, so every row has exactly as many
    fields as the header.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow([header for header, _ in columns])
    for record in records:
        writer.writerow([format_cell(getter(record)) for _, getter in columns])
    return CSV_BOM + buffer.getvalue()


def _items_summary(items: List[dict] | None) -> str:
    parts = []
    for item in items or []:
        name = item.get("name") or item.get("description") or item.get("product_id") or ""
        parts.append(f"{name} x{item.get('quantity', 0)}")
    return "; ".join(parts)


def _address_line(address: dict | None) -> str:
    if not address:
        return ""
    fields = ("address_line1", "address_line2", "city", "county")
    return ", ".join(str(address[key]) for key in fields if address.get(key))


ORDER_COLUMNS: List[Column] = [
    ("Order ID", lambda order: order["id"]),
    ("Created At", lambda order: order.get("created_at")),
    ("Customer", lambda order: order.get("customer_name")),
    ("Email", lambda order: order.get("customer_email")),
    ("Phone", lambda order: order.get("customer_phone")),
    ("Status", lambda order: order.get("status")),
    ("Payment Status", lambda order: order.get("payment_status")),
    ("Payment Method", lambda order: order.get("payment_method")),
    ("Items", lambda order: _items_summary(order.get("items"))),
    ("Subtotal", lambda order: float(order.get("sub_total") or 0)),
    ("Shipping", lambda order: float(order.get("shipping_cost") or 0)),
    ("Total", lambda order: float(order.get("total_amount") or 0)),
    ("Shipping Method", lambda order: order.get("shipping_method_name")),
    ("Address", lambda order: _address_line(order.get("shipping_address"))),
    ("Rider", lambda order: order.get("rider_name")),
    ("Gift", lambda order: bool(order.get("is_gift"))),
    ("Customer Notes", lambda order: order.get("customer_notes")),
]


INVOICE_COLUMNS: List[Column] = [
    ("Invoice Number", lambda invoice: invoice.get("invoice_number")),
    ("Supplier", lambda invoice: invoice.get("supplier_name")),
    ("Client", lambda invoice: invoice.get("client_name")),
    ("Invoice Date", lambda invoice: invoice.get("invoice_date")),
    ("Due Date", lambda invoice: invoice.get("due_date")),
    ("Status", lambda invoice: invoice.get("status")),
    ("Items", lambda invoice: _items_summary(invoice.get("items"))),
    ("Subtotal", lambda invoice: float(invoice.get("sub_total") or 0)),
    ("Tax Rate", lambda invoice: float(invoice.get("tax_rate") or 0)),
    ("Tax", lambda invoice: float(invoice.get("tax_amount") or 0)),
    ("Total", lambda invoice: float(invoice.get("total_amount") or 0)),
    ("Stock Request", lambda invoice: invoice.get("stock_request_id")),
    ("Notes", lambda invoice: invoice.get("notes")),
]


def orders_csv(orders: Iterable[dict]) -> str:
    return render_csv(ORDER_COLUMNS, orders)


def invoices_csv(invoices: Iterable[dict]) -> str:
    return render_csv(INVOICE_COLUMNS, invoices)
