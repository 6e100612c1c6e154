from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from flask import Blueprint, redirect, render_template, url_for

from giftops.application.bulk_order_service import BulkOrderService
from giftops.application.catalog_service import CatalogService
from giftops.application.feedback_service import FeedbackService
from giftops.application.financials_service import FinancialsService
from giftops.application.invoice_service import InvoiceService
from giftops.application.order_service import OrderService
from giftops.application.shipping_service import ShippingService
from giftops.application.stock_request_service import StockRequestService
from giftops.application.task_service import TaskService
from giftops.application.user_service import UserService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.policies import route_allows
from giftops.ui_strings import get_ui_text


pages_bp = Blueprint("pages", __name__)

_ORDER_SERVICE = OrderService()
_USER_SERVICE = UserService()
_CATALOG_SERVICE = CatalogService()
_SHIPPING_SERVICE = ShippingService()
_STOCK_REQUEST_SERVICE = StockRequestService()
_INVOICE_SERVICE = InvoiceService(stock_requests=_STOCK_REQUEST_SERVICE)
_TASK_SERVICE = TaskService(order_service=_ORDER_SERVICE)
_BULK_ORDER_SERVICE = BulkOrderService(order_service=_ORDER_SERVICE)
_FEEDBACK_SERVICE = FeedbackService()
_FINANCIALS_SERVICE = FinancialsService()

Column = Tuple[str, str]

_ORDER_COLUMNS: Sequence[Column] = (
    ("id", "Order"),
    ("customer_name", "Customer"),
    ("status", "Status"),
    ("payment_status", "Payment"),
    ("total_amount", "Total"),
    ("rider_name", "Rider"),
    ("created_at", "Created"),
)
_STOCK_COLUMNS: Sequence[Column] = (
    ("id", "Request"),
    ("product_name", "Product"),
    ("requested_quantity", "Quantity"),
    ("status", "Status"),
    ("supplier_name", "Supplier"),
    ("supplier_price", "Unit price"),
)
_INVOICE_COLUMNS: Sequence[Column] = (
    ("invoice_number", "Invoice"),
    ("supplier_name", "Supplier"),
    ("status", "Status"),
    ("total_amount", "Total"),
    ("due_date", "Due"),
)
_TASK_COLUMNS: Sequence[Column] = (
    ("id", "Task"),
    ("order_id", "Order"),
    ("task_type", "Type"),
    ("assignee_name", "Assignee"),
    ("status", "Status"),
    ("due_date", "Due"),
)

_DISPATCH_STATUSES = ("processing", "awaiting_assignment", "assigned", "out_for_delivery", "delivery_attempted")


def _render_list(page_key: str, status_group: str | None, columns: Sequence[Column], rows: Iterable[dict]):
    return render_template(
        "page.html",
        page_title=get_ui_text(page_key),
        status_group=status_group,
        columns=list(columns),
        rows=list(rows),
    )


@pages_bp.route("/")
def home():
    return redirect(url_for("pages.dashboard"))


@pages_bp.route("/dashboard")
def dashboard():
    actor = current_actor()
    counts = _ORDER_SERVICE.status_counts(get_db(), actor)
    return render_template("dashboard.html", order_counts=counts, links=_dashboard_links(actor.role))


@pages_bp.route("/orders")
def my_orders_page():
    rows = _ORDER_SERVICE.list_orders(get_db(), current_actor())
    return _render_list("page.orders", "order", _ORDER_COLUMNS, rows)


@pages_bp.route("/admin")
@pages_bp.route("/admin/orders")
def admin_orders_page():
    rows = _ORDER_SERVICE.list_orders(get_db(), current_actor())
    return _render_list("page.admin.orders", "order", _ORDER_COLUMNS, rows)


@pages_bp.route("/admin/users")
def admin_users_page():
    rows = _USER_SERVICE.list_users(get_db(), current_actor())
    columns = (
        ("email", "Email"),
        ("display_name", "Name"),
        ("role", "Role"),
        ("status", "Status"),
        ("disabled", "Disabled"),
    )
    return _render_list("page.admin.users", "user", columns, rows)


@pages_bp.route("/admin/products")
def admin_products_page():
    rows = _CATALOG_SERVICE.list_products(get_db(), include_unpublished=True)
    columns = (("name", "Product"), ("price", "Price"), ("stock", "Stock"), ("published", "Published"))
    return _render_list("page.admin.products", None, columns, rows)


@pages_bp.route("/admin/shipping")
def admin_shipping_page():
    rows = _SHIPPING_SERVICE.list_records(get_db(), "rates")
    columns = (("region_id", "Region"), ("method_id", "Method"), ("custom_price", "Price"), ("active", "Active"))
    return _render_list("page.admin.shipping", None, columns, rows)


@pages_bp.route("/admin/bulk-orders")
def admin_bulk_orders_page():
    rows = _BULK_ORDER_SERVICE.list_requests(get_db(), current_actor())
    columns = (("id", "Request"), ("requester_name", "Customer"), ("company_name", "Company"), ("status", "Status"))
    return _render_list("page.admin.bulk_orders", "bulk_order", columns, rows)


@pages_bp.route("/finance")
@pages_bp.route("/finance/orders")
def finance_orders_page():
    rows = _ORDER_SERVICE.list_orders(get_db(), current_actor(), statuses=["pending_finance_approval"])
    return _render_list("page.finance.orders", "order", _ORDER_COLUMNS, rows)


@pages_bp.route("/finance/stock-requests")
def finance_stock_requests_page():
    rows = _STOCK_REQUEST_SERVICE.list_requests(get_db(), current_actor(), statuses=["pending_award"])
    return _render_list("page.finance.stock_requests", "stock_request", _STOCK_COLUMNS, rows)


@pages_bp.route("/finance/invoices")
def finance_invoices_page():
    rows = _INVOICE_SERVICE.list_invoices(get_db(), current_actor())
    return _render_list("page.finance.invoices", "invoice", _INVOICE_COLUMNS, rows)


@pages_bp.route("/finance/financials")
def finance_financials_page():
    summary = _FINANCIALS_SERVICE.summary(get_db(), current_actor())
    columns = (("name", "Product"), ("quantity", "Units sold"), ("revenue", "Revenue"))
    return _render_list("page.finance.financials", None, columns, summary["top_products"])


@pages_bp.route("/dispatch")
def dispatch_page():
    rows = _ORDER_SERVICE.list_orders(get_db(), current_actor(), statuses=_DISPATCH_STATUSES)
    return _render_list("page.dispatch", "order", _ORDER_COLUMNS, rows)


@pages_bp.route("/rider")
def rider_page():
    rows = _ORDER_SERVICE.list_orders(get_db(), current_actor(), statuses=_DISPATCH_STATUSES[2:])
    return _render_list("page.rider", "order", _ORDER_COLUMNS, rows)


@pages_bp.route("/inventory")
def inventory_page():
    rows = _STOCK_REQUEST_SERVICE.list_requests(get_db(), current_actor())
    return _render_list("page.inventory", "stock_request", _STOCK_COLUMNS, rows)


@pages_bp.route("/supplier")
def supplier_page():
    rows = _STOCK_REQUEST_SERVICE.list_requests(get_db(), current_actor())
    return _render_list("page.supplier", "stock_request", _STOCK_COLUMNS, rows)


@pages_bp.route("/supplier/invoices")
def supplier_invoices_page():
    rows = _INVOICE_SERVICE.list_invoices(get_db(), current_actor())
    return _render_list("page.supplier.invoices", "invoice", _INVOICE_COLUMNS, rows)


@pages_bp.route("/service")
def service_page():
    rows = _TASK_SERVICE.list_tasks(get_db(), current_actor())
    return _render_list("page.service", "task", _TASK_COLUMNS, rows)


@pages_bp.route("/tasks")
def tasks_page():
    rows = _TASK_SERVICE.list_tasks(get_db(), current_actor())
    return _render_list("page.tasks", "task", _TASK_COLUMNS, rows)


@pages_bp.route("/feedback")
def feedback_page():
    rows = _FEEDBACK_SERVICE.list_threads(get_db(), current_actor())
    columns = (
        ("subject", "Subject"),
        ("sender_name", "From"),
        ("target_role", "To"),
        ("status", "Status"),
        ("unread", "Unread"),
    )
    return _render_list("page.feedback", "feedback", columns, rows)


def _dashboard_links(role: str) -> List[dict]:
    candidates = (
        ("/orders", "page.orders"),
        ("/admin/orders", "page.admin.orders"),
        ("/admin/users", "page.admin.users"),
        ("/admin/products", "page.admin.products"),
        ("/admin/shipping", "page.admin.shipping"),
        ("/admin/bulk-orders", "page.admin.bulk_orders"),
        ("/finance/orders", "page.finance.orders"),
        ("/finance/stock-requests", "page.finance.stock_requests"),
        ("/finance/invoices", "page.finance.invoices"),
        ("/finance/financials", "page.finance.financials"),
        ("/dispatch", "page.dispatch"),
        ("/rider", "page.rider"),
        ("/inventory", "page.inventory"),
        ("/supplier", "page.supplier"),
        ("/supplier/invoices", "page.supplier.invoices"),
        ("/service", "page.service"),
        ("/tasks", "page.tasks"),
        ("/feedback", "page.feedback"),
    )
    return [{"href": href, "label": get_ui_text(key)} for href, key in candidates if route_allows(href, role)]
