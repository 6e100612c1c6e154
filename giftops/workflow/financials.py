from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Tuple


REVENUE_SOURCES: List[Tuple[str, str]] = [
    ("product_sales", "Product Sales"),
    ("customizations", "Customizations"),
    ("delivery_fees", "Delivery Fees"),
]
TOP_PRODUCTS_LIMIT = 5


def _day(raw_value: Any) -> date | None:
    text = str(raw_value or "").strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _in_period(day: date | None, start: date | None, end: date | None) -> bool:
    if day is None:
        return False
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def _amount(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def paid_orders_in_period(orders: Iterable[dict], start: date | None, end: date | None) -> List[dict]:
    return [
        order
        for order in orders
        if order.get("payment_status") == "paid" and _in_period(_day(order.get("created_at")), start, end)
    ]


def paid_invoices_in_period(invoices: Iterable[dict], start: date | None, end: date | None) -> List[dict]:
    return [
        invoice
        for invoice in invoices
        if invoice.get("status") == "paid" and _in_period(_day(invoice.get("invoice_date")), start, end)
    ]


def revenue_breakdown(orders: Iterable[dict], base_prices: Mapping[str, float]) -> List[Dict[str, Any]]:
    """Split paid revenue into catalog price, customization surcharges and shipping.

    Lines whose product left the catalog count entirely as product sales.
    """
    totals = {key: 0.0 for key, _ in REVENUE_SOURCES}
    for order in orders:
        totals["delivery_fees"] += _amount(order.get("shipping_cost"))
        for item in order.get("items") or []:
            quantity = int(item.get("quantity") or 0)
            line_price = _amount(item.get("price"))
            base_price = _amount(base_prices.get(item.get("product_id"), line_price))
            totals["product_sales"] += base_price * quantity
            surcharge = (line_price - base_price) * quantity
            if surcharge > 0:
                totals["customizations"] += surcharge
    return [
        {"source": key, "label": label, "value": round(totals[key], 2)}
        for key, label in REVENUE_SOURCES
        if totals[key] > 0
    ]


def top_products(orders: Iterable[dict], limit: int = TOP_PRODUCTS_LIMIT) -> List[Dict[str, Any]]:
    aggregated: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        for item in order.get("items") or []:
            product_id = str(item.get("product_id") or "")
            quantity = int(item.get("quantity") or 0)
            entry = aggregated.setdefault(
                product_id,
                {"product_id": product_id, "name": item.get("name"), "revenue": 0.0, "quantity": 0},
            )
            entry["revenue"] += _amount(item.get("price")) * quantity
            entry["quantity"] += quantity
    ranked = sorted(aggregated.values(), key=lambda entry: -entry["revenue"])[:limit]
    return [{**entry, "revenue": round(entry["revenue"], 2)} for entry in ranked]


def monthly_totals(orders: Iterable[dict], invoices: Iterable[dict]) -> List[Dict[str, Any]]:
    months: Dict[str, Dict[str, float]] = {}
    for order in orders:
        key = order["created_at"][:7]
        months.setdefault(key, {"revenue": 0.0, "expenses": 0.0})["revenue"] += _amount(order.get("total_amount"))
    for invoice in invoices:
        key = invoice["invoice_date"][:7]
        months.setdefault(key, {"revenue": 0.0, "expenses": 0.0})["expenses"] += _amount(invoice.get("total_amount"))
    return [
        {
            "month": key,
            "revenue": round(values["revenue"], 2),
            "expenses": round(values["expenses"], 2),
            "net": round(values["revenue"] - values["expenses"], 2),
        }
        for key, values in sorted(months.items())
    ]


def _chart_month(orders: List[dict], invoices: List[dict], end: date | None, today: date) -> date:
    if end:
        return end
    days = [_day(order.get("created_at")) for order in orders] + [_day(invoice.get("invoice_date")) for invoice in invoices]
    days = [day for day in days if day is not None]
    return max(days) if days else today


def daily_series(orders: List[dict], invoices: List[dict], month_of: date, today: date) -> List[Dict[str, Any]]:
    """Per-day revenue and expenses for the month containing ``month_of``.

    The current month stops at ``today``.
    """
    first = month_of.replace(day=1)
    last = month_of.replace(day=calendar.monthrange(month_of.year, month_of.month)[1])
    if first <= today <= last:
        last = today
    series: Dict[date, Dict[str, float]] = {}
    current = first
    while current <= last:
        series[current] = {"revenue": 0.0, "expenses": 0.0}
        current += timedelta(days=1)
    for order in orders:
        day = _day(order.get("created_at"))
        if day in series:
            series[day]["revenue"] += _amount(order.get("total_amount"))
    for invoice in invoices:
        day = _day(invoice.get("invoice_date"))
        if day in series:
            series[day]["expenses"] += _amount(invoice.get("total_amount"))
    return [
        {"day": day.isoformat(), "revenue": round(values["revenue"], 2), "expenses": round(values["expenses"], 2)}
        for day, values in series.items()
    ]


def build_financial_summary(
    orders: Iterable[dict],
    invoices: Iterable[dict],
    base_prices: Mapping[str, float],
    *,
    start: date | None = None,
    end: date | None = None,
    today: date | None = None,
) -> Dict[str, Any]:
    """Revenue from paid orders against expenses from paid supplier invoices.

    Orders are dated by ``created_at`` and invoices by ``invoice_date``; both
    bounds are inclusive days.
    """
    today = today or date.today()
    paid_orders = paid_orders_in_period(orders, start, end)
    paid_invoices = paid_invoices_in_period(invoices, start, end)

    total_revenue = sum(_amount(order.get("total_amount")) for order in paid_orders)
    total_expenses = sum(_amount(invoice.get("total_amount")) for invoice in paid_invoices)
    chart_month = _chart_month(paid_orders, paid_invoices, end, today)
    daily = daily_series(paid_orders, paid_invoices, chart_month, today)

    return {
        "period": {
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
        },
        "total_revenue": round(total_revenue, 2),
        "sales_count": len(paid_orders),
        "total_expenses": round(total_expenses, 2),
        "net_profit": round(total_revenue - total_expenses, 2),
        "monthly": monthly_totals(paid_orders, paid_invoices),
        "chart_month": chart_month.strftime("%Y-%m"),
        "daily": daily,
        "chart_month_net_change": round(sum(row["revenue"] - row["expenses"] for row in daily), 2),
        "revenue_breakdown": revenue_breakdown(paid_orders, base_prices),
        "top_products": top_products(paid_orders),
    }
