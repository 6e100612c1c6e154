from __future__ import annotations

import secrets
from datetime import date
from typing import Any, Dict, FrozenSet, List

from giftops.policies import ADMIN, FINANCE_MANAGER, SUPPLIER
from giftops.workflow.transitions import FlowPolicy, Transition


INVOICE_STATUSES = (
    "draft",
    "sent",
    "pending_approval",
    "approved_for_payment",
    "paid",
    "overdue",
    "cancelled",
    "rejected",
    "reconciled",
)
SETTLED_STATUSES: FrozenSet[str] = frozenset({"paid", "cancelled", "rejected", "reconciled"})
LIST_FILTERS = ("all", "overdue", "approved_unpaid") + INVOICE_STATUSES

PAYMENT_METHOD = "Internal Transfer"


def _t(action: str, sources, target: str, roles) -> Transition:
    return Transition(action=action, sources=frozenset(sources), target=target, roles=frozenset(roles))


INVOICE_FLOW = FlowPolicy(
    "invoice",
    [
        _t("approve", {"pending_approval"}, "approved_for_payment", {FINANCE_MANAGER, ADMIN}),
        _t("reject", {"pending_approval"}, "rejected", {FINANCE_MANAGER, ADMIN}),
        _t("mark_paid", {"approved_for_payment", "overdue"}, "paid", {FINANCE_MANAGER, ADMIN}),
        _t("cancel", {"draft", "sent", "pending_approval"}, "cancelled", {SUPPLIER, ADMIN}),
    ],
    terminal=SETTLED_STATUSES,
)


def compute_totals(items: List[Dict[str, Any]], tax_rate: float) -> Dict[str, Any]:
    """Line totals, subtotal, tax and grand total rounded to cents.

    ``total_amount`` is computed from the rounded subtotal and tax so the
    three always add up.
    """
    lines = []
    for item in items:
        quantity = int(item["quantity"])
        unit_price = round(float(item["unit_price"]), 2)
        lines.append(
            {
                "description": item["description"],
                "quantity": quantity,
                "unit_price": unit_price,
                "total_price": round(quantity * unit_price, 2),
            }
        )
    sub_total = round(sum(line["total_price"] for line in lines), 2)
    tax_amount = round(sub_total * float(tax_rate) / 100.0, 2)
    return {
        "items": lines,
        "sub_total": sub_total,
        "tax_rate": float(tax_rate),
        "tax_amount": tax_amount,
        "total_amount": round(sub_total + tax_amount, 2),
    }


def is_overdue(invoice: Dict[str, Any], today: date | None = None) -> bool:
    if invoice.get("status") in SETTLED_STATUSES:
        return False
    if invoice.get("status") == "overdue":
        return True
    due = str(invoice.get("due_date") or "")[:10]
    if not due:
        return False
    try:
        due_date = date.fromisoformat(due)
    except ValueError:
        return False
    return due_date < (today or date.today())


def matches_filter(invoice: Dict[str, Any], list_filter: str, today: date | None = None) -> bool:
    if list_filter in ("", "all"):
        return True
    if list_filter == "overdue":
        return is_overdue(invoice, today)
    if list_filter == "approved_unpaid":
        return invoice.get("status") == "approved_for_payment"
    return invoice.get("status") == list_filter


def generate_invoice_number() -> str:
    return f"INV-{secrets.token_hex(3).upper()}"


def generate_payment_reference() -> str:
    return f"ZE-PAY-{secrets.token_hex(4).upper()}"
