from __future__ import annotations

from typing import FrozenSet

from giftops.policies import (
    ADMIN,
    CUSTOMER,
    DISPATCH_MANAGER,
    FINANCE_MANAGER,
    RIDER,
    SERVICE_MANAGER,
    TECHNICIAN_ROLES,
)
from giftops.ui_strings import status_keys_for_group
from giftops.workflow.transitions import FlowPolicy, Transition


ORDER_STATUSES = status_keys_for_group("order")
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"delivered", "cancelled"})
OPEN_STATUSES: FrozenSet[str] = frozenset(ORDER_STATUSES) - TERMINAL_STATUSES
CUSTOMER_CANCELLABLE: FrozenSet[str] = frozenset({"pending", "pending_finance_approval"})

PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("cod", "mpesa", "card")
PREPAID_METHODS: FrozenSet[str] = frozenset({"mpesa", "card"})

# Actions a rider may only perform on orders assigned to them.
RIDER_BOUND_ACTIONS: FrozenSet[str] = frozenset({"start_delivery", "mark_attempted", "retry_delivery", "mark_delivered"})


def _t(action: str, sources, target: str, roles) -> Transition:
    return Transition(action=action, sources=frozenset(sources), target=target, roles=frozenset(roles))


ORDER_FLOW = FlowPolicy(
    "order",
    [
        _t("submit_for_approval", {"pending"}, "pending_finance_approval", {CUSTOMER, ADMIN}),
        _t("approve_payment", {"pending_finance_approval"}, "processing", {FINANCE_MANAGER, ADMIN}),
        _t("reject_payment", {"pending_finance_approval"}, "cancelled", {FINANCE_MANAGER, ADMIN}),
        _t(
            "start_production",
            {"processing"},
            "in_production",
            TECHNICIAN_ROLES | {SERVICE_MANAGER, ADMIN},
        ),
        _t(
            "complete_production",
            {"processing", "in_production"},
            "awaiting_assignment",
            {SERVICE_MANAGER, DISPATCH_MANAGER, ADMIN},
        ),
        _t("assign_rider", {"awaiting_assignment"}, "assigned", {DISPATCH_MANAGER, ADMIN}),
        _t("start_delivery", {"assigned"}, "out_for_delivery", {RIDER}),
        _t("mark_attempted", {"out_for_delivery"}, "delivery_attempted", {RIDER, DISPATCH_MANAGER, ADMIN}),
        _t("retry_delivery", {"delivery_attempted"}, "out_for_delivery", {RIDER, DISPATCH_MANAGER, ADMIN}),
        _t("mark_delivered", {"out_for_delivery", "shipped"}, "delivered", {RIDER, DISPATCH_MANAGER, ADMIN}),
        _t("ship", {"processing", "awaiting_assignment"}, "shipped", {DISPATCH_MANAGER, ADMIN}),
        _t("cancel", OPEN_STATUSES, "cancelled", {DISPATCH_MANAGER, FINANCE_MANAGER, ADMIN, CUSTOMER}),
    ],
    terminal=TERMINAL_STATUSES,
)

# Actions exposed on the generic transition endpoint; the rest have dedicated routes.
GENERIC_ACTIONS: FrozenSet[str] = frozenset(
    {
        "submit_for_approval",
        "start_production",
        "complete_production",
        "start_delivery",
        "mark_attempted",
        "retry_delivery",
        "mark_delivered",
        "ship",
    }
)
