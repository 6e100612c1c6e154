from __future__ import annotations

from typing import FrozenSet, List

from giftops.policies import ADMIN, FINANCE_MANAGER, INVENTORY_MANAGER, SUPPLIER
from giftops.workflow.transitions import FlowPolicy, Transition


BIDDING_STATUSES: FrozenSet[str] = frozenset({"pending_bids", "pending_award"})
TERMINAL_STATUSES: FrozenSet[str] = frozenset({"received", "rejected_finance", "cancelled"})
OPEN_STATUSES: FrozenSet[str] = frozenset(
    {"pending_bids", "pending_award", "awarded", "awaiting_fulfillment", "awaiting_receipt"}
)


def _t(action: str, sources, target: str, roles) -> Transition:
    return Transition(action=action, sources=frozenset(sources), target=target, roles=frozenset(roles))


STOCK_REQUEST_FLOW = FlowPolicy(
    "stock_request",
    [
        _t("submit_bid", BIDDING_STATUSES, "pending_award", {SUPPLIER}),
        _t("award", {"pending_award"}, "awarded", {FINANCE_MANAGER, ADMIN}),
        _t("reject", BIDDING_STATUSES, "rejected_finance", {FINANCE_MANAGER, ADMIN}),
        _t("accept_award", {"awarded"}, "awaiting_fulfillment", {SUPPLIER}),
        _t("fulfill", {"awaiting_fulfillment"}, "awaiting_receipt", {SUPPLIER}),
        _t("receive", {"awaiting_receipt"}, "received", {INVENTORY_MANAGER, ADMIN}),
        _t("cancel", OPEN_STATUSES, "cancelled", {INVENTORY_MANAGER, ADMIN}),
    ],
    terminal=TERMINAL_STATUSES,
)


def best_bid(bids: List[dict]) -> dict | None:
    """Lowest price per unit; ``sorted`` is stable so ties keep submission order."""
    if not bids:
        return None
    return sorted(bids, key=lambda bid: float(bid["price_per_unit"]))[0]
