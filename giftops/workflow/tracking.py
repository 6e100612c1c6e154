from __future__ import annotations

from typing import Any, Dict

from giftops.errors import NotFoundError


def _gift_flag(order: Dict[str, Any], key: str, default: bool) -> bool:
    details = order.get("gift_details") or {}
    return bool(details.get(key, default))


def public_order_view(order: Dict[str, Any]) -> Dict[str, Any]:
    """Reduced order view for the public tracking link.

    The link is shared with gift recipients, so a gift is only visible when
    the sender allowed tracking, and prices are hidden unless the sender
    opted in.
    """
    is_gift = bool(order.get("is_gift"))
    if is_gift and not _gift_flag(order, "recipient_can_view_and_track", True):
        raise NotFoundError(code="tracking_unavailable", message_key="tracking_unavailable")

    show_prices = not is_gift or _gift_flag(order, "show_prices_to_recipient", False)
    items = []
    for item in order.get("items") or []:
        entry = {"name": item.get("name"), "quantity": item.get("quantity")}
        if show_prices:
            entry["price"] = item.get("price")
        items.append(entry)

    view: Dict[str, Any] = {
        "id": order["id"],
        "status": order.get("status"),
        "created_at": order.get("created_at"),
        "estimated_delivery_time": order.get("estimated_delivery_time"),
        "actual_delivery_time": order.get("actual_delivery_time"),
        "shipping_method_name": order.get("shipping_method_name"),
        "rider_name": order.get("rider_name"),
        "items": items,
        "history": [
            {"status": entry.get("status"), "timestamp": entry.get("timestamp"), "notes": entry.get("notes")}
            for entry in order.get("delivery_history") or []
        ],
        "prices_visible": show_prices,
    }
    if show_prices:
        view["sub_total"] = order.get("sub_total")
        view["shipping_cost"] = order.get("shipping_cost")
        view["total_amount"] = order.get("total_amount")
    if is_gift:
        details = order.get("gift_details") or {}
        view["gift"] = {"recipient_name": details.get("recipient_name"), "gift_message": details.get("gift_message")}
    return view
