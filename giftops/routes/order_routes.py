from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, jsonify, request

from giftops.application.bulk_order_service import BulkOrderService
from giftops.application.checkout_service import CheckoutService
from giftops.application.order_service import OrderService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.domain.contracts import CartLine, CheckoutInput, GiftDetails
from giftops.errors import validation_failed
from giftops.validation import clean_text, parse_csv_values, parse_int, parse_optional_float, positive_int, required_text


order_bp = Blueprint("orders", __name__)

_ORDER_SERVICE = OrderService()
_CHECKOUT_SERVICE = CheckoutService()
_BULK_ORDER_SERVICE = BulkOrderService(order_service=_ORDER_SERVICE)


@order_bp.route("/api/orders", methods=["GET", "POST"])
def orders_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        order = _CHECKOUT_SERVICE.checkout(db, actor, _checkout_input(payload))
        return jsonify(order), 201

    limit = parse_int(request.args.get("limit"), default=200, min_value=1, max_value=500)
    statuses = parse_csv_values(request.args.get("status"))
    return jsonify({"items": _ORDER_SERVICE.list_orders(db, actor, statuses=statuses or None, limit=limit)}), 200


@order_bp.route("/api/orders/<string:order_id>", methods=["GET"])
def order_detail_api(order_id: str):
    return jsonify(_ORDER_SERVICE.get_order(get_db(), current_actor(), order_id)), 200


@order_bp.route("/api/orders/<string:order_id>/transitions", methods=["POST"])
def order_transition_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _ORDER_SERVICE.transition(
        get_db(),
        current_actor(),
        order_id,
        clean_text(payload.get("action")),
        notes=payload.get("notes"),
        lat=parse_optional_float(payload.get("lat")),
        lng=parse_optional_float(payload.get("lng")),
    )
    return jsonify(order), 200


@order_bp.route("/api/orders/<string:order_id>/payment/approve", methods=["POST"])
def approve_payment_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_ORDER_SERVICE.approve_payment(get_db(), current_actor(), order_id, payload.get("notes"))), 200


@order_bp.route("/api/orders/<string:order_id>/payment/reject", methods=["POST"])
def reject_payment_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_ORDER_SERVICE.reject_payment(get_db(), current_actor(), order_id, payload.get("reason"))), 200


@order_bp.route("/api/orders/<string:order_id>/assign", methods=["POST"])
def assign_rider_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _ORDER_SERVICE.assign_rider(
        get_db(),
        current_actor(),
        order_id,
        payload.get("rider_id"),
        notes=payload.get("notes"),
    )
    return jsonify(order), 200


@order_bp.route("/api/orders/<string:order_id>/cancel", methods=["POST"])
def cancel_order_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_ORDER_SERVICE.cancel(get_db(), current_actor(), order_id, payload.get("reason"))), 200


@order_bp.route("/api/orders/<string:order_id>/refund", methods=["POST"])
def refund_order_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_ORDER_SERVICE.refund(get_db(), current_actor(), order_id, payload.get("reason"))), 200


@order_bp.route("/api/orders/<string:order_id>/rating", methods=["POST"])
def rate_order_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    order = _ORDER_SERVICE.rate(get_db(), current_actor(), order_id, payload.get("value"), payload.get("comment"))
    return jsonify(order), 200


@order_bp.route("/api/orders/<string:order_id>/color", methods=["PUT", "DELETE"])
def order_color_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    value = None if request.method == "DELETE" else payload.get("color")
    return jsonify(_ORDER_SERVICE.set_color(get_db(), current_actor(), order_id, value)), 200


@order_bp.route("/api/orders/<string:order_id>/route", methods=["GET"])
def order_route_api(order_id: str):
    return jsonify(_ORDER_SERVICE.route(get_db(), current_actor(), order_id)), 200


@order_bp.route("/api/orders/<string:order_id>/confirm-bulk", methods=["POST"])
def confirm_bulk_order_api(order_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_BULK_ORDER_SERVICE.confirm(get_db(), current_actor(), order_id, payload)), 200


@order_bp.route("/api/track/orders/<string:order_id>", methods=["GET"])
def track_order_api(order_id: str):
    view = _ORDER_SERVICE.tracking_view(get_db(), order_id)
    return jsonify(view), 200


def _checkout_input(payload: Dict[str, Any]) -> CheckoutInput:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise validation_failed("items_required", "items")
    items: List[CartLine] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise validation_failed("items_required", "items")
        customizations = raw.get("customizations") or {}
        if not isinstance(customizations, dict):
            raise validation_failed("customization_required", "customizations")
        items.append(
            CartLine(
                product_id=required_text(raw.get("product_id"), "product_id"),
                quantity=positive_int(raw.get("quantity"), "quantity"),
                customizations=customizations,
            )
        )

    address = payload.get("shipping_address")
    if not isinstance(address, dict) or not address:
        raise validation_failed("field_required", "shipping_address")

    return CheckoutInput(
        items=items,
        shipping_address=address,
        shipping_region_id=required_text(payload.get("shipping_region_id"), "shipping_region_id"),
        shipping_method_id=required_text(payload.get("shipping_method_id"), "shipping_method_id"),
        payment_method=clean_text(payload.get("payment_method")).lower(),
        customer_phone=clean_text(payload.get("customer_phone")),
        customer_notes=clean_text(payload.get("customer_notes")) or None,
        gift_details=_gift_details(payload.get("gift_details")),
        delivery_lat=parse_optional_float(payload.get("delivery_lat")),
        delivery_lng=parse_optional_float(payload.get("delivery_lng")),
    )


def _gift_details(raw: Any) -> GiftDetails | None:
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise validation_failed("field_required", "gift_details")
    return GiftDetails(
        recipient_name=required_text(raw.get("recipient_name"), "recipient_name"),
        recipient_contact_method=clean_text(raw.get("recipient_contact_method")),
        recipient_contact_value=clean_text(raw.get("recipient_contact_value")),
        gift_message=clean_text(raw.get("gift_message")),
        notify_recipient=bool(raw.get("notify_recipient", False)),
        show_prices_to_recipient=bool(raw.get("show_prices_to_recipient", False)),
        recipient_can_view_and_track=bool(raw.get("recipient_can_view_and_track", True)),
    )
