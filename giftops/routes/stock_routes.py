from __future__ import annotations

from flask import Blueprint, jsonify, request

from giftops.application.stock_request_service import StockRequestService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.domain.contracts import BidInput, StockRequestCreateInput
from giftops.validation import clean_text, parse_csv_values, parse_optional_float, parse_optional_int


stock_bp = Blueprint("stock", __name__)

_STOCK_REQUEST_SERVICE = StockRequestService()


@stock_bp.route("/api/stock-requests", methods=["GET", "POST"])
def stock_requests_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        record = _STOCK_REQUEST_SERVICE.create(
            db,
            actor,
            StockRequestCreateInput(
                product_id=clean_text(payload.get("product_id")),
                requested_quantity=payload.get("requested_quantity"),
                notes=payload.get("notes"),
            ),
        )
        return jsonify(record), 201

    statuses = parse_csv_values(request.args.get("status"))
    return jsonify({"items": _STOCK_REQUEST_SERVICE.list_requests(db, actor, statuses=statuses or None)}), 200


@stock_bp.route("/api/stock-requests/<string:request_id>", methods=["GET"])
def stock_request_detail_api(request_id: str):
    return jsonify(_STOCK_REQUEST_SERVICE.get_request(get_db(), current_actor(), request_id)), 200


@stock_bp.route("/api/stock-requests/<string:request_id>/bids", methods=["POST"])
def submit_bid_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    bid_input = BidInput(
        price_per_unit=parse_optional_float(payload.get("price_per_unit")),
        tax_rate=parse_optional_float(payload.get("tax_rate")),
        notes=payload.get("notes"),
    )
    record = _STOCK_REQUEST_SERVICE.submit_bid(get_db(), current_actor(), request_id, bid_input)
    return jsonify(record), 201


@stock_bp.route("/api/stock-requests/<string:request_id>/award", methods=["POST"])
def award_bid_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _STOCK_REQUEST_SERVICE.award(
        get_db(),
        current_actor(),
        request_id,
        parse_optional_int(payload.get("bid_id")),
        notes=payload.get("notes"),
    )
    return jsonify(record), 200


@stock_bp.route("/api/stock-requests/<string:request_id>/reject", methods=["POST"])
def reject_stock_request_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _STOCK_REQUEST_SERVICE.reject(get_db(), current_actor(), request_id, payload.get("reason"))
    return jsonify(record), 200


@stock_bp.route("/api/stock-requests/<string:request_id>/accept", methods=["POST"])
def accept_award_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _STOCK_REQUEST_SERVICE.accept_award(get_db(), current_actor(), request_id, payload.get("notes"))
    return jsonify(record), 200


@stock_bp.route("/api/stock-requests/<string:request_id>/receive", methods=["POST"])
def receive_stock_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _STOCK_REQUEST_SERVICE.receive(
        get_db(),
        current_actor(),
        request_id,
        payload.get("received_quantity"),
        notes=payload.get("notes"),
    )
    return jsonify(record), 200


@stock_bp.route("/api/stock-requests/<string:request_id>/cancel", methods=["POST"])
def cancel_stock_request_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _STOCK_REQUEST_SERVICE.cancel(get_db(), current_actor(), request_id, payload.get("reason"))
    return jsonify(record), 200
