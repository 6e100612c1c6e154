from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from giftops.application.catalog_service import CatalogService
from giftops.application.shipping_service import ShippingService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.policies import ADMIN
from giftops.validation import optional_text


catalog_bp = Blueprint("catalog", __name__)

_CATALOG_SERVICE = CatalogService()
_SHIPPING_SERVICE = ShippingService()


def _admin_view() -> bool:
    actor = getattr(g, "actor", None)
    return bool(actor and actor.role == ADMIN and request.args.get("all") == "1")


@catalog_bp.route("/api/catalog/products", methods=["GET"])
def catalog_products_api():
    products = _CATALOG_SERVICE.list_products(get_db(), include_unpublished=_admin_view())
    return jsonify({"items": products}), 200


@catalog_bp.route("/api/catalog/products/<string:product_id>", methods=["GET"])
def catalog_product_api(product_id: str):
    product = _CATALOG_SERVICE.get_product(get_db(), product_id, include_unpublished=_admin_view())
    return jsonify(product), 200


@catalog_bp.route("/api/catalog/groups", methods=["GET"])
def catalog_groups_api():
    return jsonify({"items": _CATALOG_SERVICE.list_groups(get_db())}), 200


@catalog_bp.route("/api/products", methods=["POST"])
def create_product_api():
    payload = request.get_json(silent=True) or {}
    return jsonify(_CATALOG_SERVICE.create_product(get_db(), current_actor(), payload)), 201


@catalog_bp.route("/api/products/<string:product_id>", methods=["PUT", "PATCH", "DELETE"])
def product_crud_api(product_id: str):
    db = get_db()
    actor = current_actor()
    if request.method == "DELETE":
        _CATALOG_SERVICE.delete_product(db, actor, product_id)
        return jsonify({"deleted": product_id}), 200
    payload = request.get_json(silent=True) or {}
    return jsonify(_CATALOG_SERVICE.update_product(db, actor, product_id, payload)), 200


@catalog_bp.route("/api/customization-groups", methods=["POST"])
def create_group_api():
    payload = request.get_json(silent=True) or {}
    return jsonify(_CATALOG_SERVICE.create_group(get_db(), current_actor(), payload)), 201


@catalog_bp.route("/api/customization-groups/<string:group_id>", methods=["PUT", "PATCH", "DELETE"])
def group_crud_api(group_id: str):
    db = get_db()
    actor = current_actor()
    if request.method == "DELETE":
        _CATALOG_SERVICE.delete_group(db, actor, group_id)
        return jsonify({"deleted": group_id}), 200
    payload = request.get_json(silent=True) or {}
    return jsonify(_CATALOG_SERVICE.update_group(db, actor, group_id, payload)), 200


@catalog_bp.route("/api/shipping/quote", methods=["GET"])
def shipping_quote_api():
    region_id = optional_text(request.args.get("region_id"))
    return jsonify({"region_id": region_id, "methods": _SHIPPING_SERVICE.quote(get_db(), region_id)}), 200


@catalog_bp.route("/api/shipping/<string:kind>", methods=["GET", "POST"])
def shipping_records_api(kind: str):
    db = get_db()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        return jsonify(_SHIPPING_SERVICE.create(db, current_actor(), kind, payload)), 201
    active_only = request.args.get("active") == "1"
    return jsonify({"items": _SHIPPING_SERVICE.list_records(db, kind, active_only=active_only)}), 200


@catalog_bp.route("/api/shipping/<string:kind>/<string:record_id>", methods=["PUT", "PATCH", "DELETE"])
def shipping_record_api(kind: str, record_id: str):
    db = get_db()
    actor = current_actor()
    if request.method == "DELETE":
        _SHIPPING_SERVICE.delete(db, actor, kind, record_id)
        return jsonify({"deleted": record_id}), 200
    payload = request.get_json(silent=True) or {}
    return jsonify(_SHIPPING_SERVICE.update(db, actor, kind, record_id, payload)), 200
