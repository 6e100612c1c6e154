from __future__ import annotations

from flask import Blueprint, jsonify, request

from giftops.application.bulk_order_service import BulkOrderService
from giftops.application.order_service import OrderService
from giftops.application.task_service import TaskService
from giftops.auth import current_actor
from giftops.db import get_db
from giftops.domain.contracts import BulkOrderCreateInput, BulkOrderItemInput, TaskCreateInput
from giftops.errors import validation_failed
from giftops.validation import clean_text, optional_text, parse_csv_values, positive_int, required_text


task_bp = Blueprint("tasks", __name__)

_ORDER_SERVICE = OrderService()
_TASK_SERVICE = TaskService(order_service=_ORDER_SERVICE)
_BULK_ORDER_SERVICE = BulkOrderService(order_service=_ORDER_SERVICE)


@task_bp.route("/api/tasks", methods=["GET", "POST"])
def tasks_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        customizations = payload.get("customizations")
        task = _TASK_SERVICE.create(
            db,
            actor,
            TaskCreateInput(
                order_id=required_text(payload.get("order_id"), "order_id"),
                task_type=clean_text(payload.get("task_type")),
                description=clean_text(payload.get("description")),
                item_name=payload.get("item_name"),
                assignee_id=optional_text(payload.get("assignee_id")),
                due_date=payload.get("due_date"),
                notes=payload.get("notes"),
                customizations=customizations if isinstance(customizations, dict) else None,
            ),
        )
        return jsonify(task), 201

    statuses = parse_csv_values(request.args.get("status"))
    tasks = _TASK_SERVICE.list_tasks(
        db,
        actor,
        order_id=optional_text(request.args.get("order_id")),
        statuses=statuses or None,
    )
    return jsonify({"items": tasks}), 200


@task_bp.route("/api/tasks/<string:task_id>/assign", methods=["POST"])
def assign_task_api(task_id: str):
    payload = request.get_json(silent=True) or {}
    return jsonify(_TASK_SERVICE.assign(get_db(), current_actor(), task_id, payload.get("assignee_id"))), 200


@task_bp.route("/api/tasks/<string:task_id>/transitions", methods=["POST"])
def task_transition_api(task_id: str):
    payload = request.get_json(silent=True) or {}
    task = _TASK_SERVICE.transition(
        get_db(),
        current_actor(),
        task_id,
        clean_text(payload.get("action")),
        notes=payload.get("notes"),
        proof_of_work_url=payload.get("proof_of_work_url"),
    )
    return jsonify(task), 200


@task_bp.route("/api/bulk-orders", methods=["GET", "POST"])
def bulk_orders_api():
    db = get_db()
    actor = current_actor()
    if request.method == "POST":
        payload = request.get_json(silent=True) or {}
        record = _BULK_ORDER_SERVICE.create(db, actor, _bulk_order_input(payload))
        return jsonify(record), 201
    status = optional_text(request.args.get("status"))
    return jsonify({"items": _BULK_ORDER_SERVICE.list_requests(db, actor, status=status)}), 200


@task_bp.route("/api/bulk-orders/<string:request_id>", methods=["GET"])
def bulk_order_detail_api(request_id: str):
    return jsonify(_BULK_ORDER_SERVICE.get_request(get_db(), current_actor(), request_id)), 200


@task_bp.route("/api/bulk-orders/<string:request_id>/approve", methods=["POST"])
def approve_bulk_order_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _BULK_ORDER_SERVICE.approve(get_db(), current_actor(), request_id, payload.get("notes"))
    return jsonify(record), 200


@task_bp.route("/api/bulk-orders/<string:request_id>/reject", methods=["POST"])
def reject_bulk_order_api(request_id: str):
    payload = request.get_json(silent=True) or {}
    record = _BULK_ORDER_SERVICE.reject(get_db(), current_actor(), request_id, payload.get("notes"))
    return jsonify(record), 200


def _bulk_order_input(payload) -> BulkOrderCreateInput:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise validation_failed("items_required", "items")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise validation_failed("items_required", "items")
        customizations = raw.get("customizations") or {}
        items.append(
            BulkOrderItemInput(
                product_id=required_text(raw.get("product_id"), "product_id"),
                quantity=positive_int(raw.get("quantity"), "quantity"),
                notes=optional_text(raw.get("notes")),
                customizations=customizations if isinstance(customizations, dict) else {},
            )
        )
    return BulkOrderCreateInput(
        items=items,
        requester_phone=clean_text(payload.get("requester_phone")),
        company_name=optional_text(payload.get("company_name")),
        desired_delivery_date=payload.get("desired_delivery_date"),
    )
