from __future__ import annotations

import logging
from typing import Any, Dict

from giftops.application.checkout_service import payment_status_for
from giftops.application.order_service import OrderService
from giftops.application.shipping_service import ShippingService
from giftops.db import new_id
from giftops.domain.contracts import Actor, BulkOrderCreateInput
from giftops.errors import PermissionError, not_found, transition_not_allowed, validation_failed
from giftops.infrastructure.repositories import (
    BulkOrderRepository,
    OrderRepository,
    ProductRepository,
    StatusEventRepository,
    UserRepository,
)
from giftops.observability import observe_transition_applied, observe_transition_rejected
from giftops.policies import ADMIN, CUSTOMER, require_roles
from giftops.validation import iso_date, optional_text, required_text
from giftops.workflow.order_flow import PAYMENT_METHODS


class BulkOrderService:
    """Bulk requests: customer submits, admin converts to a ``pending`` order, customer confirms."""

    def __init__(
        self,
        requests: BulkOrderRepository | None = None,
        orders: OrderRepository | None = None,
        products: ProductRepository | None = None,
        users: UserRepository | None = None,
        status_events: StatusEventRepository | None = None,
        order_service: OrderService | None = None,
        shipping: ShippingService | None = None,
    ) -> None:
        self.requests = requests or BulkOrderRepository()
        self.orders = orders or OrderRepository()
        self.products = products or ProductRepository()
        self.users = users or UserRepository()
        self.status_events = status_events or StatusEventRepository()
        self.order_service = order_service or OrderService()
        self.shipping = shipping or ShippingService()
        self._logger = logging.getLogger("giftops")

    def load(self, db, request_id: str) -> dict:
        record = self.requests.get(db, request_id)
        if record is None:
            raise not_found("bulk_order", request_id)
        return record

    def get_request(self, db, actor: Actor, request_id: str) -> dict:
        record = self.load(db, request_id)
        if actor.role != ADMIN and record["requester_id"] != actor.uid:
            raise PermissionError()
        return record

    def list_requests(self, db, actor: Actor, *, status: str | None = None) -> list[dict]:
        require_roles(actor.role, CUSTOMER, ADMIN)
        requester_id = None if actor.role == ADMIN else actor.uid
        return self.requests.list_requests(db, requester_id=requester_id, status=status)

    def create(self, db, actor: Actor, create_input: BulkOrderCreateInput) -> dict:
        require_roles(actor.role, CUSTOMER)
        if not create_input.items:
            raise validation_failed("items_required", "items")

        items = []
        for item in create_input.items:
            if item.quantity < 1:
                raise validation_failed("quantity_invalid", "quantity")
            product = self.products.get(db, item.product_id)
            if product is None:
                raise not_found("product", item.product_id)
            items.append(
                {
                    "product_id": product["id"],
                    "product_name": product["name"],
                    "quantity": item.quantity,
                    "notes": item.notes,
                    "customizations": dict(item.customizations or {}),
                }
            )

        requester = self.users.get(db, actor.uid) or {}
        request_id = new_id()
        with db.transaction():
            self.requests.create(
                db,
                {
                    "id": request_id,
                    "requester_id": actor.uid,
                    "requester_name": requester.get("display_name") or actor.display_name,
                    "requester_email": requester.get("email") or actor.email,
                    "requester_phone": create_input.requester_phone or requester.get("phone"),
                    "company_name": create_input.company_name,
                    "desired_delivery_date": iso_date(create_input.desired_delivery_date, "desired_delivery_date"),
                    "items": items,
                },
            )
            self.status_events.add_event(
                db,
                entity="bulk_order",
                entity_id=request_id,
                from_status=None,
                to_status="pending_review",
                reason="bulk_order_created",
                actor_id=actor.uid,
            )
        return self.load(db, request_id)

    def approve(self, db, actor: Actor, request_id: str, notes: str | None = None) -> dict:
        """Convert the request into a ``pending`` order priced from the catalog."""
        require_roles(actor.role, ADMIN)
        record = self.load(db, request_id)
        self._ensure_pending(record, "approve")

        items = []
        for item in record.get("items") or []:
            product = self.products.get(db, item["product_id"])
            if product is None:
                raise not_found("product", item["product_id"])
            items.append(
                {
                    "product_id": product["id"],
                    "name": product["name"],
                    "quantity": int(item["quantity"]),
                    "price": float(product["price"]),
                    "customizations": item.get("customizations") or {},
                    "image_url": product.get("image_url"),
                }
            )
        sub_total = round(sum(item["price"] * item["quantity"] for item in items), 2)
        order_id = new_id()
        order = {
            "id": order_id,
            "customer_id": record["requester_id"],
            "customer_name": record.get("requester_name") or "",
            "customer_email": record.get("requester_email") or "",
            "customer_phone": record.get("requester_phone") or "",
            "items": items,
            "sub_total": sub_total,
            "shipping_cost": 0.0,
            "total_amount": sub_total,
            "status": "pending",
            "payment_status": "pending",
            "is_bulk_order": True,
            "bulk_order_request_id": request_id,
            "customer_notes": record.get("company_name"),
            "estimated_delivery_time": record.get("desired_delivery_date"),
        }

        with db.transaction():
            changed = self.requests.apply_transition(
                db,
                request_id,
                sources={"pending_review"},
                target="approved",
                updates={"admin_notes": optional_text(notes), "converted_order_id": order_id},
            )
            if not changed:
                raise self._rejected(db, request_id, "approve")
            self.orders.create(db, order, actor_id=actor.uid, notes="Created from bulk order request")
            self._record(db, actor, request_id, "pending_review", "approved", "bulk_order_approved")
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order_id,
                from_status=None,
                to_status="pending",
                reason="bulk_order_converted",
                actor_id=actor.uid,
            )

        observe_transition_applied("bulk_order", "approve")
        self._logger.info(
            "bulk_order_approved",
            extra={"bulk_order_id": request_id, "order_id": order_id, "actor_id": actor.uid},
        )
        return self.load(db, request_id)

    def reject(self, db, actor: Actor, request_id: str, notes: str | None) -> dict:
        require_roles(actor.role, ADMIN)
        reason = required_text(notes, "notes", code="reason_required")
        record = self.load(db, request_id)
        self._ensure_pending(record, "reject")
        with db.transaction():
            changed = self.requests.apply_transition(
                db,
                request_id,
                sources={"pending_review"},
                target="rejected",
                updates={"admin_notes": reason},
            )
            if not changed:
                raise self._rejected(db, request_id, "reject")
            self._record(db, actor, request_id, "pending_review", "rejected", reason)
        observe_transition_applied("bulk_order", "reject")
        return self.load(db, request_id)

    def confirm(self, db, actor: Actor, order_id: str, payload: Dict[str, Any]) -> dict:
        """Customer adds shipping to the converted order and submits it for approval."""
        require_roles(actor.role, CUSTOMER)
        order = self.order_service.load(db, order_id)
        if not order.get("is_bulk_order"):
            raise validation_failed("action_invalid", "order_id")

        region_id = required_text(payload.get("shipping_region_id"), "shipping_region_id")
        method_id = required_text(payload.get("shipping_method_id"), "shipping_method_id")
        payment_method = str(payload.get("payment_method") or "cod").strip()
        if payment_method not in PAYMENT_METHODS:
            raise validation_failed("payment_method_invalid", "payment_method")
        address = payload.get("shipping_address")
        if not isinstance(address, dict) or not address:
            raise validation_failed("field_required", "shipping_address")

        shipping_cost, method = self.shipping.price_for(db, region_id, method_id)
        updates = {
            "shipping_address_json": self.orders.dump_json(address),
            "shipping_region_id": region_id,
            "shipping_method_id": method["id"],
            "shipping_method_name": method.get("name"),
            "shipping_cost": shipping_cost,
            "total_amount": round(float(order["sub_total"]) + shipping_cost, 2),
            "payment_method": payment_method,
            "payment_status": payment_status_for(payment_method),
        }
        return self.order_service.apply_action(
            db,
            actor,
            order_id,
            "submit_for_approval",
            notes="Customer confirmed bulk order",
            updates=updates,
        )

    def _ensure_pending(self, record: dict, action: str) -> None:
        if record["status"] != "pending_review":
            observe_transition_rejected("bulk_order", action)
            raise transition_not_allowed("bulk_order", record["status"], action, [])

    def _rejected(self, db, request_id: str, action: str):
        current = self.requests.get(db, request_id)
        if current is None:
            return not_found("bulk_order", request_id)
        observe_transition_rejected("bulk_order", action)
        return transition_not_allowed("bulk_order", current["status"], action, [])

    def _record(self, db, actor: Actor, request_id: str, from_status: str, to_status: str, reason: str) -> None:
        self.status_events.add_event(
            db,
            entity="bulk_order",
            entity_id=request_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            actor_id=actor.uid,
        )
