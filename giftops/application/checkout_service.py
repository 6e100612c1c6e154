from __future__ import annotations

import logging
from typing import Any, Dict, List

from giftops.application.shipping_service import ShippingService
from giftops.core.event_bus import EventBus, OrderPlaced, get_event_bus
from giftops.db import new_id
from giftops.domain.contracts import Actor, CartLine, CheckoutInput
from giftops.errors import ConflictError, not_found, validation_failed
from giftops.infrastructure.repositories import (
    CustomizationGroupRepository,
    OrderRepository,
    ProductRepository,
    StatusEventRepository,
    UserRepository,
)
from giftops.observability import observe_transition_applied
from giftops.policies import CUSTOMER, require_roles
from giftops.workflow.customization import effective_options, price_customizations
from giftops.workflow.order_flow import PAYMENT_METHODS, PREPAID_METHODS


def payment_status_for(method: str) -> str:
    return "paid" if method in PREPAID_METHODS else "pending"


class CheckoutService:
    def __init__(
        self,
        orders: OrderRepository | None = None,
        products: ProductRepository | None = None,
        groups: CustomizationGroupRepository | None = None,
        users: UserRepository | None = None,
        status_events: StatusEventRepository | None = None,
        shipping: ShippingService | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.orders = orders or OrderRepository()
        self.products = products or ProductRepository()
        self.groups = groups or CustomizationGroupRepository()
        self.users = users or UserRepository()
        self.status_events = status_events or StatusEventRepository()
        self.shipping = shipping or ShippingService()
        self._event_bus = event_bus
        self._logger = logging.getLogger("giftops")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    def price_lines(self, db, lines: List[CartLine]) -> List[Dict[str, Any]]:
        """Order items priced from the catalog plus customization adjustments."""
        if not lines:
            raise validation_failed("items_required", "items")
        items = []
        for line in lines:
            if line.quantity < 1:
                raise validation_failed("quantity_invalid", "quantity")
            product = self.products.get(db, line.product_id)
            if product is None:
                raise not_found("product", line.product_id)
            if not product.get("published"):
                raise ConflictError(
                    code="product_unavailable",
                    message_key="product_unavailable",
                    payload={"product_id": line.product_id},
                )
            group = self.groups.get(db, product.get("customization_group_id"))
            customizations, adjustment = price_customizations(effective_options(product, group), line.customizations)
            items.append(
                {
                    "product_id": product["id"],
                    "name": product["name"],
                    "quantity": line.quantity,
                    "price": round(float(product["price"]) + adjustment, 2),
                    "customizations": customizations,
                    "image_url": product.get("image_url"),
                }
            )
        return items

    def checkout(self, db, actor: Actor, checkout_input: CheckoutInput) -> dict:
        """Create an order awaiting finance approval.

        Stock for every line is decremented with a ``stock >= quantity`` guard;
        one shortage rolls back the whole checkout.
        """
        require_roles(actor.role, CUSTOMER)
        if checkout_input.payment_method not in PAYMENT_METHODS:
            raise validation_failed("payment_method_invalid", "payment_method")

        items = self.price_lines(db, checkout_input.items)
        shipping_cost, method = self.shipping.price_for(
            db,
            checkout_input.shipping_region_id,
            checkout_input.shipping_method_id,
        )
        sub_total = round(sum(item["price"] * item["quantity"] for item in items), 2)
        customer = self.users.get(db, actor.uid) or {}
        gift = checkout_input.gift_details

        order_id = new_id()
        record = {
            "id": order_id,
            "customer_id": actor.uid,
            "customer_name": customer.get("display_name") or actor.display_name,
            "customer_email": customer.get("email") or actor.email,
            "customer_phone": checkout_input.customer_phone or customer.get("phone") or "",
            "items": items,
            "sub_total": sub_total,
            "shipping_cost": shipping_cost,
            "total_amount": round(sub_total + shipping_cost, 2),
            "status": "pending_finance_approval",
            "payment_status": payment_status_for(checkout_input.payment_method),
            "payment_method": checkout_input.payment_method,
            "shipping_address": checkout_input.shipping_address,
            "shipping_region_id": checkout_input.shipping_region_id,
            "shipping_method_id": method["id"],
            "shipping_method_name": method.get("name"),
            "delivery_lat": checkout_input.delivery_lat,
            "delivery_lng": checkout_input.delivery_lng,
            "is_gift": gift is not None,
            "gift_details": gift.to_dict() if gift is not None else None,
            "customer_notes": checkout_input.customer_notes,
        }

        with db.transaction():
            for item in items:
                if not self.products.decrement_stock(db, item["product_id"], item["quantity"]):
                    raise ConflictError(
                        code="insufficient_stock",
                        message_key="insufficient_stock",
                        payload={"product_id": item["product_id"], "quantity": item["quantity"]},
                    )
            self.orders.create(db, record, actor_id=actor.uid, notes="Order placed")
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order_id,
                from_status=None,
                to_status=record["status"],
                reason="checkout",
                actor_id=actor.uid,
            )

        observe_transition_applied("order", "checkout")
        self._logger.info(
            "order_placed",
            extra={"order_id": order_id, "customer_id": actor.uid, "total_amount": record["total_amount"]},
        )
        self.event_bus.publish(
            OrderPlaced(order_id=order_id, customer_id=actor.uid, total_amount=record["total_amount"], actor_id=actor.uid)
        )
        return self.orders.get(db, order_id)
