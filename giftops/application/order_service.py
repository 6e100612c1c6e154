from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable

from giftops.core.event_bus import EventBus, OrderStatusChanged, RiderAssigned, get_event_bus
from giftops.db import utc_now_iso
from giftops.domain.contracts import Actor
from giftops.errors import ConflictError, PermissionError, not_found, transition_not_allowed, validation_failed
from giftops.infrastructure.repositories import (
    BulkOrderRepository,
    OrderRepository,
    StatusEventRepository,
    UserRepository,
)
from giftops.observability import observe_transition_applied, observe_transition_rejected
from giftops.policies import ADMIN, CUSTOMER, DISPATCH_MANAGER, FINANCE_MANAGER, RIDER, SUPPLIER, require_roles
from giftops.routing_client import fetch_route
from giftops.validation import color as parse_color
from giftops.validation import optional_text, required_text
from giftops.workflow.order_flow import (
    CUSTOMER_CANCELLABLE,
    GENERIC_ACTIONS,
    ORDER_FLOW,
    RIDER_BOUND_ACTIONS,
    TERMINAL_STATUSES,
)
from giftops.workflow.tracking import public_order_view


class OrderService:
    """Named, guarded transitions over the order lifecycle.

    Each transition is a single conditional ``UPDATE`` plus a history row in
    one transaction. The returned order is always re-read after commit.
    """

    def __init__(
        self,
        orders: OrderRepository | None = None,
        users: UserRepository | None = None,
        bulk_orders: BulkOrderRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.orders = orders or OrderRepository()
        self.users = users or UserRepository()
        self.bulk_orders = bulk_orders or BulkOrderRepository()
        self.status_events = status_events or StatusEventRepository()
        self._event_bus = event_bus
        self._logger = logging.getLogger("giftops")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    # Reads

    def load(self, db, order_id: str) -> dict:
        order = self.orders.get(db, order_id)
        if order is None:
            raise not_found("order", order_id)
        return order

    def get_order(self, db, actor: Actor, order_id: str) -> dict:
        order = self.load(db, order_id)
        self._ensure_can_view(actor, order)
        return self._with_flow(order)

    def list_orders(self, db, actor: Actor, *, statuses: Iterable[str] | None = None, limit: int = 200) -> list[dict]:
        if actor.role == SUPPLIER:
            raise PermissionError()
        customer_id = actor.uid if actor.role == CUSTOMER else None
        rider_id = actor.uid if actor.role == RIDER else None
        orders = self.orders.list_orders(
            db,
            statuses=statuses,
            customer_id=customer_id,
            rider_id=rider_id,
            limit=limit,
        )
        return [self._with_flow(order) for order in orders]

    def status_counts(self, db, actor: Actor) -> Dict[str, int]:
        if actor.role in {CUSTOMER, RIDER}:
            counts: Dict[str, int] = {}
            for order in self.list_orders(db, actor, limit=1000):
                counts[order["status"]] = counts.get(order["status"], 0) + 1
            return counts
        if actor.role == SUPPLIER:
            return {}
        return self.orders.count_by_status(db)

    def tracking_view(self, db, order_id: str) -> dict:
        return public_order_view(self.load(db, order_id))

    # Transitions

    def transition(
        self,
        db,
        actor: Actor,
        order_id: str,
        action: str,
        *,
        notes: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> dict:
        """Generic endpoint for transitions that need no extra input."""
        if action not in GENERIC_ACTIONS:
            raise validation_failed("action_invalid", "action")
        updates: Dict[str, Any] = {}
        if action == "mark_delivered":
            updates["actual_delivery_time"] = utc_now_iso()
        return self.apply_action(
            db,
            actor,
            order_id,
            action,
            notes=optional_text(notes),
            updates=updates,
            lat=lat,
            lng=lng,
            after=self._mark_bulk_fulfilled if action == "mark_delivered" else None,
        )

    def approve_payment(self, db, actor: Actor, order_id: str, notes: str | None = None) -> dict:
        return self.apply_action(
            db,
            actor,
            order_id,
            "approve_payment",
            notes=optional_text(notes) or "Payment approved by finance",
            updates={"payment_status": "paid"},
        )

    def reject_payment(self, db, actor: Actor, order_id: str, reason: str | None) -> dict:
        require_roles(actor.role, *ORDER_FLOW.get("reject_payment").roles)
        reason_text = required_text(reason, "reason", code="reason_required")
        return self.apply_action(
            db,
            actor,
            order_id,
            "reject_payment",
            notes=f"Payment rejected: {reason_text}",
            updates={"payment_status": "failed"},
        )

    def assign_rider(self, db, actor: Actor, order_id: str, rider_id: str | None, notes: str | None = None) -> dict:
        require_roles(actor.role, *ORDER_FLOW.get("assign_rider").roles)
        rider = self.users.get(db, str(rider_id or "").strip()) if rider_id else None
        if rider is None or rider.get("role") != RIDER or rider.get("disabled"):
            raise validation_failed("rider_invalid", "rider_id")

        rider_name = rider.get("display_name") or rider.get("email")
        order = self.apply_action(
            db,
            actor,
            order_id,
            "assign_rider",
            notes=optional_text(notes) or f"Assigned to {rider_name}",
            updates={"rider_id": rider["uid"], "rider_name": rider_name},
        )
        self.event_bus.publish(
            RiderAssigned(order_id=order_id, rider_id=rider["uid"], rider_name=rider_name, actor_id=actor.uid)
        )
        return order

    def cancel(self, db, actor: Actor, order_id: str, reason: str | None = None) -> dict:
        require_roles(actor.role, *ORDER_FLOW.get("cancel").roles)
        reason_text = optional_text(reason)
        return self.apply_action(
            db,
            actor,
            order_id,
            "cancel",
            notes=f"Cancelled: {reason_text}" if reason_text else "Cancelled",
            updates={"rider_id": None, "rider_name": None},
        )

    def refund(self, db, actor: Actor, order_id: str, reason: str | None) -> dict:
        """Refund a paid order; open orders are cancelled on the way.

        Terminal orders keep their status but still get a history entry.
        """
        require_roles(actor.role, FINANCE_MANAGER, ADMIN)
        reason_text = required_text(reason, "reason", code="reason_required")
        order = self.load(db, order_id)
        if order.get("payment_status") != "paid":
            raise ConflictError(
                code="payment_not_refundable",
                message_key="payment_not_refundable",
                payload={"payment_status": order.get("payment_status")},
            )

        from_status = order["status"]
        target = from_status if from_status in TERMINAL_STATUSES else "cancelled"
        updates: Dict[str, Any] = {"payment_status": "refunded"}
        if target == "cancelled":
            updates.update({"rider_id": None, "rider_name": None})

        with db.transaction():
            changed = self.orders.apply_transition(
                db,
                order_id,
                sources=[from_status],
                target=target,
                actor_id=actor.uid,
                notes=f"Payment refunded: {reason_text}",
                updates=updates,
                guards={"payment_status": "paid"},
            )
            if not changed:
                observe_transition_rejected("order", "refund")
                raise ConflictError(payload={"entity": "order", "id": order_id})
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order_id,
                from_status=from_status,
                to_status=target,
                reason="refund",
                actor_id=actor.uid,
            )

        return self._after_commit(db, actor, order, "refund", target, reason_text)

    # Side-channel mutations

    def rate(self, db, actor: Actor, order_id: str, value: Any, comment: str | None = None) -> dict:
        require_roles(actor.role, CUSTOMER)
        try:
            rating_value = int(value)
        except (TypeError, ValueError):
            rating_value = 0
        if isinstance(value, bool) or rating_value < 1 or rating_value > 5:
            raise validation_failed("rating_invalid", "value")

        order = self.load(db, order_id)
        if order.get("customer_id") != actor.uid:
            raise PermissionError()
        if order.get("rating"):
            raise ConflictError(code="rating_exists", message_key="rating_exists")
        if order["status"] != "delivered":
            observe_transition_rejected("order", "rate")
            raise transition_not_allowed("order", order["status"], "rate", ORDER_FLOW.allowed_actions(order["status"]))

        with db.transaction():
            if not self.orders.set_rating(db, order_id, user_id=actor.uid, value=rating_value, comment=optional_text(comment)):
                raise ConflictError(code="rating_exists", message_key="rating_exists")
        return self._with_flow(self.load(db, order_id))

    def set_color(self, db, actor: Actor, order_id: str, value: Any) -> dict:
        require_roles(actor.role, DISPATCH_MANAGER, ADMIN)
        tag = parse_color(value)
        with db.transaction():
            if not self.orders.update_fields(db, order_id, {"color": tag}):
                raise not_found("order", order_id)
        return self._with_flow(self.load(db, order_id))

    def route(self, db, actor: Actor, order_id: str) -> dict:
        require_roles(actor.role, RIDER, DISPATCH_MANAGER, ADMIN)
        order = self.load(db, order_id)
        if actor.role == RIDER and order.get("rider_id") != actor.uid:
            raise PermissionError()
        rider = self.users.get(db, order["rider_id"]) if order.get("rider_id") else None
        origin = (rider or {}).get("current_location")
        destination = order.get("delivery_coordinates")
        if not origin or not destination:
            raise validation_failed("coordinates_missing")
        return {
            "order_id": order_id,
            "origin": {"lat": origin["lat"], "lng": origin["lng"]},
            "destination": destination,
            "route": fetch_route(origin, destination),
        }

    # Internals

    def apply_action(
        self,
        db,
        actor: Actor,
        order_id: str,
        action: str,
        *,
        notes: str | None = None,
        updates: Dict[str, Any] | None = None,
        lat: float | None = None,
        lng: float | None = None,
        after: Callable[[Any, Actor, dict], None] | None = None,
    ) -> dict:
        transition = ORDER_FLOW.get(action)
        require_roles(actor.role, *transition.roles)
        order = self.load(db, order_id)
        guards = self._ensure_actor_scope(actor, order, action)

        sources = set(transition.sources)
        if action == "cancel" and actor.role == CUSTOMER:
            sources &= CUSTOMER_CANCELLABLE
        if order["status"] not in sources:
            raise ORDER_FLOW.rejection(action, order["status"])

        with db.transaction():
            changed = self.orders.apply_transition(
                db,
                order_id,
                sources=sources,
                target=transition.target,
                actor_id=actor.uid,
                notes=notes,
                updates=updates,
                guards=guards,
                lat=lat,
                lng=lng,
            )
            if not changed:
                raise self._rejected(db, order_id, action)
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order_id,
                from_status=order["status"],
                to_status=transition.target,
                reason=action,
                actor_id=actor.uid,
            )
            if after is not None:
                after(db, actor, order)

        return self._after_commit(db, actor, order, action, transition.target, notes)

    def _after_commit(self, db, actor: Actor, before: dict, action: str, target: str, notes: str | None) -> dict:
        observe_transition_applied("order", action)
        self._logger.info(
            "order_transition_applied",
            extra={
                "order_id": before["id"],
                "action": action,
                "from_status": before["status"],
                "to_status": target,
                "actor_id": actor.uid,
            },
        )
        self.event_bus.publish(
            OrderStatusChanged(
                order_id=before["id"],
                action=action,
                from_status=before["status"],
                to_status=target,
                customer_id=before.get("customer_id"),
                notes=notes,
                actor_id=actor.uid,
            )
        )
        return self._with_flow(self.load(db, before["id"]))

    def _rejected(self, db, order_id: str, action: str):
        status = self.orders.get_status(db, order_id)
        if status is None:
            return not_found("order", order_id)
        return ORDER_FLOW.rejection(action, status)

    def _mark_bulk_fulfilled(self, db, actor: Actor, order: dict) -> None:
        request_id = order.get("bulk_order_request_id")
        if not order.get("is_bulk_order") or not request_id:
            return
        if self.bulk_orders.apply_transition(db, request_id, sources={"approved"}, target="fulfilled"):
            self.status_events.add_event(
                db,
                entity="bulk_order",
                entity_id=request_id,
                from_status="approved",
                to_status="fulfilled",
                reason="order_delivered",
                actor_id=actor.uid,
            )

    @staticmethod
    def _ensure_actor_scope(actor: Actor, order: dict, action: str) -> Dict[str, Any]:
        """Ownership checks; returned guards are re-asserted in the conditional update."""
        if actor.role == CUSTOMER:
            if order.get("customer_id") != actor.uid:
                raise PermissionError()
            return {"customer_id": actor.uid}
        if actor.role == RIDER and action in RIDER_BOUND_ACTIONS:
            if order.get("rider_id") != actor.uid:
                raise PermissionError()
            return {"rider_id": actor.uid}
        return {}

    @staticmethod
    def _ensure_can_view(actor: Actor, order: dict) -> None:
        if actor.role == CUSTOMER and order.get("customer_id") != actor.uid:
            raise PermissionError()
        if actor.role == RIDER and order.get("rider_id") != actor.uid:
            raise PermissionError()
        if actor.role == SUPPLIER:
            raise PermissionError()

    @staticmethod
    def _with_flow(order: dict) -> dict:
        order["flow"] = ORDER_FLOW.flow_meta(order.get("status"))
        return order
