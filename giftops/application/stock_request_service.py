from __future__ import annotations

import logging
from typing import Any, Dict, Iterable

from giftops.core.event_bus import BidSubmitted, EventBus, StockReceived, StockRequestAwarded, get_event_bus
from giftops.db import new_id, utc_now_iso
from giftops.domain.contracts import Actor, BidInput, StockRequestCreateInput
from giftops.errors import PermissionError, not_found, validation_failed
from giftops.infrastructure.repositories import ProductRepository, StatusEventRepository, StockRequestRepository
from giftops.observability import observe_transition_applied
from giftops.policies import ADMIN, FINANCE_MANAGER, INVENTORY_MANAGER, SUPPLIER, require_roles
from giftops.validation import optional_text, positive_int, required_text
from giftops.workflow.stock_flow import BIDDING_STATUSES, STOCK_REQUEST_FLOW, best_bid


VIEWER_ROLES = (SUPPLIER, INVENTORY_MANAGER, FINANCE_MANAGER, ADMIN)


class StockRequestService:
    """Supplier bidding, finance award, fulfillment and receipt of stock requests."""

    def __init__(
        self,
        requests: StockRequestRepository | None = None,
        products: ProductRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.requests = requests or StockRequestRepository()
        self.products = products or ProductRepository()
        self.status_events = status_events or StatusEventRepository()
        self._event_bus = event_bus
        self._logger = logging.getLogger("giftops")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    # Reads

    def load(self, db, request_id: str) -> dict:
        record = self.requests.get(db, request_id)
        if record is None:
            raise not_found("stock_request", request_id)
        return record

    def get_request(self, db, actor: Actor, request_id: str) -> dict:
        require_roles(actor.role, *VIEWER_ROLES)
        record = self.load(db, request_id)
        if actor.role == SUPPLIER and record["status"] not in BIDDING_STATUSES and record.get("supplier_id") != actor.uid:
            raise PermissionError()
        return self._present(record, actor)

    def list_requests(self, db, actor: Actor, *, statuses: Iterable[str] | None = None) -> list[dict]:
        require_roles(actor.role, *VIEWER_ROLES)
        if actor.role == SUPPLIER:
            open_requests = self.requests.list_requests(db, statuses=BIDDING_STATUSES)
            awarded = self.requests.list_requests(db, supplier_id=actor.uid)
            merged = {record["id"]: record for record in [*open_requests, *awarded]}
            records = sorted(merged.values(), key=lambda record: record["created_at"], reverse=True)
            wanted = set(statuses or [])
            if wanted:
                records = [record for record in records if record["status"] in wanted]
        else:
            records = self.requests.list_requests(db, statuses=statuses)
        return [self._present(record, actor) for record in records]

    # Transitions

    def create(self, db, actor: Actor, create_input: StockRequestCreateInput) -> dict:
        require_roles(actor.role, INVENTORY_MANAGER, ADMIN)
        quantity = positive_int(create_input.requested_quantity, "requested_quantity")
        product = self.products.get(db, create_input.product_id)
        if product is None:
            raise not_found("product", create_input.product_id)

        request_id = new_id()
        with db.transaction():
            self.requests.create(
                db,
                {
                    "id": request_id,
                    "product_id": product["id"],
                    "product_name": product["name"],
                    "requested_quantity": quantity,
                    "requester_id": actor.uid,
                    "requester_name": actor.display_name,
                    "notes": optional_text(create_input.notes),
                },
            )
            self._record(db, actor, request_id, None, "pending_bids", "stock_request_created")
        self._logger.info("stock_request_created", extra={"stock_request_id": request_id, "actor_id": actor.uid})
        return self._present(self.load(db, request_id), actor)

    def submit_bid(self, db, actor: Actor, request_id: str, bid_input: BidInput) -> dict:
        """Append a bid; the first bid moves the request to ``pending_award``."""
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("submit_bid").roles)
        if bid_input.price_per_unit is None or bid_input.price_per_unit <= 0:
            raise validation_failed("price_invalid", "price_per_unit")
        if bid_input.tax_rate is not None and not 0 <= bid_input.tax_rate <= 100:
            raise validation_failed("tax_rate_invalid", "tax_rate")

        record = self.load(db, request_id)
        STOCK_REQUEST_FLOW.ensure_allowed("submit_bid", record["status"])
        with db.transaction():
            changed = self.requests.apply_transition(
                db,
                request_id,
                sources=BIDDING_STATUSES,
                target="pending_award",
                require_no_winner=True,
            )
            if not changed:
                raise self._rejected(db, request_id, "submit_bid")
            bid_id = self.requests.add_bid(
                db,
                request_id,
                supplier_id=actor.uid,
                supplier_name=actor.display_name,
                price_per_unit=float(bid_input.price_per_unit),
                tax_rate=bid_input.tax_rate,
                notes=optional_text(bid_input.notes),
            )
            if record["status"] != "pending_award":
                self._record(db, actor, request_id, record["status"], "pending_award", "first_bid_received")

        observe_transition_applied("stock_request", "submit_bid")
        self.event_bus.publish(
            BidSubmitted(
                stock_request_id=request_id,
                bid_id=bid_id,
                supplier_id=actor.uid,
                price_per_unit=float(bid_input.price_per_unit),
                actor_id=actor.uid,
            )
        )
        return self._present(self.load(db, request_id), actor)

    def award(self, db, actor: Actor, request_id: str, bid_id: Any, notes: str | None = None) -> dict:
        """Pick the winning bid. Irreversible; a second award is rejected with 409."""
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("award").roles)
        try:
            bid_key = int(bid_id)
        except (TypeError, ValueError):
            raise validation_failed("field_required", "bid_id") from None

        record = self.load(db, request_id)
        bid = self.requests.get_bid(db, request_id, bid_key)
        if bid is None:
            raise not_found("bid", bid_key)
        STOCK_REQUEST_FLOW.ensure_allowed("award", record["status"])

        updates = {
            "winning_bid_id": bid["id"],
            "supplier_price": float(bid["price_per_unit"]),
            "supplier_id": bid["supplier_id"],
            "supplier_name": bid.get("supplier_name"),
            "finance_manager_id": actor.uid,
            "finance_manager_name": actor.display_name,
            "finance_notes": optional_text(notes),
            "finance_action_at": utc_now_iso(),
        }
        self._apply(db, actor, record, "award", updates=updates, require_no_winner=True)
        self.event_bus.publish(
            StockRequestAwarded(
                stock_request_id=request_id,
                bid_id=bid["id"],
                supplier_id=bid["supplier_id"],
                supplier_price=float(bid["price_per_unit"]),
                actor_id=actor.uid,
            )
        )
        return self._present(self.load(db, request_id), actor)

    def reject(self, db, actor: Actor, request_id: str, reason: str | None) -> dict:
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("reject").roles)
        reason_text = required_text(reason, "reason", code="reason_required")
        record = self.load(db, request_id)
        updates = {
            "finance_manager_id": actor.uid,
            "finance_manager_name": actor.display_name,
            "finance_notes": reason_text,
            "finance_action_at": utc_now_iso(),
        }
        self._apply(db, actor, record, "reject", updates=updates, reason=reason_text, require_no_winner=True)
        return self._present(self.load(db, request_id), actor)

    def accept_award(self, db, actor: Actor, request_id: str, notes: str | None = None) -> dict:
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("accept_award").roles)
        record = self.load(db, request_id)
        self._ensure_awarded_supplier(actor, record)
        updates = {"supplier_notes": optional_text(notes), "supplier_action_at": utc_now_iso()}
        self._apply(db, actor, record, "accept_award", updates=updates, guards={"supplier_id": actor.uid})
        return self._present(self.load(db, request_id), actor)

    def fulfill_in_transaction(
        self,
        db,
        actor: Actor,
        record: dict,
        *,
        fulfilled_quantity: int,
        notes: str | None,
        invoice_id: str,
    ) -> None:
        """Fulfillment step run inside the invoice transaction; raises to abort both writes."""
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("fulfill").roles)
        self._ensure_awarded_supplier(actor, record)
        STOCK_REQUEST_FLOW.ensure_allowed("fulfill", record["status"])
        if fulfilled_quantity < 1 or fulfilled_quantity > int(record["requested_quantity"]):
            raise validation_failed("fulfilled_quantity_invalid", "fulfilled_quantity")

        transition = STOCK_REQUEST_FLOW.get("fulfill")
        changed = self.requests.apply_transition(
            db,
            record["id"],
            sources=transition.sources,
            target=transition.target,
            updates={
                "fulfilled_quantity": fulfilled_quantity,
                "supplier_notes": notes,
                "supplier_action_at": utc_now_iso(),
                "invoice_id": invoice_id,
            },
            guards={"supplier_id": actor.uid},
        )
        if not changed:
            raise self._rejected(db, record["id"], "fulfill")
        self._record(db, actor, record["id"], record["status"], transition.target, "fulfill")
        observe_transition_applied("stock_request", "fulfill")

    def receive(self, db, actor: Actor, request_id: str, received_quantity: Any, notes: str | None = None) -> dict:
        """Record the receipt and add the received quantity to product stock."""
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("receive").roles)
        record = self.load(db, request_id)
        STOCK_REQUEST_FLOW.ensure_allowed("receive", record["status"])
        quantity = positive_int(received_quantity, "received_quantity", code="received_quantity_invalid")
        if quantity > int(record.get("fulfilled_quantity") or 0):
            raise validation_failed("received_quantity_invalid", "received_quantity")

        updates = {
            "received_quantity": quantity,
            "received_by_id": actor.uid,
            "received_by_name": actor.display_name,
            "received_at": utc_now_iso(),
            "receipt_notes": optional_text(notes),
        }

        def _add_stock(tx_db) -> None:
            if not self.products.increment_stock(tx_db, record["product_id"], quantity):
                raise not_found("product", record["product_id"])

        self._apply(db, actor, record, "receive", updates=updates, after=_add_stock)
        self.event_bus.publish(
            StockReceived(
                stock_request_id=request_id,
                product_id=record["product_id"],
                received_quantity=quantity,
                actor_id=actor.uid,
            )
        )
        return self._present(self.load(db, request_id), actor)

    def cancel(self, db, actor: Actor, request_id: str, reason: str | None = None) -> dict:
        require_roles(actor.role, *STOCK_REQUEST_FLOW.get("cancel").roles)
        record = self.load(db, request_id)
        guards: Dict[str, Any] = {}
        if actor.role == INVENTORY_MANAGER:
            if record["requester_id"] != actor.uid:
                raise PermissionError()
            guards["requester_id"] = actor.uid
        self._apply(db, actor, record, "cancel", guards=guards, reason=optional_text(reason))
        return self._present(self.load(db, request_id), actor)

    # Internals

    def _apply(
        self,
        db,
        actor: Actor,
        record: dict,
        action: str,
        *,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
        reason: str | None = None,
        require_no_winner: bool = False,
        after=None,
    ) -> None:
        transition = STOCK_REQUEST_FLOW.ensure_allowed(action, record["status"])
        with db.transaction():
            changed = self.requests.apply_transition(
                db,
                record["id"],
                sources=transition.sources,
                target=transition.target,
                updates=updates,
                guards=guards,
                require_no_winner=require_no_winner,
            )
            if not changed:
                raise self._rejected(db, record["id"], action)
            self._record(db, actor, record["id"], record["status"], transition.target, reason or action)
            if after is not None:
                after(db)

        observe_transition_applied("stock_request", action)
        self._logger.info(
            "stock_request_transition_applied",
            extra={
                "stock_request_id": record["id"],
                "action": action,
                "from_status": record["status"],
                "to_status": transition.target,
                "actor_id": actor.uid,
            },
        )

    def _rejected(self, db, request_id: str, action: str):
        current = self.requests.get(db, request_id, with_bids=False)
        if current is None:
            return not_found("stock_request", request_id)
        return STOCK_REQUEST_FLOW.rejection(action, current["status"])

    def _record(self, db, actor: Actor, request_id: str, from_status, to_status: str, reason: str) -> None:
        self.status_events.add_event(
            db,
            entity="stock_request",
            entity_id=request_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            actor_id=actor.uid,
        )

    @staticmethod
    def _ensure_awarded_supplier(actor: Actor, record: dict) -> None:
        if record.get("supplier_id") != actor.uid:
            raise PermissionError()

    @staticmethod
    def _present(record: dict, actor: Actor) -> dict:
        bids = record.get("bids") or []
        if actor.role == SUPPLIER:
            bids = [bid for bid in bids if bid["supplier_id"] == actor.uid]
            record["bids"] = bids
        record["best_bid"] = best_bid(bids)
        record["flow"] = STOCK_REQUEST_FLOW.flow_meta(record["status"])
        return record
