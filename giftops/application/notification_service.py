from __future__ import annotations

import logging

from giftops.core.event_bus import (
    BidSubmitted,
    DomainEvent,
    EventBus,
    InvoiceStatusChanged,
    OrderPlaced,
    OrderStatusChanged,
    RiderAssigned,
    StockRequestAwarded,
    UserStatusChanged,
)


class NotificationService:
    """Records notification intents for domain events.

    Delivery (SMS, email, push) happens outside this process; this service
    only decides who should hear about what and writes a structured log line
    that a downstream shipper can pick up.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("giftops")

    def register_event_handlers(self, event_bus: EventBus) -> None:
        """Safe to call repeatedly; the bus ignores handlers it already holds."""
        event_bus.subscribe(OrderPlaced, self._on_order_placed)
        event_bus.subscribe(OrderStatusChanged, self._on_order_status_changed)
        event_bus.subscribe(RiderAssigned, self._on_rider_assigned)
        event_bus.subscribe(BidSubmitted, self._on_bid_submitted)
        event_bus.subscribe(StockRequestAwarded, self._on_stock_request_awarded)
        event_bus.subscribe(InvoiceStatusChanged, self._on_invoice_status_changed)
        event_bus.subscribe(UserStatusChanged, self._on_user_status_changed)

    def _on_order_placed(self, event: OrderPlaced) -> None:
        self._queue("customer", event.customer_id, "order_placed", event, order_id=event.order_id)

    def _on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if not event.customer_id:
            return
        self._queue(
            "customer",
            event.customer_id,
            f"order_{event.to_status}",
            event,
            order_id=event.order_id,
            from_status=event.from_status,
        )

    def _on_rider_assigned(self, event: RiderAssigned) -> None:
        self._queue("rider", event.rider_id, "delivery_assigned", event, order_id=event.order_id)

    def _on_bid_submitted(self, event: BidSubmitted) -> None:
        self._queue("role", "FinanceManager", "bid_received", event, stock_request_id=event.stock_request_id)

    def _on_stock_request_awarded(self, event: StockRequestAwarded) -> None:
        self._queue("supplier", event.supplier_id, "bid_awarded", event, stock_request_id=event.stock_request_id)

    def _on_invoice_status_changed(self, event: InvoiceStatusChanged) -> None:
        self._queue("invoice", event.invoice_id, f"invoice_{event.to_status}", event)

    def _on_user_status_changed(self, event: UserStatusChanged) -> None:
        template = "account_disabled" if event.disabled else f"account_{event.status}"
        self._queue("user", event.user_id, template, event)

    def _queue(self, audience: str, recipient: str, template: str, event: DomainEvent, **fields) -> None:
        self._logger.info(
            "customer_notification_queued" if audience == "customer" else "notification_queued",
            extra={
                "audience": audience,
                "recipient": recipient,
                "template": template,
                "event_type": type(event).__name__,
                "event_id": event.event_id,
                **fields,
            },
        )


_NOTIFICATIONS = NotificationService()


def get_notification_service() -> NotificationService:
    return _NOTIFICATIONS
