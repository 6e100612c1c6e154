from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, List, Type

from giftops.observability import observe_domain_event_emitted


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)
    actor_id: str = ""


@dataclass(frozen=True, kw_only=True)
class OrderPlaced(DomainEvent):
    order_id: str
    customer_id: str
    total_amount: float


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    order_id: str
    action: str
    from_status: str
    to_status: str
    customer_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True, kw_only=True)
class RiderAssigned(DomainEvent):
    order_id: str
    rider_id: str
    rider_name: str = ""


@dataclass(frozen=True, kw_only=True)
class BidSubmitted(DomainEvent):
    stock_request_id: str
    bid_id: int
    supplier_id: str
    price_per_unit: float


@dataclass(frozen=True, kw_only=True)
class StockRequestAwarded(DomainEvent):
    stock_request_id: str
    bid_id: int
    supplier_id: str
    supplier_price: float


@dataclass(frozen=True, kw_only=True)
class StockReceived(DomainEvent):
    stock_request_id: str
    product_id: str
    received_quantity: int


@dataclass(frozen=True, kw_only=True)
class InvoiceSubmitted(DomainEvent):
    invoice_id: str
    invoice_number: str
    supplier_id: str
    total_amount: float
    stock_request_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class InvoiceStatusChanged(DomainEvent):
    invoice_id: str
    from_status: str
    to_status: str


@dataclass(frozen=True, kw_only=True)
class UserStatusChanged(DomainEvent):
    user_id: str
    status: str
    disabled: bool = False


class EventBus:
    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("giftops")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        observe_domain_event_emitted(type(event).__name__)
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("event_handler_failed", extra={"event_type": type(event).__name__})

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS


def reset_event_bus_for_tests() -> None:
    _DEFAULT_EVENT_BUS.clear()
