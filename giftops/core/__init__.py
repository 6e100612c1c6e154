from giftops.core.event_bus import (
    BidSubmitted,
    DomainEvent,
    EventBus,
    InvoiceStatusChanged,
    InvoiceSubmitted,
    OrderPlaced,
    OrderStatusChanged,
    RiderAssigned,
    StockReceived,
    StockRequestAwarded,
    UserStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "OrderPlaced",
    "OrderStatusChanged",
    "RiderAssigned",
    "BidSubmitted",
    "StockRequestAwarded",
    "StockReceived",
    "InvoiceSubmitted",
    "InvoiceStatusChanged",
    "UserStatusChanged",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
