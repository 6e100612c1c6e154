from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class Actor:
    uid: str
    role: str
    display_name: str
    email: str = ""

    @classmethod
    def from_user_row(cls, row: Dict[str, Any]) -> "Actor":
        email = str(row.get("email") or "")
        return cls(
            uid=str(row["uid"]),
            role=str(row.get("role") or ""),
            display_name=str(row.get("display_name") or email.split("@")[0]),
            email=email,
        )


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    customizations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GiftDetails:
    recipient_name: str
    recipient_contact_method: str = ""
    recipient_contact_value: str = ""
    gift_message: str = ""
    notify_recipient: bool = False
    show_prices_to_recipient: bool = False
    recipient_can_view_and_track: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient_name": self.recipient_name,
            "recipient_contact_method": self.recipient_contact_method,
            "recipient_contact_value": self.recipient_contact_value,
            "gift_message": self.gift_message,
            "notify_recipient": self.notify_recipient,
            "show_prices_to_recipient": self.show_prices_to_recipient,
            "recipient_can_view_and_track": self.recipient_can_view_and_track,
        }


@dataclass(frozen=True)
class CheckoutInput:
    items: List[CartLine]
    shipping_address: Dict[str, Any]
    shipping_region_id: str
    shipping_method_id: str
    payment_method: str
    customer_phone: str = ""
    customer_notes: str | None = None
    gift_details: GiftDetails | None = None
    delivery_lat: float | None = None
    delivery_lng: float | None = None


@dataclass(frozen=True)
class StockRequestCreateInput:
    product_id: str
    requested_quantity: int
    notes: str | None = None


@dataclass(frozen=True)
class BidInput:
    price_per_unit: float
    tax_rate: float | None = None
    notes: str | None = None


@dataclass(frozen=True)
class InvoiceItemInput:
    description: str
    quantity: int
    unit_price: float


@dataclass(frozen=True)
class InvoiceCreateInput:
    items: List[InvoiceItemInput]
    tax_rate: float | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    notes: str | None = None
    stock_request_id: str | None = None
    fulfilled_quantity: int | None = None


@dataclass(frozen=True)
class BulkOrderItemInput:
    product_id: str
    quantity: int
    notes: str | None = None
    customizations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BulkOrderCreateInput:
    items: List[BulkOrderItemInput]
    requester_phone: str = ""
    company_name: str | None = None
    desired_delivery_date: str | None = None


@dataclass(frozen=True)
class TaskCreateInput:
    order_id: str
    task_type: str
    description: str
    item_name: str | None = None
    assignee_id: str | None = None
    due_date: str | None = None
    notes: str | None = None
    customizations: Dict[str, Any] | None = None


@dataclass(frozen=True)
class RegistrationInput:
    email: str
    password: str
    display_name: str | None = None
    role: str = "Customer"
    phone: str | None = None
    county: str | None = None
    town: str | None = None


@dataclass(frozen=True)
class FeedbackThreadInput:
    subject: str
    message: str
    target_role: str
    target_user_id: str | None = None
