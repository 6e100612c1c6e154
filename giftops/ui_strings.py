from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "GiftOps",
    "order": "Order",
    "stock_request": "Stock request",
    "bid": "Bid",
    "invoice": "Invoice",
    "task": "Production task",
    "bulk_order": "Bulk order request",
    "feedback": "Feedback",
    "rider": "Rider",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "order": [
        {"key": "pending", "label": "Pending", "description": "Order created, waiting for the customer to confirm."},
        {
            "key": "pending_finance_approval",
            "label": "Awaiting finance",
            "description": "Finance must confirm the payment before production.",
        },
        {"key": "processing", "label": "Processing", "description": "Payment confirmed, production can start."},
        {"key": "in_production", "label": "In production", "description": "Technicians are working on the items."},
        {
            "key": "awaiting_assignment",
            "label": "Awaiting rider",
            "description": "Production finished, waiting for a rider.",
        },
        {"key": "assigned", "label": "Assigned", "description": "A rider has been assigned."},
        {"key": "out_for_delivery", "label": "Out for delivery", "description": "The rider is on the way."},
        {
            "key": "delivery_attempted",
            "label": "Delivery attempted",
            "description": "The rider could not hand over the order.",
        },
        {"key": "shipped", "label": "Shipped", "description": "Handed to an external courier."},
        {"key": "delivered", "label": "Delivered", "description": "The order reached the customer."},
        {"key": "cancelled", "label": "Cancelled", "description": "The order will not be fulfilled."},
    ],
    "stock_request": [
        {"key": "pending_bids", "label": "Open for bids", "description": "Suppliers can submit bids."},
        {"key": "pending_award", "label": "Awaiting award", "description": "Bids received, finance must award."},
        {"key": "awarded", "label": "Awarded", "description": "A supplier bid has been selected."},
        {
            "key": "awaiting_fulfillment",
            "label": "Awaiting fulfillment",
            "description": "The supplier accepted the award.",
        },
        {
            "key": "awaiting_receipt",
            "label": "Awaiting receipt",
            "description": "Stock shipped and invoiced by the supplier.",
        },
        {"key": "received", "label": "Received", "description": "Stock checked into inventory."},
        {"key": "rejected_finance", "label": "Rejected by finance", "description": "Finance declined the request."},
        {"key": "cancelled", "label": "Cancelled", "description": "The request was withdrawn."},
    ],
    "invoice": [
        {"key": "draft", "label": "Draft", "description": "Invoice in preparation."},
        {"key": "sent", "label": "Sent", "description": "Invoice sent to the client."},
        {"key": "pending_approval", "label": "Pending approval", "description": "Waiting for finance review."},
        {
            "key": "approved_for_payment",
            "label": "Approved for payment",
            "description": "Finance approved the invoice.",
        },
        {"key": "paid", "label": "Paid", "description": "Payment completed."},
        {"key": "overdue", "label": "Overdue", "description": "Due date passed without payment."},
        {"key": "cancelled", "label": "Cancelled", "description": "Invoice withdrawn."},
        {"key": "rejected", "label": "Rejected", "description": "Finance rejected the invoice."},
        {"key": "reconciled", "label": "Reconciled", "description": "Payment reconciled with the books."},
    ],
    "task": [
        {"key": "pending", "label": "Pending", "description": "Task created, not started."},
        {"key": "in-progress", "label": "In progress", "description": "The technician is working on it."},
        {"key": "needs_approval", "label": "Needs approval", "description": "Work submitted for review."},
        {"key": "completed", "label": "Completed", "description": "Work approved."},
        {"key": "blocked", "label": "Blocked", "description": "Work cannot continue."},
        {"key": "rejected", "label": "Rejected", "description": "Work must be redone."},
    ],
    "bulk_order": [
        {"key": "pending_review", "label": "Pending review", "description": "Waiting for an admin."},
        {"key": "approved", "label": "Approved", "description": "Converted into an order."},
        {"key": "rejected", "label": "Rejected", "description": "The request was declined."},
        {"key": "fulfilled", "label": "Fulfilled", "description": "The converted order was delivered."},
    ],
    "user": [
        {"key": "pending", "label": "Pending", "description": "Account waiting for approval."},
        {"key": "approved", "label": "Approved", "description": "Account can sign in."},
        {"key": "rejected", "label": "Rejected", "description": "Account registration declined."},
    ],
    "feedback": [
        {"key": "open", "label": "Open", "description": "New conversation."},
        {"key": "replied", "label": "Replied", "description": "A reply has been posted."},
        {"key": "closed", "label": "Closed", "description": "The conversation is closed."},
    ],
}


UI_TEXTS: Dict[str, str] = {
    "title.login": "Sign in | GiftOps",
    "title.register": "Create account | GiftOps",
    "title.dashboard": "Dashboard | GiftOps",
    "page.dashboard": "Dashboard",
    "page.admin": "Administration",
    "page.admin.users": "Users",
    "page.admin.orders": "All orders",
    "page.admin.products": "Products",
    "page.admin.shipping": "Shipping rates",
    "page.admin.bulk_orders": "Bulk order requests",
    "page.finance": "Finance",
    "page.finance.orders": "Payments awaiting approval",
    "page.finance.stock_requests": "Stock requests",
    "page.finance.invoices": "Supplier invoices",
    "page.finance.financials": "Financials",
    "page.dispatch": "Dispatch",
    "page.rider": "My deliveries",
    "page.inventory": "Stock requests",
    "page.supplier": "Open stock requests",
    "page.supplier.invoices": "My invoices",
    "page.service": "Production tasks",
    "page.tasks": "My tasks",
    "page.orders": "My orders",
    "page.feedback": "Feedback",
    "label.empty": "Nothing to show yet.",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "error": {
        "unexpected_error": "The operation could not be completed.",
        "action_invalid": "This action is not valid.",
        "validation_error": "Some of the submitted data is invalid.",
        "auth_required": "Authentication required.",
        "invalid_credentials": "Invalid email or password.",
        "account_disabled": "This account has been disabled.",
        "account_not_approved": "This account is waiting for approval.",
        "email_taken": "An account with this email already exists.",
        "permission_denied": "You do not have permission for this action.",
        "not_found": "Record not found.",
        "conflict": "The record was changed by someone else.",
        "transition_not_allowed": "This action is not allowed in the current status.",
        "csrf_invalid": "The form expired. Reload the page and try again.",
        "rate_limit_exceeded": "Too many requests. Try again shortly.",
        "json_body_required": "Send the request body as JSON.",
        "routing_unavailable": "The routing service is unavailable.",
        "order_not_found": "Order not found.",
        "stock_request_not_found": "Stock request not found.",
        "bid_not_found": "Bid not found.",
        "invoice_not_found": "Invoice not found.",
        "product_not_found": "Product not found.",
        "customization_group_not_found": "Customization group not found.",
        "shipping_region_not_found": "Shipping region not found.",
        "shipping_method_not_found": "Shipping method not found.",
        "shipping_rate_not_found": "Shipping rate not found.",
        "user_not_found": "User not found.",
        "task_not_found": "Task not found.",
        "bulk_order_not_found": "Bulk order request not found.",
        "feedback_thread_not_found": "Conversation not found.",
        "tracking_unavailable": "Tracking is not available for this order.",
        "field_required": "A required field is missing.",
        "reason_required": "A reason is required.",
        "quantity_invalid": "Quantity must be a positive whole number.",
        "price_invalid": "Price must be greater than zero.",
        "amount_invalid": "Amount must be zero or greater.",
        "tax_rate_invalid": "Tax rate must be between 0 and 100.",
        "rating_invalid": "Rating must be between 1 and 5.",
        "rating_exists": "This order has already been rated.",
        "color_invalid": "Color must be a #rrggbb value.",
        "date_invalid": "Dates must use the ISO format.",
        "role_invalid": "Unknown role.",
        "status_invalid": "Unknown status.",
        "payment_method_invalid": "Unknown payment method.",
        "items_required": "At least one item is required.",
        "insufficient_stock": "Not enough stock for one of the items.",
        "product_unavailable": "Product is not available.",
        "customization_required": "A required customization is missing.",
        "rider_invalid": "The selected user cannot take deliveries.",
        "technician_invalid": "The selected user cannot take this task.",
        "fulfilled_quantity_invalid": "Fulfilled quantity must be between 1 and the requested quantity.",
        "received_quantity_invalid": "Received quantity must be between 1 and the fulfilled quantity.",
        "payment_not_refundable": "Only paid orders can be refunded.",
        "order_not_ready_for_tasks": "Tasks can only be created for orders in production.",
        "thread_closed": "This conversation is closed.",
        "coordinates_missing": "Both rider and delivery coordinates are required.",
        "password_too_short": "Password must have at least 8 characters.",
        "shipping_rate_exists": "A rate for this region and method already exists.",
        "customization_invalid": "One of the customization values is not valid.",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_ui_text(key: str, default: str | None = None) -> str:
    if key in UI_TEXTS:
        return UI_TEXTS[key]
    if default is not None:
        return default
    return key


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def template_bundle() -> Dict[str, object]:
    return {
        "ui_terms": FRIENDLY_TERMS,
        "ui_status_groups": STATUS_GROUPS,
        "ui_texts": UI_TEXTS,
        "status_label": status_label,
    }
