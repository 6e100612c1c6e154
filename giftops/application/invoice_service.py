from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict

from flask import current_app

from giftops.application.stock_request_service import StockRequestService
from giftops.core.event_bus import EventBus, InvoiceStatusChanged, InvoiceSubmitted, get_event_bus
from giftops.db import new_id, utc_now_iso
from giftops.domain.contracts import Actor, InvoiceCreateInput
from giftops.errors import PermissionError, SystemError, not_found, validation_failed
from giftops.infrastructure.repositories import InvoiceRepository, StatusEventRepository
from giftops.observability import observe_transition_applied
from giftops.policies import ADMIN, FINANCE_MANAGER, SUPPLIER, require_roles
from giftops.validation import iso_date, optional_text, required_text
from giftops.workflow.invoices import (
    INVOICE_FLOW,
    LIST_FILTERS,
    PAYMENT_METHOD,
    compute_totals,
    generate_invoice_number,
    generate_payment_reference,
    is_overdue,
    matches_filter,
)


_NUMBER_ATTEMPTS = 10


class InvoiceService:
    def __init__(
        self,
        invoices: InvoiceRepository | None = None,
        status_events: StatusEventRepository | None = None,
        stock_requests: StockRequestService | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.invoices = invoices or InvoiceRepository()
        self.status_events = status_events or StatusEventRepository()
        self.stock_requests = stock_requests or StockRequestService()
        self._event_bus = event_bus
        self._logger = logging.getLogger("giftops")

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus or get_event_bus()

    def load(self, db, invoice_id: str) -> dict:
        invoice = self.invoices.get(db, invoice_id)
        if invoice is None:
            raise not_found("invoice", invoice_id)
        return invoice

    def get_invoice(self, db, actor: Actor, invoice_id: str) -> dict:
        require_roles(actor.role, SUPPLIER, FINANCE_MANAGER, ADMIN)
        invoice = self.load(db, invoice_id)
        if actor.role == SUPPLIER and invoice.get("supplier_id") != actor.uid:
            raise PermissionError()
        return self._present(invoice)

    def list_invoices(self, db, actor: Actor, list_filter: str = "all") -> list[dict]:
        require_roles(actor.role, SUPPLIER, FINANCE_MANAGER, ADMIN)
        list_filter = (list_filter or "all").strip()
        if list_filter not in LIST_FILTERS:
            raise validation_failed("status_invalid", "filter")
        supplier_id = actor.uid if actor.role == SUPPLIER else None
        today = date.today()
        return [
            self._present(invoice, today)
            for invoice in self.invoices.list_invoices(db, supplier_id=supplier_id)
            if matches_filter(invoice, list_filter, today)
        ]

    def create(self, db, actor: Actor, create_input: InvoiceCreateInput) -> dict:
        """Supplier invoice with server-side totals.

        When linked to a stock request, the invoice insert and the request's
        fulfillment commit together or not at all.
        """
        require_roles(actor.role, SUPPLIER)
        if not create_input.items:
            raise validation_failed("items_required", "items")
        for item in create_input.items:
            required_text(item.description, "description")
            if item.quantity is None or item.quantity < 1:
                raise validation_failed("quantity_invalid", "quantity")
            if item.unit_price is None or item.unit_price < 0:
                raise validation_failed("amount_invalid", "unit_price")

        tax_rate = create_input.tax_rate
        if tax_rate is None:
            tax_rate = float(current_app.config.get("DEFAULT_TAX_RATE", 5.0))
        if not 0 <= tax_rate <= 100:
            raise validation_failed("tax_rate_invalid", "tax_rate")

        invoice_date = iso_date(create_input.invoice_date, "invoice_date") or date.today().isoformat()
        due_date = iso_date(create_input.due_date, "due_date")
        if due_date is None:
            due_days = int(current_app.config.get("INVOICE_DUE_DAYS", 30))
            due_date = (date.fromisoformat(invoice_date) + timedelta(days=due_days)).isoformat()

        totals = compute_totals(
            [
                {"description": item.description.strip(), "quantity": item.quantity, "unit_price": item.unit_price}
                for item in create_input.items
            ],
            tax_rate,
        )
        request_record = None
        if create_input.stock_request_id:
            request_record = self.stock_requests.load(db, create_input.stock_request_id)

        invoice_id = new_id()
        record = {
            "id": invoice_id,
            "invoice_number": self._unique_number(db),
            "supplier_id": actor.uid,
            "supplier_name": actor.display_name,
            "client_name": current_app.config.get("INVOICE_CLIENT_NAME", "Zellow Enterprises"),
            "invoice_date": invoice_date,
            "due_date": due_date,
            "status": "pending_approval",
            "notes": optional_text(create_input.notes),
            "stock_request_id": create_input.stock_request_id,
            **totals,
        }

        with db.transaction():
            self.invoices.create(db, record)
            self._record(db, actor, invoice_id, None, "pending_approval", "invoice_submitted")
            if request_record is not None:
                fulfilled = create_input.fulfilled_quantity
                if fulfilled is None:
                    fulfilled = int(request_record["requested_quantity"])
                self.stock_requests.fulfill_in_transaction(
                    db,
                    actor,
                    request_record,
                    fulfilled_quantity=fulfilled,
                    notes=optional_text(create_input.notes),
                    invoice_id=invoice_id,
                )

        self._logger.info(
            "invoice_submitted",
            extra={
                "invoice_id": invoice_id,
                "invoice_number": record["invoice_number"],
                "supplier_id": actor.uid,
                "stock_request_id": create_input.stock_request_id,
            },
        )
        self.event_bus.publish(
            InvoiceSubmitted(
                invoice_id=invoice_id,
                invoice_number=record["invoice_number"],
                supplier_id=actor.uid,
                total_amount=record["total_amount"],
                stock_request_id=create_input.stock_request_id,
                actor_id=actor.uid,
            )
        )
        return self._present(self.load(db, invoice_id))

    def approve(self, db, actor: Actor, invoice_id: str, notes: str | None = None) -> dict:
        updates: Dict[str, Any] = {"finance_manager_id": actor.uid, "finance_manager_name": actor.display_name}
        extra = optional_text(notes)
        if extra:
            updates["notes"] = extra
        return self._apply(db, actor, invoice_id, "approve", updates=updates)

    def reject(self, db, actor: Actor, invoice_id: str, reason: str | None) -> dict:
        require_roles(actor.role, *INVOICE_FLOW.get("reject").roles)
        reason_text = required_text(reason, "reason", code="reason_required")
        invoice = self.load(db, invoice_id)
        notes = f"Rejected by finance: {reason_text}."
        if invoice.get("notes"):
            notes = f"{notes} Previous notes: {invoice['notes']}"
        return self._apply(
            db,
            actor,
            invoice_id,
            "reject",
            updates={"notes": notes, "finance_manager_id": actor.uid, "finance_manager_name": actor.display_name},
            reason=reason_text,
        )

    def mark_paid(self, db, actor: Actor, invoice_id: str, transaction_id: str | None = None) -> dict:
        updates = {
            "payment_method": PAYMENT_METHOD,
            "payment_transaction_id": optional_text(transaction_id) or generate_payment_reference(),
            "paid_at": utc_now_iso(),
            "finance_manager_id": actor.uid,
            "finance_manager_name": actor.display_name,
        }
        return self._apply(db, actor, invoice_id, "mark_paid", updates=updates)

    def cancel(self, db, actor: Actor, invoice_id: str) -> dict:
        guards = {"supplier_id": actor.uid} if actor.role == SUPPLIER else None
        return self._apply(db, actor, invoice_id, "cancel", guards=guards)

    def _apply(
        self,
        db,
        actor: Actor,
        invoice_id: str,
        action: str,
        *,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> dict:
        transition = INVOICE_FLOW.get(action)
        require_roles(actor.role, *transition.roles)
        invoice = self.load(db, invoice_id)
        if actor.role == SUPPLIER and invoice.get("supplier_id") != actor.uid:
            raise PermissionError()
        INVOICE_FLOW.ensure_allowed(action, invoice["status"])

        with db.transaction():
            changed = self.invoices.apply_transition(
                db,
                invoice_id,
                sources=transition.sources,
                target=transition.target,
                updates=updates,
                guards=guards,
            )
            if not changed:
                current = self.invoices.get(db, invoice_id)
                if current is None:
                    raise not_found("invoice", invoice_id)
                raise INVOICE_FLOW.rejection(action, current["status"])
            self._record(db, actor, invoice_id, invoice["status"], transition.target, reason or action)

        observe_transition_applied("invoice", action)
        self._logger.info(
            "invoice_transition_applied",
            extra={
                "invoice_id": invoice_id,
                "action": action,
                "from_status": invoice["status"],
                "to_status": transition.target,
                "actor_id": actor.uid,
            },
        )
        self.event_bus.publish(
            InvoiceStatusChanged(
                invoice_id=invoice_id,
                from_status=invoice["status"],
                to_status=transition.target,
                actor_id=actor.uid,
            )
        )
        return self._present(self.load(db, invoice_id))

    def _unique_number(self, db) -> str:
        for _ in range(_NUMBER_ATTEMPTS):
            number = generate_invoice_number()
            if not self.invoices.number_exists(db, number):
                return number
        raise SystemError(code="invoice_number_exhausted", message_key="unexpected_error")

    def _record(self, db, actor: Actor, invoice_id: str, from_status, to_status: str, reason: str) -> None:
        self.status_events.add_event(
            db,
            entity="invoice",
            entity_id=invoice_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            actor_id=actor.uid,
        )

    @staticmethod
    def _present(invoice: dict, today: date | None = None) -> dict:
        invoice["is_overdue"] = is_overdue(invoice, today)
        invoice["flow"] = INVOICE_FLOW.flow_meta(invoice["status"])
        return invoice
