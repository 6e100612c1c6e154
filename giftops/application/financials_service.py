from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from giftops.domain.contracts import Actor
from giftops.infrastructure.repositories import InvoiceRepository, OrderRepository, ProductRepository
from giftops.policies import ADMIN, FINANCE_MANAGER, require_roles
from giftops.validation import iso_date
from giftops.workflow.financials import build_financial_summary


class FinancialsService:
    def __init__(
        self,
        orders: OrderRepository | None = None,
        invoices: InvoiceRepository | None = None,
        products: ProductRepository | None = None,
    ) -> None:
        self.orders = orders or OrderRepository()
        self.invoices = invoices or InvoiceRepository()
        self.products = products or ProductRepository()
        self._logger = logging.getLogger("giftops")

    def summary(
        self,
        db,
        actor: Actor,
        start_date: Any = None,
        end_date: Any = None,
        *,
        today: date | None = None,
    ) -> dict:
        require_roles(actor.role, FINANCE_MANAGER, ADMIN)
        start = _to_date(iso_date(start_date, "start_date"))
        end = _to_date(iso_date(end_date, "end_date"))
        if start and end and start > end:
            start, end = end, start

        orders = self.orders.list_paid(
            db,
            since=start.isoformat() if start else None,
            before=(end + timedelta(days=1)).isoformat() if end else None,
        )
        invoices = self.invoices.list_paid(
            db,
            since=start.isoformat() if start else None,
            until=end.isoformat() if end else None,
        )
        base_prices = {product["id"]: product.get("price") for product in self.products.list_products(db, limit=10_000)}

        summary = build_financial_summary(orders, invoices, base_prices, start=start, end=end, today=today)
        self._logger.info(
            "financial_summary_built",
            extra={
                "actor_id": actor.uid,
                "start_date": summary["period"]["start_date"],
                "end_date": summary["period"]["end_date"],
                "sales_count": summary["sales_count"],
            },
        )
        return summary


def _to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None
