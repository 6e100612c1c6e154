from __future__ import annotations

from typing import Any, Dict

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository):
    json_columns = ("items_json",)

    def hydrate(self, row: Any) -> dict | None:
        record = super().hydrate(row)
        if record is None:
            return None
        record["payment_details"] = (
            {
                "method": record.get("payment_method"),
                "transaction_id": record.get("payment_transaction_id"),
                "paid_at": record.get("paid_at"),
            }
            if record.get("paid_at")
            else None
        )
        return record

    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO invoices (
                id, invoice_number, supplier_id, supplier_name, client_name, invoice_date, due_date,
                items_json, sub_total, tax_rate, tax_amount, total_amount, status, notes,
                stock_request_id, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record["id"],
                record["invoice_number"],
                record.get("supplier_id"),
                record.get("supplier_name"),
                record["client_name"],
                record["invoice_date"],
                record["due_date"],
                self.dump_json(record["items"]),
                record["sub_total"],
                record["tax_rate"],
                record["tax_amount"],
                record["total_amount"],
                record["status"],
                record.get("notes"),
                record.get("stock_request_id"),
                now,
                now,
            ),
        )

    def get(self, db, invoice_id: str) -> dict | None:
        row = db.execute("SELECT * FROM invoices WHERE id = ? LIMIT 1", (invoice_id,)).fetchone()
        return self.hydrate(row)

    def list_invoices(self, db, *, supplier_id: str | None = None, limit: int = 500) -> list[dict]:
        if supplier_id:
            rows = db.execute(
                "SELECT * FROM invoices WHERE supplier_id = ? ORDER BY invoice_date DESC, id ASC LIMIT ?",
                (supplier_id, int(limit)),
            ).fetchall()
        else:
            rows = db.execute(
                "SELECT * FROM invoices ORDER BY invoice_date DESC, id ASC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return self.hydrate_all(rows)

    def list_paid(self, db, *, since: str | None = None, until: str | None = None) -> list[dict]:
        clauses = ["status = 'paid'"]
        params: list = []
        if since:
            clauses.append("invoice_date >= ?")
            params.append(since)
        if until:
            clauses.append("invoice_date <= ?")
            params.append(until)
        rows = db.execute(
            f"SELECT * FROM invoices WHERE {' AND '.join(clauses)} ORDER BY invoice_date ASC, id ASC",
            tuple(params),
        ).fetchall()
        return self.hydrate_all(rows)

    def number_exists(self, db, invoice_number: str) -> bool:
        row = db.execute("SELECT 1 FROM invoices WHERE invoice_number = ?", (invoice_number,)).fetchone()
        return row is not None

    def apply_transition(
        self,
        db,
        invoice_id: str,
        *,
        sources,
        target: str,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
    ) -> bool:
        return self.guarded_update(
            db,
            "invoices",
            invoice_id,
            assignments={"status": target, "updated_at": utc_now_iso(), **(updates or {})},
            sources=sources,
            guards=guards,
        )
