from __future__ import annotations

from typing import Any, Dict, Iterable

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class StockRequestRepository(BaseRepository):
    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO stock_requests (
                id, product_id, product_name, requested_quantity, requester_id, requester_name,
                notes, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 'pending_bids', ?, ?)
            """,
            (
                record["id"],
                record["product_id"],
                record["product_name"],
                record["requested_quantity"],
                record["requester_id"],
                record.get("requester_name"),
                record.get("notes"),
                now,
                now,
            ),
        )

    def get(self, db, request_id: str, *, with_bids: bool = True) -> dict | None:
        row = db.execute("SELECT * FROM stock_requests WHERE id = ? LIMIT 1", (request_id,)).fetchone()
        if row is None:
            return None
        record = dict(row)
        if with_bids:
            record["bids"] = self.list_bids(db, request_id)
        return record

    def list_requests(
        self,
        db,
        *,
        statuses: Iterable[str] | None = None,
        supplier_id: str | None = None,
        requester_id: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses = []
        params: list = []
        status_list = list(statuses or [])
        if status_list:
            clauses.append(f"status IN ({', '.join('?' for _ in status_list)})")
            params.extend(status_list)
        if supplier_id:
            clauses.append("supplier_id = ?")
            params.append(supplier_id)
        if requester_id:
            clauses.append("requester_id = ?")
            params.append(requester_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"SELECT * FROM stock_requests {where} ORDER BY created_at DESC, id ASC LIMIT ?",
            (*params, int(limit)),
        ).fetchall()
        records = self.rows_to_dicts(rows)
        for record in records:
            record["bids"] = self.list_bids(db, record["id"])
        return records

    def list_bids(self, db, request_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, stock_request_id, supplier_id, supplier_name, price_per_unit, tax_rate, notes, created_at
            FROM stock_request_bids
            WHERE stock_request_id = ?
            ORDER BY id ASC
            """,
            (request_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_bid(self, db, request_id: str, bid_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM stock_request_bids WHERE id = ? AND stock_request_id = ?",
            (bid_id, request_id),
        ).fetchone()
        return dict(row) if row else None

    def add_bid(
        self,
        db,
        request_id: str,
        *,
        supplier_id: str,
        supplier_name: str,
        price_per_unit: float,
        tax_rate: float | None,
        notes: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO stock_request_bids (
                stock_request_id, supplier_id, supplier_name, price_per_unit, tax_rate, notes, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (request_id, supplier_id, supplier_name, price_per_unit, tax_rate, notes, utc_now_iso()),
        )
        return self.inserted_id(cursor)

    def apply_transition(
        self,
        db,
        request_id: str,
        *,
        sources: Iterable[str],
        target: str,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
        require_no_winner: bool = False,
    ) -> bool:
        """Conditional status change; ``False`` means the row was not in an expected state."""
        return self.guarded_update(
            db,
            "stock_requests",
            request_id,
            assignments={"status": target, "updated_at": utc_now_iso(), **(updates or {})},
            sources=sources,
            guards=guards,
            conditions=("winning_bid_id IS NULL",) if require_no_winner else (),
        )
