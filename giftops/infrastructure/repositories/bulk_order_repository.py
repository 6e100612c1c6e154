from __future__ import annotations

from typing import Any, Dict

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class BulkOrderRepository(BaseRepository):
    json_columns = ("items_json",)

    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO bulk_order_requests (
                id, requester_id, requester_name, requester_email, requester_phone, company_name,
                desired_delivery_date, items_json, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending_review', ?, ?)
            """,
            (
                record["id"],
                record["requester_id"],
                record.get("requester_name"),
                record.get("requester_email"),
                record.get("requester_phone"),
                record.get("company_name"),
                record.get("desired_delivery_date"),
                self.dump_json(record["items"]),
                now,
                now,
            ),
        )

    def get(self, db, request_id: str) -> dict | None:
        row = db.execute("SELECT * FROM bulk_order_requests WHERE id = ? LIMIT 1", (request_id,)).fetchone()
        return self.hydrate(row)

    def list_requests(self, db, *, requester_id: str | None = None, status: str | None = None) -> list[dict]:
        clauses = []
        params: list = []
        if requester_id:
            clauses.append("requester_id = ?")
            params.append(requester_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"SELECT * FROM bulk_order_requests {where} ORDER BY created_at DESC, id ASC",
            tuple(params),
        ).fetchall()
        return self.hydrate_all(rows)

    def apply_transition(self, db, request_id: str, *, sources, target: str, updates: Dict[str, Any] | None = None) -> bool:
        return self.guarded_update(
            db,
            "bulk_order_requests",
            request_id,
            assignments={"status": target, "updated_at": utc_now_iso(), **(updates or {})},
            sources=sources,
        )
