from __future__ import annotations

from typing import Any, Dict, Iterable

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


_INSERT_COLUMNS = (
    "id",
    "customer_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "items_json",
    "sub_total",
    "shipping_cost",
    "total_amount",
    "status",
    "payment_status",
    "payment_method",
    "shipping_address_json",
    "shipping_region_id",
    "shipping_method_id",
    "shipping_method_name",
    "delivery_lat",
    "delivery_lng",
    "is_gift",
    "gift_details_json",
    "is_bulk_order",
    "bulk_order_request_id",
    "customer_notes",
    "estimated_delivery_time",
    "created_at",
    "updated_at",
)


class OrderRepository(BaseRepository):
    json_columns = ("items_json", "shipping_address_json", "gift_details_json")
    bool_columns = ("is_gift", "is_bulk_order")

    def hydrate(self, row: Any) -> dict | None:
        record = super().hydrate(row)
        if record is None:
            return None
        record["items"] = record.get("items") or []
        lat, lng = record.pop("delivery_lat", None), record.pop("delivery_lng", None)
        record["delivery_coordinates"] = {"lat": lat, "lng": lng} if lat is not None and lng is not None else None
        rating_value = record.pop("rating_value", None)
        rating = {
            "value": rating_value,
            "comment": record.pop("rating_comment", None),
            "rated_at": record.pop("rated_at", None),
            "user_id": record.pop("rated_by", None),
        }
        record["rating"] = rating if rating_value is not None else None
        return record

    def create(self, db, record: Dict[str, Any], *, actor_id: str | None, notes: str | None = None) -> None:
        now = utc_now_iso()
        values = {
            **record,
            "items_json": self.dump_json(record.get("items") or []),
            "shipping_address_json": self.dump_json(record.get("shipping_address")),
            "gift_details_json": self.dump_json(record.get("gift_details")),
            "is_gift": 1 if record.get("is_gift") else 0,
            "is_bulk_order": 1 if record.get("is_bulk_order") else 0,
            "created_at": now,
            "updated_at": now,
        }
        placeholders = ", ".join("?" for _ in _INSERT_COLUMNS)
        db.execute(
            f"INSERT INTO orders ({', '.join(_INSERT_COLUMNS)}) VALUES ({placeholders})",
            tuple(values.get(column) for column in _INSERT_COLUMNS),
        )
        self.append_history(db, record["id"], status=record["status"], actor_id=actor_id, notes=notes)

    def get(self, db, order_id: str, *, with_history: bool = True) -> dict | None:
        row = db.execute("SELECT * FROM orders WHERE id = ? LIMIT 1", (order_id,)).fetchone()
        order = self.hydrate(row)
        if order is not None and with_history:
            order["delivery_history"] = self.get_history(db, order_id)
        return order

    def get_status(self, db, order_id: str) -> str | None:
        row = db.execute("SELECT status FROM orders WHERE id = ?", (order_id,)).fetchone()
        return row["status"] if row else None

    def list_orders(
        self,
        db,
        *,
        statuses: Iterable[str] | None = None,
        customer_id: str | None = None,
        rider_id: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses = []
        params: list = []
        status_list = list(statuses or [])
        if status_list:
            clauses.append(f"status IN ({', '.join('?' for _ in status_list)})")
            params.extend(status_list)
        if customer_id:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if rider_id:
            clauses.append("rider_id = ?")
            params.append(rider_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"SELECT * FROM orders {where} ORDER BY created_at DESC, id ASC LIMIT ?",
            (*params, int(limit)),
        ).fetchall()
        return self.hydrate_all(rows)

    def list_paid(self, db, *, since: str | None = None, before: str | None = None) -> list[dict]:
        clauses = ["payment_status = 'paid'"]
        params: list = []
        if since:
            clauses.append("created_at >= ?")
            params.append(since)
        if before:
            clauses.append("created_at < ?")
            params.append(before)
        rows = db.execute(
            f"SELECT * FROM orders WHERE {' AND '.join(clauses)} ORDER BY created_at ASC, id ASC",
            tuple(params),
        ).fetchall()
        return self.hydrate_all(rows)

    def count_by_status(self, db) -> Dict[str, int]:
        rows = db.execute("SELECT status, COUNT(*) AS total FROM orders GROUP BY status").fetchall()
        return {row["status"]: int(row["total"]) for row in rows}

    def get_history(self, db, order_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT status, occurred_at, notes, actor_id, lat, lng
            FROM order_history
            WHERE order_id = ?
            ORDER BY id ASC
            """,
            (order_id,),
        ).fetchall()
        history = []
        for row in rows:
            entry = {
                "status": row["status"],
                "timestamp": row["occurred_at"],
                "notes": row["notes"],
                "actor_id": row["actor_id"],
            }
            if row["lat"] is not None and row["lng"] is not None:
                entry["location"] = {"lat": row["lat"], "lng": row["lng"]}
            history.append(entry)
        return history

    def append_history(
        self,
        db,
        order_id: str,
        *,
        status: str,
        actor_id: str | None,
        notes: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO order_history (order_id, status, occurred_at, notes, actor_id, lat, lng)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (order_id, status, utc_now_iso(), notes, actor_id, lat, lng),
        )

    def apply_transition(
        self,
        db,
        order_id: str,
        *,
        sources: Iterable[str],
        target: str,
        actor_id: str | None,
        notes: str | None = None,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> bool:
        """Move the order to ``target`` only if it is still in one of ``sources``.

        Returns ``False`` when no row matched, leaving the order untouched.
        Must run inside ``db.transaction()`` so the status change and the
        history entry commit together.
        """
        changed = self.guarded_update(
            db,
            "orders",
            order_id,
            assignments={"status": target, "updated_at": utc_now_iso(), **(updates or {})},
            sources=sources,
            guards=guards,
        )
        if not changed:
            return False
        self.append_history(db, order_id, status=target, actor_id=actor_id, notes=notes, lat=lat, lng=lng)
        return True

    def update_fields(self, db, order_id: str, fields: Dict[str, Any], *, expected_status: str | None = None) -> bool:
        return self.guarded_update(
            db,
            "orders",
            order_id,
            assignments={**fields, "updated_at": utc_now_iso()},
            sources=[expected_status] if expected_status is not None else None,
        )

    def set_rating(self, db, order_id: str, *, user_id: str, value: int, comment: str | None) -> bool:
        cursor = db.execute(
            """
            UPDATE orders
            SET rating_value = ?, rating_comment = ?, rated_at = ?, rated_by = ?
            WHERE id = ? AND customer_id = ? AND status = 'delivered' AND rating_value IS NULL
            """,
            (value, comment, utc_now_iso(), user_id, order_id, user_id),
        )
        return cursor.rowcount == 1
