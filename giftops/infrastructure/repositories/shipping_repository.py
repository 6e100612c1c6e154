from __future__ import annotations

from typing import Any, Dict

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


_TABLE_FIELDS: Dict[str, tuple] = {
    "shipping_regions": ("name", "county", "towns_json", "active"),
    "shipping_methods": ("name", "description", "duration", "base_price", "active"),
    "shipping_rates": ("region_id", "method_id", "custom_price", "notes", "active"),
}


class ShippingRepository(BaseRepository):
    """Regions, methods and rates share the same CRUD shape, keyed by table name."""

    json_columns = ("towns_json",)
    bool_columns = ("active",)

    def _to_columns(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        columns: Dict[str, Any] = {}
        for field in _TABLE_FIELDS[table]:
            key = field[: -len("_json")] if field.endswith("_json") else field
            if key not in record:
                continue
            value = record[key]
            if field.endswith("_json"):
                value = self.dump_json(value or [])
            elif field == "active":
                value = 1 if value else 0
            columns[field] = value
        return columns

    def create(self, db, table: str, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        columns = {"id": record["id"], **self._to_columns(table, record), "created_at": now, "updated_at": now}
        db.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(columns.values()),
        )

    def update(self, db, table: str, record_id: str, record: Dict[str, Any]) -> bool:
        columns = self._to_columns(table, record)
        return self.guarded_update(db, table, record_id, assignments={**columns, "updated_at": utc_now_iso()})

    def get(self, db, table: str, record_id: str) -> dict | None:
        row = db.execute(f"SELECT * FROM {table} WHERE id = ? LIMIT 1", (record_id,)).fetchone()
        return self.hydrate(row)

    def list_all(self, db, table: str, *, active_only: bool = False) -> list[dict]:
        where = "WHERE active = 1" if active_only else ""
        rows = db.execute(f"SELECT * FROM {table} {where} ORDER BY created_at ASC, id ASC").fetchall()
        return self.hydrate_all(rows)

    def delete(self, db, table: str, record_id: str) -> bool:
        cursor = db.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        return cursor.rowcount == 1

    def rates_for_region(self, db, region_id: str | None) -> list[dict]:
        rows = db.execute("SELECT * FROM shipping_rates WHERE region_id = ?", (region_id,)).fetchall()
        return self.hydrate_all(rows)

    def find_rate(self, db, region_id: str, method_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM shipping_rates WHERE region_id = ? AND method_id = ? LIMIT 1",
            (region_id, method_id),
        ).fetchone()
        return self.hydrate(row)
