from __future__ import annotations

from typing import Any, Dict

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


_PRODUCT_FIELDS = (
    "name",
    "description",
    "price",
    "supplier_price",
    "published",
    "image_url",
    "stock",
    "categories_json",
    "supplier",
    "customization_options_json",
    "customization_group_id",
)


class ProductRepository(BaseRepository):
    json_columns = ("categories_json", "customization_options_json")
    bool_columns = ("published",)

    def _to_columns(self, record: Dict[str, Any]) -> Dict[str, Any]:
        columns: Dict[str, Any] = {}
        for field in _PRODUCT_FIELDS:
            key = field[: -len("_json")] if field.endswith("_json") else field
            if key not in record:
                continue
            value = record[key]
            if field.endswith("_json"):
                value = self.dump_json(value or [])
            elif field == "published":
                value = 1 if value else 0
            columns[field] = value
        return columns

    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        columns = {"id": record["id"], **self._to_columns(record), "created_at": now, "updated_at": now}
        db.execute(
            f"INSERT INTO products ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(columns.values()),
        )

    def update(self, db, product_id: str, record: Dict[str, Any]) -> bool:
        columns = self._to_columns(record)
        if not columns:
            return self.get(db, product_id) is not None
        return self.guarded_update(
            db,
            "products",
            product_id,
            assignments={**columns, "updated_at": utc_now_iso()},
        )

    def get(self, db, product_id: str) -> dict | None:
        row = db.execute("SELECT * FROM products WHERE id = ? LIMIT 1", (product_id,)).fetchone()
        return self.hydrate(row)

    def list_products(self, db, *, published_only: bool = False, limit: int = 500) -> list[dict]:
        where = "WHERE published = 1" if published_only else ""
        rows = db.execute(
            f"SELECT * FROM products {where} ORDER BY name ASC, id ASC LIMIT ?",
            (int(limit),),
        ).fetchall()
        return self.hydrate_all(rows)

    def delete(self, db, product_id: str) -> bool:
        cursor = db.execute("DELETE FROM products WHERE id = ?", (product_id,))
        return cursor.rowcount == 1

    def decrement_stock(self, db, product_id: str, quantity: int) -> bool:
        cursor = db.execute(
            "UPDATE products SET stock = stock - ?, updated_at = ? WHERE id = ? AND stock >= ?",
            (quantity, utc_now_iso(), product_id, quantity),
        )
        return cursor.rowcount == 1

    def increment_stock(self, db, product_id: str, quantity: int) -> bool:
        cursor = db.execute(
            "UPDATE products SET stock = stock + ?, updated_at = ? WHERE id = ?",
            (quantity, utc_now_iso(), product_id),
        )
        return cursor.rowcount == 1


class CustomizationGroupRepository(BaseRepository):
    json_columns = ("options_json",)

    def create(self, db, group_id: str, name: str, options: list) -> None:
        now = utc_now_iso()
        db.execute(
            "INSERT INTO customization_groups (id, name, options_json, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (group_id, name, self.dump_json(options), now, now),
        )

    def update(self, db, group_id: str, *, name: str | None = None, options: list | None = None) -> bool:
        assignments: Dict[str, Any] = {"updated_at": utc_now_iso()}
        if name is not None:
            assignments["name"] = name
        if options is not None:
            assignments["options_json"] = self.dump_json(options)
        return self.guarded_update(db, "customization_groups", group_id, assignments=assignments)

    def get(self, db, group_id: str | None) -> dict | None:
        if not group_id:
            return None
        row = db.execute("SELECT * FROM customization_groups WHERE id = ? LIMIT 1", (group_id,)).fetchone()
        return self.hydrate(row)

    def list_groups(self, db) -> list[dict]:
        rows = db.execute("SELECT * FROM customization_groups ORDER BY name ASC, id ASC").fetchall()
        return self.hydrate_all(rows)

    def delete(self, db, group_id: str) -> bool:
        cursor = db.execute("DELETE FROM customization_groups WHERE id = ?", (group_id,))
        return cursor.rowcount == 1
