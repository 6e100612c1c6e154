from __future__ import annotations

from typing import Any, Dict, Iterable

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class TaskRepository(BaseRepository):
    json_columns = ("customizations_json",)

    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO tasks (
                id, order_id, item_name, task_type, description, assignee_id, assignee_name, status,
                customizations_json, due_date, notes, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?)
            """,
            (
                record["id"],
                record["order_id"],
                record.get("item_name"),
                record["task_type"],
                record["description"],
                record.get("assignee_id"),
                record.get("assignee_name"),
                self.dump_json(record.get("customizations")),
                record.get("due_date"),
                record.get("notes"),
                now,
                now,
            ),
        )

    def get(self, db, task_id: str) -> dict | None:
        row = db.execute("SELECT * FROM tasks WHERE id = ? LIMIT 1", (task_id,)).fetchone()
        return self.hydrate(row)

    def list_tasks(
        self,
        db,
        *,
        order_id: str | None = None,
        assignee_id: str | None = None,
        statuses: Iterable[str] | None = None,
    ) -> list[dict]:
        clauses = []
        params: list = []
        if order_id:
            clauses.append("order_id = ?")
            params.append(order_id)
        if assignee_id:
            clauses.append("assignee_id = ?")
            params.append(assignee_id)
        status_list = list(statuses or [])
        if status_list:
            clauses.append(f"status IN ({', '.join('?' for _ in status_list)})")
            params.extend(status_list)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(f"SELECT * FROM tasks {where} ORDER BY created_at ASC, id ASC", tuple(params)).fetchall()
        return self.hydrate_all(rows)

    def count_open_for_order(self, db, order_id: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM tasks WHERE order_id = ? AND status <> 'completed'",
            (order_id,),
        ).fetchone()
        return int(row["total"])

    def apply_transition(
        self,
        db,
        task_id: str,
        *,
        sources,
        target: str,
        updates: Dict[str, Any] | None = None,
        guards: Dict[str, Any] | None = None,
    ) -> bool:
        return self.guarded_update(
            db,
            "tasks",
            task_id,
            assignments={"status": target, "updated_at": utc_now_iso(), **(updates or {})},
            sources=sources,
            guards=guards,
        )

    def assign(self, db, task_id: str, *, assignee_id: str, assignee_name: str) -> bool:
        return self.guarded_update(
            db,
            "tasks",
            task_id,
            assignments={"assignee_id": assignee_id, "assignee_name": assignee_name, "updated_at": utc_now_iso()},
            conditions=("status <> 'completed'",),
        )
