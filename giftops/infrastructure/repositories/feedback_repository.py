from __future__ import annotations

from typing import Any, Dict

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class FeedbackRepository(BaseRepository):
    def create_thread(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO feedback_threads (
                id, subject, sender_id, sender_name, sender_email, sender_role, target_role,
                target_user_id, target_user_name, status, last_message_snippet, last_replier_role,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'open', ?, ?, ?, ?)
            """,
            (
                record["id"],
                record["subject"],
                record["sender_id"],
                record.get("sender_name"),
                record.get("sender_email"),
                record.get("sender_role"),
                record["target_role"],
                record.get("target_user_id"),
                record.get("target_user_name"),
                record["last_message_snippet"],
                record.get("sender_role"),
                now,
                now,
            ),
        )

    def add_message(
        self,
        db,
        thread_id: str,
        *,
        sender_id: str,
        sender_name: str,
        sender_role: str,
        message: str,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO feedback_messages (thread_id, sender_id, sender_name, sender_role, message, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (thread_id, sender_id, sender_name, sender_role, message, utc_now_iso()),
        )
        return self.inserted_id(cursor)

    def get_thread(self, db, thread_id: str) -> dict | None:
        row = db.execute("SELECT * FROM feedback_threads WHERE id = ? LIMIT 1", (thread_id,)).fetchone()
        return dict(row) if row else None

    def list_threads(self, db, *, limit: int = 500) -> list[dict]:
        rows = db.execute(
            "SELECT * FROM feedback_threads ORDER BY updated_at DESC, id ASC LIMIT ?",
            (int(limit),),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_messages(self, db, thread_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, thread_id, sender_id, sender_name, sender_role, message, created_at
            FROM feedback_messages
            WHERE thread_id = ?
            ORDER BY id ASC
            """,
            (thread_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def record_reply(self, db, thread_id: str, *, snippet: str, replier_role: str) -> bool:
        return self.guarded_update(
            db,
            "feedback_threads",
            thread_id,
            assignments={
                "status": "replied",
                "last_message_snippet": snippet,
                "last_replier_role": replier_role,
                "updated_at": utc_now_iso(),
            },
            sources=("open", "replied"),
        )

    def close_thread(self, db, thread_id: str) -> bool:
        return self.guarded_update(
            db,
            "feedback_threads",
            thread_id,
            assignments={"status": "closed", "updated_at": utc_now_iso()},
            sources=("open", "replied"),
        )
