from __future__ import annotations

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: str,
        from_status: str | None,
        to_status: str,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, actor_id, occurred_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (entity, entity_id, from_status, to_status, reason, actor_id, utc_now_iso()),
        )
