from __future__ import annotations

from typing import Any, Dict, Iterable

from giftops.db import utc_now_iso
from giftops.infrastructure.repositories.base import BaseRepository


_PUBLIC_COLUMNS = (
    "uid, email, display_name, first_name, last_name, phone, county, town, role, status, "
    "rejection_reason, disabled, disabled_at, current_lat, current_lng, location_updated_at, "
    "created_at, updated_at"
)


class UserRepository(BaseRepository):
    bool_columns = ("disabled",)

    def hydrate(self, row: Any) -> dict | None:
        record = super().hydrate(row)
        if record is None:
            return None
        lat, lng = record.pop("current_lat", None), record.pop("current_lng", None)
        record["current_location"] = (
            {"lat": lat, "lng": lng, "timestamp": record.get("location_updated_at")}
            if lat is not None and lng is not None
            else None
        )
        return record

    def create(self, db, record: Dict[str, Any]) -> None:
        now = utc_now_iso()
        db.execute(
            """
            INSERT INTO users (
                uid, email, password_hash, display_name, first_name, last_name, phone, county, town,
                role, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record["uid"],
                record["email"],
                record.get("password_hash"),
                record.get("display_name"),
                record.get("first_name"),
                record.get("last_name"),
                record.get("phone"),
                record.get("county"),
                record.get("town"),
                record["role"],
                record["status"],
                now,
                now,
            ),
        )

    def get(self, db, uid: str) -> dict | None:
        row = db.execute(f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE uid = ? LIMIT 1", (uid,)).fetchone()
        return self.hydrate(row)

    def get_credentials(self, db, email: str) -> dict | None:
        row = db.execute(
            "SELECT uid, email, password_hash, role, status, disabled FROM users WHERE email = ? LIMIT 1",
            (email,),
        ).fetchone()
        return self.hydrate(row)

    def email_exists(self, db, email: str) -> bool:
        return db.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone() is not None

    def list_users(
        self,
        db,
        *,
        role: str | None = None,
        status: str | None = None,
        roles: Iterable[str] | None = None,
        include_disabled: bool = True,
        limit: int = 500,
    ) -> list[dict]:
        clauses = []
        params: list = []
        if role:
            clauses.append("role = ?")
            params.append(role)
        role_list = list(roles or [])
        if role_list:
            clauses.append(f"role IN ({', '.join('?' for _ in role_list)})")
            params.extend(role_list)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if not include_disabled:
            clauses.append("disabled = 0")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"SELECT {_PUBLIC_COLUMNS} FROM users {where} ORDER BY created_at DESC, uid ASC LIMIT ?",
            (*params, int(limit)),
        ).fetchall()
        return self.hydrate_all(rows)

    def update(self, db, uid: str, fields: Dict[str, Any], *, conditions=()) -> bool:
        return self.guarded_update(
            db,
            "users",
            uid,
            assignments={**fields, "updated_at": utc_now_iso()},
            conditions=conditions,
            id_column="uid",
        )
