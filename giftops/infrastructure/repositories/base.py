from __future__ import annotations

import json
from typing import Any, Iterable, Sequence


class BaseRepository:
    json_columns: Sequence[str] = ()
    bool_columns: Sequence[str] = ()

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def dump_json(value: Any) -> str | None:
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def load_json(raw: str | None, default: Any = None) -> Any:
        if raw is None or raw == "":
            return default
        return json.loads(raw)

    def hydrate(self, row: Any) -> dict | None:
        """Turn a DB row into a plain dict, decoding ``*_json`` columns into their bare names."""
        if row is None:
            return None
        record = dict(row)
        for column in self.json_columns:
            if column in record:
                record[column[: -len("_json")]] = self.load_json(record.pop(column))
        for column in self.bool_columns:
            if column in record:
                record[column] = bool(record[column])
        return record

    def hydrate_all(self, rows: Iterable[Any]) -> list[dict]:
        return [self.hydrate(row) for row in rows]

    @staticmethod
    def guarded_update(
        db,
        table: str,
        row_id: Any,
        *,
        assignments: dict,
        sources: Iterable[str] | None = None,
        guards: dict | None = None,
        conditions: Sequence[str] = (),
        id_column: str = "id",
    ) -> bool:
        """Single-statement ``UPDATE ... WHERE`` that only matches the expected state.

        ``sources`` restricts the current ``status``; ``guards`` adds equality
        checks; ``conditions`` adds raw SQL predicates. Returns whether exactly
        one row changed.
        """
        set_clause = ", ".join(f"{column} = ?" for column in assignments)
        where = [f"{id_column} = ?"]
        params: list = [*assignments.values(), row_id]
        source_list = sorted(sources or ())
        if source_list:
            where.append(f"status IN ({', '.join('?' for _ in source_list)})")
            params.extend(source_list)
        for column, value in (guards or {}).items():
            where.append(f"{column} = ?")
            params.append(value)
        where.extend(conditions)
        cursor = db.execute(f"UPDATE {table} SET {set_clause} WHERE {' AND '.join(where)}", tuple(params))
        return cursor.rowcount == 1

    @staticmethod
    def inserted_id(cursor) -> int:
        row = cursor.fetchone()
        return int(row["id"] if isinstance(row, dict) else row[0])
