from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


class BaseRepository:
    table: str = ""

    @staticmethod
    def returning_id(cursor) -> int:
        row = cursor.fetchone()
        return int(row["id"] if isinstance(row, dict) else row[0])

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return dict(row) if row else None

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    def get_row(self, db, entity_id: int) -> dict | None:
        row = db.execute(
            f"SELECT * FROM {self.table} WHERE id = ? LIMIT 1",
            (entity_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def update_fields(
        self,
        db,
        entity_id: int,
        fields: dict[str, Any],
        *,
        expected_statuses: Iterable[str] | None = None,
    ) -> int:
        """Update columns, optionally only while the row is in one of ``expected_statuses``.

        ``updated_at`` is always bumped, so empty ``fields`` acts as a guarded touch.
        Returns the affected row count so callers can detect a lost race.
        """
        updates = [f"{key} = ?" for key in fields.keys()] + ["updated_at = ?"]
        params: list[Any] = list(fields.values())
        params.extend([utc_now_iso(), entity_id])
        where = "id = ?"
        if expected_statuses is not None:
            statuses = list(expected_statuses)
            where += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(statuses)
        cursor = db.execute(
            f"""
            UPDATE {self.table}
            SET {", ".join(updates)}
            WHERE {where}
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0)

    def transition_status(
        self,
        db,
        entity_id: int,
        *,
        expected_status: str,
        new_status: str,
        fields: dict[str, Any] | None = None,
    ) -> bool:
        """Compare-and-set on ``status``; False means another writer got there first."""
        changes = {"status": new_status}
        changes.update(fields or {})
        return self.update_fields(db, entity_id, changes, expected_statuses=[expected_status]) == 1
