from __future__ import annotations

from compras.infrastructure.repositories.base import BaseRepository, utc_now_iso


class HistoryRepository(BaseRepository):
    table = "requisition_history"

    def add(
        self,
        db,
        *,
        requisition_id: int,
        actor_id: int | None,
        previous_status: str | None,
        new_status: str,
        note: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO requisition_history (requisition_id, actor_id, previous_status, new_status, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (requisition_id, actor_id, previous_status, new_status, note, utc_now_iso()),
        )
        return self.returning_id(cursor)

    def list_for_requisition(self, db, requisition_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, requisition_id, actor_id, previous_status, new_status, note, created_at
            FROM requisition_history
            WHERE requisition_id = ?
            ORDER BY id ASC
            """,
            (requisition_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

