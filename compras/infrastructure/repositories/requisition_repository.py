from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from compras.domain.contracts import LineItemInput, Requisition, RequisitionListFilters
from compras.domain.money import line_total, money_to_db, quantity_to_db, sum_money
from compras.infrastructure.repositories.base import BaseRepository, utc_now_iso


class RequisitionRepository(BaseRepository):
    table = "requisitions"

    def next_number(self, db, *, prefix: str, year: int) -> str:
        base = f"{prefix}-{year}-"
        row = db.execute(
            """
            SELECT number
            FROM requisitions
            WHERE number LIKE ?
            ORDER BY id DESC
            LIMIT 1
            """,
            (f"{base}%",),
        ).fetchone()
        if not row:
            return f"{base}001"
        last = str(row["number"]).rsplit("-", 1)[-1]
        try:
            sequence = int(last) + 1
        except ValueError:
            sequence = 1
        return f"{base}{sequence:03d}"

    def create(
        self,
        db,
        *,
        number: str,
        requester_id: int,
        description: str,
        cost_center: str | None,
        justification: str | None,
        priority: str,
        needed_by_date: str | None,
        notes: str | None,
        status: str = "draft",
    ) -> int:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO requisitions (
                number, requester_id, description, cost_center, justification, priority,
                needed_by_date, notes, total_value, status, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                number,
                requester_id,
                description,
                cost_center,
                justification,
                priority,
                needed_by_date,
                notes,
                money_to_db(0),
                status,
                now,
                now,
            ),
        )
        return self.returning_id(cursor)

    def list_items(self, db, requisition_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM requisition_line_items
            WHERE requisition_id = ?
            ORDER BY item_number
            """,
            (requisition_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def load(self, db, requisition_id: int) -> Requisition | None:
        row = self.get_row(db, requisition_id)
        if not row:
            return None
        return Requisition.from_row(row, self.list_items(db, requisition_id))

    def replace_items(self, db, requisition_id: int, items: Iterable[LineItemInput]) -> None:
        db.execute("DELETE FROM requisition_line_items WHERE requisition_id = ?", (requisition_id,))
        now = utc_now_iso()
        for item_number, item in enumerate(items, start=1):
            db.execute(
                """
                INSERT INTO requisition_line_items (
                    requisition_id, item_number, description, quantity, unit, unit_price, line_total, notes, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    requisition_id,
                    item_number,
                    item.description,
                    quantity_to_db(item.quantity),
                    item.unit,
                    money_to_db(item.unit_price),
                    money_to_db(line_total(item.quantity, item.unit_price)),
                    item.notes,
                    now,
                ),
            )

    def recompute_total(self, db, requisition_id: int) -> Decimal:
        rows = db.execute(
            "SELECT line_total FROM requisition_line_items WHERE requisition_id = ?",
            (requisition_id,),
        ).fetchall()
        total = sum_money(row["line_total"] for row in rows)
        db.execute(
            "UPDATE requisitions SET total_value = ?, updated_at = ? WHERE id = ?",
            (money_to_db(total), utc_now_iso(), requisition_id),
        )
        return total

    def delete_draft(self, db, requisition_id: int) -> bool:
        db.execute(
            """
            DELETE FROM requisition_line_items
            WHERE requisition_id IN (SELECT id FROM requisitions WHERE id = ? AND status = 'draft')
            """,
            (requisition_id,),
        )
        cursor = db.execute(
            "DELETE FROM requisitions WHERE id = ? AND status = 'draft'",
            (requisition_id,),
        )
        return int(cursor.rowcount or 0) == 1

    def _filter_clause(self, filters: RequisitionListFilters) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.status:
            clauses.append("status = ?")
            params.append(filters.status)
        if filters.requester_id is not None:
            clauses.append("requester_id = ?")
            params.append(filters.requester_id)
        if filters.buyer_id is not None:
            clauses.append("buyer_id = ?")
            params.append(filters.buyer_id)
        if filters.search:
            clauses.append("(number LIKE ? OR description LIKE ?)")
            term = f"%{filters.search}%"
            params.extend([term, term])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def list_page(self, db, filters: RequisitionListFilters) -> tuple[list[Requisition], int]:
        where, params = self._filter_clause(filters)
        offset = (max(filters.page, 1) - 1) * filters.limit
        rows = db.execute(
            f"""
            SELECT *
            FROM requisitions
            {where}
            ORDER BY id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, int(filters.limit), int(offset)),
        ).fetchall()
        total_row = db.execute(f"SELECT COUNT(*) AS total FROM requisitions {where}", tuple(params)).fetchone()
        requisitions = [
            Requisition.from_row(dict(row), self.list_items(db, int(row["id"]))) for row in rows
        ]
        return requisitions, int(total_row["total"] if total_row else 0)

    def list_by_status(self, db, status: str, *, buyer_id: int | None = None) -> list[Requisition]:
        sql = "SELECT * FROM requisitions WHERE status = ?"
        params: list[Any] = [status]
        if buyer_id is not None:
            sql += " AND buyer_id = ?"
            params.append(buyer_id)
        rows = db.execute(f"{sql} ORDER BY id", tuple(params)).fetchall()
        return [Requisition.from_row(dict(row), self.list_items(db, int(row["id"]))) for row in rows]

    def summary_rows(self, db, *, start: str | None = None, end: str | None = None) -> list[dict]:
        clauses: list[str] = []
        params: list[Any] = []
        if start:
            clauses.append("created_at >= ?")
            params.append(start)
        if end:
            clauses.append("created_at <= ?")
            params.append(end)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(f"SELECT status, total_value FROM requisitions {where}", tuple(params)).fetchall()
        return self.rows_to_dicts(rows)
