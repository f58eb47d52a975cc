from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from compras.domain.contracts import Budget, BudgetCreateInput, BudgetLineItemInput, BudgetSignature
from compras.domain.money import line_total, money_to_db, quantity_to_db, sum_money
from compras.infrastructure.repositories.base import BaseRepository, utc_now_iso


_SUPPLIER_FIELDS = (
    "supplier_id",
    "supplier_name",
    "supplier_tax_id",
    "supplier_contact",
    "supplier_email",
    "supplier_phone",
    "quote_number",
    "quote_date",
    "validity_date",
    "payment_terms",
    "lead_time",
    "notes",
)


class BudgetRepository(BaseRepository):
    table = "budgets"

    def create(self, db, *, created_by: int, create_input: BudgetCreateInput) -> int:
        now = utc_now_iso()
        values = [getattr(create_input, name) for name in _SUPPLIER_FIELDS]
        cursor = db.execute(
            f"""
            INSERT INTO budgets (
                requisition_id, {", ".join(_SUPPLIER_FIELDS)},
                total_value, status, created_by, created_at, updated_at
            )
            VALUES (?, {", ".join("?" for _ in _SUPPLIER_FIELDS)}, ?, 'pending', ?, ?, ?)
            RETURNING id
            """,
            (create_input.requisition_id, *values, money_to_db(0), created_by, now, now),
        )
        return self.returning_id(cursor)

    def list_items(self, db, budget_id: int) -> list[dict]:
        rows = db.execute(
            "SELECT * FROM budget_line_items WHERE budget_id = ? ORDER BY id",
            (budget_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def load(self, db, budget_id: int) -> Budget | None:
        row = self.get_row(db, budget_id)
        if not row:
            return None
        return Budget.from_row(row, self.list_items(db, budget_id))

    def list_by_requisition(self, db, requisition_id: int) -> list[Budget]:
        rows = db.execute(
            "SELECT * FROM budgets WHERE requisition_id = ? ORDER BY id",
            (requisition_id,),
        ).fetchall()
        return [Budget.from_row(dict(row), self.list_items(db, int(row["id"]))) for row in rows]

    def list_page(
        self,
        db,
        *,
        status: str | None = None,
        requisition_id: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Budget], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if requisition_id is not None:
            clauses.append("requisition_id = ?")
            params.append(requisition_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        offset = (max(page, 1) - 1) * limit
        rows = db.execute(
            f"SELECT * FROM budgets {where} ORDER BY id DESC LIMIT ? OFFSET ?",
            (*params, int(limit), int(offset)),
        ).fetchall()
        total_row = db.execute(f"SELECT COUNT(*) AS total FROM budgets {where}", tuple(params)).fetchone()
        budgets = [Budget.from_row(dict(row), self.list_items(db, int(row["id"]))) for row in rows]
        return budgets, int(total_row["total"] if total_row else 0)

    def statuses_for_requisition(self, db, requisition_id: int, *, exclude_budget_id: int | None = None) -> list[str]:
        rows = db.execute(
            "SELECT id, status FROM budgets WHERE requisition_id = ? ORDER BY id",
            (requisition_id,),
        ).fetchall()
        rows = [row for row in rows if exclude_budget_id is None or int(row["id"]) != int(exclude_budget_id)]
        return [str(row["status"]) for row in rows]

    def replace_items(self, db, budget_id: int, items: Iterable[BudgetLineItemInput]) -> None:
        db.execute("DELETE FROM budget_line_items WHERE budget_id = ?", (budget_id,))
        for item in items:
            db.execute(
                """
                INSERT INTO budget_line_items (
                    budget_id, requisition_line_item_id, description, quantity, unit, unit_price, line_total, notes
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    budget_id,
                    item.requisition_line_item_id,
                    item.description,
                    quantity_to_db(item.quantity),
                    item.unit,
                    money_to_db(item.unit_price),
                    money_to_db(line_total(item.quantity, item.unit_price)),
                    item.notes,
                ),
            )

    def recompute_total(self, db, budget_id: int) -> Decimal:
        rows = db.execute(
            "SELECT line_total FROM budget_line_items WHERE budget_id = ?",
            (budget_id,),
        ).fetchall()
        total = sum_money(row["line_total"] for row in rows)
        db.execute(
            "UPDATE budgets SET total_value = ?, updated_at = ? WHERE id = ?",
            (money_to_db(total), utc_now_iso(), budget_id),
        )
        return total

    def add_signature(
        self,
        db,
        *,
        budget_id: int,
        signer_id: int,
        is_requester: bool,
        approval_level: int | None,
        decision: str,
        note: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO budget_signatures (budget_id, signer_id, is_requester, approval_level, decision, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (budget_id, signer_id, 1 if is_requester else 0, approval_level, decision, note, utc_now_iso()),
        )
        return self.returning_id(cursor)

    def list_signatures(self, db, budget_id: int) -> list[BudgetSignature]:
        rows = db.execute(
            "SELECT * FROM budget_signatures WHERE budget_id = ? ORDER BY id",
            (budget_id,),
        ).fetchall()
        return [BudgetSignature.from_row(dict(row)) for row in rows]

    def confirm_delivery_party(self, db, budget_id: int, party: str) -> bool:
        """Set ``<party>_confirmed`` once; False when already set or the budget left ``approved``."""
        if party not in ("requester", "buyer"):
            raise ValueError(f"unknown delivery party: {party}")
        now = utc_now_iso()
        cursor = db.execute(
            f"""
            UPDATE budgets
            SET {party}_confirmed = 1, {party}_confirmed_at = ?, updated_at = ?
            WHERE id = ? AND status = 'approved' AND {party}_confirmed = 0
            """,
            (now, now, budget_id),
        )
        return int(cursor.rowcount or 0) == 1

    def delete(self, db, budget_id: int, *, expected_status: str) -> bool:
        """Remove the budget with its items and signatures while it is still ``expected_status``."""
        guard = "SELECT id FROM budgets WHERE id = ? AND status = ?"
        for child_table in ("budget_line_items", "budget_signatures"):
            db.execute(
                f"DELETE FROM {child_table} WHERE budget_id IN ({guard})",
                (budget_id, expected_status),
            )
        cursor = db.execute(
            "DELETE FROM budgets WHERE id = ? AND status = ?",
            (budget_id, expected_status),
        )
        return int(cursor.rowcount or 0) == 1
