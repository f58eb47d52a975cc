from __future__ import annotations

from compras.domain.contracts import Approver, Buyer
from compras.domain.money import money_to_db, to_money
from compras.domain.statuses import DEFAULT_ROLE, ROLES
from compras.errors import ValidationError
from compras.infrastructure.repositories.base import BaseRepository, utc_now_iso


class DirectoryRepository(BaseRepository):
    """Users, approvers and buyers.

    User management lives outside the procurement workflow; these writers
    exist for seeding, administration scripts and tests.
    """

    table = "users"

    def upsert_user(
        self,
        db,
        *,
        user_id: int | None = None,
        name: str | None = None,
        email: str | None = None,
        role: str = DEFAULT_ROLE,
        is_active: bool = True,
    ) -> int:
        role = (role or DEFAULT_ROLE).strip().lower()
        if role not in ROLES:
            raise ValidationError(code="validation_error", details=f"papel invalido: {role}")
        if user_id is not None and self.get_row(db, user_id):
            db.execute(
                "UPDATE users SET name = ?, email = ?, role = ?, is_active = ? WHERE id = ?",
                (name, email, role, 1 if is_active else 0, user_id),
            )
            return int(user_id)
        if user_id is not None:
            cursor = db.execute(
                """
                INSERT INTO users (id, name, email, role, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                (user_id, name, email, role, 1 if is_active else 0, utc_now_iso()),
            )
        else:
            cursor = db.execute(
                """
                INSERT INTO users (name, email, role, is_active, created_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING id
                """,
                (name, email, role, 1 if is_active else 0, utc_now_iso()),
            )
        return self.returning_id(cursor)

    def role_of(self, db, user_id: int) -> str:
        row = db.execute(
            "SELECT role, is_active FROM users WHERE id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        if not row or not row["is_active"]:
            return DEFAULT_ROLE
        return str(row["role"] or DEFAULT_ROLE)

    def create_approver(
        self,
        db,
        *,
        user_id: int,
        min_value,
        max_value,
        approval_level: int = 1,
        is_active: bool = True,
    ) -> int:
        minimum = to_money(min_value)
        maximum = to_money(max_value)
        if minimum > maximum:
            raise ValidationError(
                code="validation_error",
                details="valor minimo do aprovador maior que o valor maximo",
            )
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO approvers (user_id, approval_level, min_value, max_value, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                user_id,
                int(approval_level),
                money_to_db(minimum),
                money_to_db(maximum),
                1 if is_active else 0,
                now,
                now,
            ),
        )
        return self.returning_id(cursor)

    def set_approver_active(self, db, user_id: int, is_active: bool) -> bool:
        cursor = db.execute(
            "UPDATE approvers SET is_active = ?, updated_at = ? WHERE user_id = ?",
            (1 if is_active else 0, utc_now_iso(), user_id),
        )
        return int(cursor.rowcount or 0) == 1

    def find_approver_by_user_id(self, db, user_id: int) -> Approver | None:
        row = db.execute(
            "SELECT * FROM approvers WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return Approver.from_row(dict(row)) if row else None

    def create_buyer(self, db, *, user_id: int, is_active: bool = True) -> int:
        now = utc_now_iso()
        cursor = db.execute(
            """
            INSERT INTO buyers (user_id, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (user_id, 1 if is_active else 0, now, now),
        )
        return self.returning_id(cursor)

    def find_buyer_by_user_id(self, db, user_id: int) -> Buyer | None:
        row = db.execute(
            "SELECT * FROM buyers WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return Buyer.from_row(dict(row)) if row else None

    def find_buyer_by_id(self, db, buyer_id: int) -> Buyer | None:
        row = db.execute(
            "SELECT * FROM buyers WHERE id = ? LIMIT 1",
            (buyer_id,),
        ).fetchone()
        return Buyer.from_row(dict(row)) if row else None


class SqlUserDirectory:
    """``UserDirectory`` backed by the local tables, bound to one connection.

    Lookups run on every call; nothing is cached between requests.
    """

    def __init__(self, db, repository: DirectoryRepository | None = None) -> None:
        self.db = db
        self.repository = repository or DirectoryRepository()

    def find_approver_by_user_id(self, user_id: int) -> Approver | None:
        return self.repository.find_approver_by_user_id(self.db, user_id)

    def find_buyer_by_user_id(self, user_id: int) -> Buyer | None:
        return self.repository.find_buyer_by_user_id(self.db, user_id)

    def find_buyer_by_id(self, buyer_id: int) -> Buyer | None:
        return self.repository.find_buyer_by_id(self.db, buyer_id)

    def role_of(self, user_id: int) -> str:
        return self.repository.role_of(self.db, user_id)
