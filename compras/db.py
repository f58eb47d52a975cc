import contextlib
import sqlite3
from typing import Callable, Iterable, List

import psycopg2
import psycopg2.extras
from flask import current_app, g


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0
        self._after_commit: List[Callable[[], None]] = []

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, tuple(params or ()))

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost transaction commits; dropped on rollback."""
        if self._tx_depth == 0:
            callback()
            return
        self._after_commit.append(callback)

    @contextlib.contextmanager
    def transaction(self):
        """Run the block atomically. Nested blocks join the outermost one."""
        if self._tx_depth > 0:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        # IMMEDIATE: writers queue on the sqlite lock before their first read.
        self.execute("BEGIN IMMEDIATE" if self.backend == "sqlite" else "BEGIN")
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self._after_commit.clear()
            self.execute("ROLLBACK")
            raise
        self._tx_depth = 0
        self.execute("COMMIT")
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db() -> Database:
    if "db" not in g:
        g.db = connect_database(current_app.config["DB_PATH"])
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db(db: Database | None = None) -> None:
    db = db or get_db()
    for statement in schema_statements(db.backend):
        db.execute(statement)


SCHEMA_TABLES: List[str] = [
    "users",
    "approvers",
    "buyers",
    "requisitions",
    "requisition_line_items",
    "budgets",
    "budget_line_items",
    "budget_signatures",
    "requisition_history",
]


def schema_statements(backend: str) -> List[str]:
    if backend == "postgres":
        pk = "SERIAL PRIMARY KEY"
        money = "NUMERIC(14,2)"
        quantity = "NUMERIC(14,3)"
    else:
        pk = "INTEGER PRIMARY KEY AUTOINCREMENT"
        # Stored as canonical decimal strings; never compared in SQL.
        money = "TEXT"
        quantity = "TEXT"

    return [
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {pk},
            name TEXT,
            email TEXT,
            role TEXT NOT NULL DEFAULT 'requester' CHECK (role IN ('admin','approver','buyer','requester')),
            is_active SMALLINT NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS approvers (
            id {pk},
            user_id INTEGER NOT NULL UNIQUE,
            approval_level INTEGER NOT NULL DEFAULT 1,
            min_value {money} NOT NULL DEFAULT 0,
            max_value {money} NOT NULL,
            is_active SMALLINT NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS buyers (
            id {pk},
            user_id INTEGER NOT NULL UNIQUE,
            is_active SMALLINT NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS requisitions (
            id {pk},
            number TEXT NOT NULL UNIQUE,
            requester_id INTEGER NOT NULL,
            buyer_id INTEGER REFERENCES buyers(id),
            cost_center TEXT,
            description TEXT NOT NULL,
            justification TEXT,
            priority TEXT NOT NULL DEFAULT 'normal' CHECK (priority IN ('low','normal','high','urgent')),
            needed_by_date TEXT,
            notes TEXT,
            total_value {money} NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (
                status IN (
                    'draft','pending_approval','approved','rejected','in_quotation','quotation_received',
                    'budget_approved','budget_rejected','in_purchase','purchased','cancelled','returned'
                )
            ),
            approved_at TEXT,
            rejected_at TEXT,
            cancelled_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS requisition_line_items (
            id {pk},
            requisition_id INTEGER NOT NULL REFERENCES requisitions(id),
            item_number INTEGER NOT NULL,
            description TEXT NOT NULL,
            quantity {quantity} NOT NULL,
            unit TEXT NOT NULL DEFAULT 'UN',
            unit_price {money} NOT NULL,
            line_total {money} NOT NULL,
            notes TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (requisition_id, item_number)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS budgets (
            id {pk},
            requisition_id INTEGER NOT NULL REFERENCES requisitions(id),
            supplier_id INTEGER,
            supplier_name TEXT NOT NULL,
            supplier_tax_id TEXT,
            supplier_contact TEXT,
            supplier_email TEXT,
            supplier_phone TEXT,
            quote_number TEXT,
            quote_date TEXT,
            validity_date TEXT,
            payment_terms TEXT,
            lead_time TEXT,
            notes TEXT,
            total_value {money} NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending' CHECK (
                status IN ('pending','approved','rejected','returned','cancelled')
            ),
            rejection_reason TEXT,
            approved_by INTEGER,
            rejected_by INTEGER,
            returned_by INTEGER,
            signed_by_requester SMALLINT NOT NULL DEFAULT 0,
            approved_at TEXT,
            rejected_at TEXT,
            expected_delivery_date TEXT,
            actual_delivery_date TEXT,
            delivery_status TEXT NOT NULL DEFAULT 'pending' CHECK (
                delivery_status IN ('pending','in_transit','delivered')
            ),
            requester_confirmed SMALLINT NOT NULL DEFAULT 0,
            requester_confirmed_at TEXT,
            buyer_confirmed SMALLINT NOT NULL DEFAULT 0,
            buyer_confirmed_at TEXT,
            created_by INTEGER NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS budget_line_items (
            id {pk},
            budget_id INTEGER NOT NULL REFERENCES budgets(id),
            requisition_line_item_id INTEGER NOT NULL REFERENCES requisition_line_items(id),
            description TEXT NOT NULL,
            quantity {quantity} NOT NULL,
            unit TEXT NOT NULL DEFAULT 'UN',
            unit_price {money} NOT NULL,
            line_total {money} NOT NULL,
            notes TEXT
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS budget_signatures (
            id {pk},
            budget_id INTEGER NOT NULL REFERENCES budgets(id),
            signer_id INTEGER NOT NULL,
            is_requester SMALLINT NOT NULL DEFAULT 0,
            approval_level INTEGER,
            decision TEXT NOT NULL CHECK (decision IN ('approved','rejected','returned')),
            note TEXT,
            created_at TEXT NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS requisition_history (
            id {pk},
            requisition_id INTEGER NOT NULL,
            actor_id INTEGER,
            previous_status TEXT,
            new_status TEXT NOT NULL,
            note TEXT,
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_requisitions_status ON requisitions (status)",
        "CREATE INDEX IF NOT EXISTS idx_requisitions_requester ON requisitions (requester_id)",
        "CREATE INDEX IF NOT EXISTS idx_budgets_requisition ON budgets (requisition_id)",
        "CREATE INDEX IF NOT EXISTS idx_history_requisition ON requisition_history (requisition_id, id)",
    ]
