"""Baseline do schema de compras (compras.db.schema_statements)

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from compras.db import SCHEMA_TABLES, schema_statements


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _resolve_backend(connection: Connection) -> str:
    dialect = (connection.dialect.name or "").lower()
    if dialect.startswith("postgres"):
        return "postgres"
    return "sqlite"


def upgrade() -> None:
    backend = _resolve_backend(op.get_bind())
    for statement in schema_statements(backend):
        op.execute(statement)


def downgrade() -> None:
    for table in reversed(SCHEMA_TABLES):
        op.execute(f"DROP TABLE IF EXISTS {table}")
