from __future__ import annotations

from pathlib import Path

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from flask import Flask

from compras.db import connect_database, init_db


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def to_sqlalchemy_url(raw_db_path: str) -> str:
    """Map a ``DB_PATH``/``DATABASE_URL`` value to the URL SQLAlchemy expects."""
    raw = (raw_db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH indefinido para migrations.")

    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://") :]
    if raw.startswith(("postgresql://", "postgresql+", "sqlite://", "sqlite+pysqlite://")):
        return raw

    sqlite_path = Path(raw).expanduser().resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


def build_alembic_config(db_path: str) -> AlembicConfig:
    root = _project_root()
    alembic_ini = root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError("alembic.ini nao encontrado na raiz do projeto.")

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str((root / "migrations").as_posix()))
    alembic_cfg.set_main_option("sqlalchemy.url", to_sqlalchemy_url(db_path))
    return alembic_cfg


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Migrations do schema de compras (Alembic)."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app.config["DB_PATH"]), revision)
        click.echo(f"Migration aplicada ate {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app.config["DB_PATH"]), revision)
        click.echo(f"Rollback aplicado ate {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app.config["DB_PATH"]), verbose=True)

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Cria as tabelas sem passar pelo Alembic (ambientes locais)."""
        db = connect_database(app.config["DB_PATH"])
        try:
            init_db(db)
        finally:
            db.close()
        click.echo("Schema de compras criado.")
