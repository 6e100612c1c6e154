from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from flask import Flask
from sqlalchemy import create_engine, inspect

from giftops.db import SCHEMA_TABLES


PROJECT_ROOT = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"
_SQLALCHEMY_PREFIXES = ("postgresql://", "postgresql+", "sqlite://", "sqlite+pysqlite://")

logger = logging.getLogger("giftops")


def to_sqlalchemy_url(db_path: str) -> str:
    """``DB_PATH`` (a Postgres URL or a SQLite file path) as a SQLAlchemy URL."""
    raw = (db_path or "").strip()
    if not raw:
        raise RuntimeError("DB_PATH is not set; cannot run giftops migrations.")
    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://") :]
    if raw.startswith(_SQLALCHEMY_PREFIXES):
        return raw
    return f"sqlite:///{Path(raw).expanduser().resolve().as_posix()}"


def build_alembic_config(app: Flask) -> AlembicConfig:
    ini_path = PROJECT_ROOT / "alembic.ini"
    config = AlembicConfig(str(ini_path)) if ini_path.exists() else AlembicConfig()
    config.set_main_option("script_location", MIGRATIONS_DIR.as_posix())
    config.set_main_option("sqlalchemy.url", to_sqlalchemy_url(app.config["DB_PATH"]))
    return config


def schema_status(app: Flask) -> Tuple[str | None, str | None, List[str]]:
    """Applied revision, head revision and the giftops tables still missing."""
    config = build_alembic_config(app)
    head = ScriptDirectory.from_config(config).get_current_head()
    engine = create_engine(config.get_main_option("sqlalchemy.url"))
    try:
        with engine.connect() as connection:
            current = MigrationContext.configure(connection).get_current_revision()
            existing = set(inspect(connection).get_table_names())
    finally:
        engine.dispose()
    return current, head, [table for table in SCHEMA_TABLES if table not in existing]


def register_db_cli(app: Flask) -> None:
    @app.cli.group("db")
    def db_group() -> None:
        """Create, roll back and inspect the giftops schema."""

    @db_group.command("upgrade")
    @click.argument("revision", required=False, default="head")
    def db_upgrade(revision: str) -> None:
        command.upgrade(build_alembic_config(app), revision)
        logger.info("schema_upgraded", extra={"revision": revision})
        click.echo(f"Schema upgraded to {revision}.")

    @db_group.command("downgrade")
    @click.argument("revision", required=False, default="-1")
    def db_downgrade(revision: str) -> None:
        command.downgrade(build_alembic_config(app), revision)
        logger.info("schema_downgraded", extra={"revision": revision})
        click.echo(f"Schema downgraded to {revision}.")

    @db_group.command("current")
    def db_current() -> None:
        command.current(build_alembic_config(app), verbose=True)

    @db_group.command("status")
    def db_status() -> None:
        """Exit non-zero when the schema is behind head or tables are missing."""
        current, head, missing = schema_status(app)
        click.echo(f"revision: {current or 'none'} (head {head})")
        if missing:
            click.echo(f"missing tables: {', '.join(missing)}")
        if missing or current != head:
            raise click.ClickException("schema is not up to date; run `flask db upgrade`")
