"""Migrations for the launchpad tracker's token store.

The database URL comes from the environment (or ``.env``) the same way the
tracker reads it, so ``alembic upgrade head`` needs no extra setup. SQLite
migrations run in batch mode because SQLite cannot alter columns in place.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from launchpad_tracker.storage.database import async_database_url, is_sqlite
from launchpad_tracker.storage.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

load_dotenv(override=False)

_env_url = os.environ.get("SQLALCHEMY_DATABASE_URL") or os.environ.get("DATABASE_URL")
if _env_url:
    config.set_main_option("sqlalchemy.url", async_database_url(os.path.expandvars(_env_url)))


def _configure(**kwargs: object) -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(target_metadata=Base.metadata, render_as_batch=is_sqlite(url), **kwargs)


def _migrate(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # Emit SQL to stdout instead of connecting
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(_migrate_online())
