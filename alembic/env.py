"""
alembic.env

Alembic migration environment for the academy API schema.

Responsibilities:
- Expose `academy_api` metadata for autogeneration.
- Run migrations offline (SQL script) or online against the configured database.

Notes:
- Alembic runs migrations synchronously; async driver suffixes are stripped from the URL.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from academy_api.db import models  # noqa: F401  # registers every model on Base.metadata
from academy_api.db.base import Base
from academy_api.settings import Settings

ASYNC_DRIVERS = {"aiosqlite": None, "asyncpg": "psycopg"}

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_database_url() -> str:
    raw = os.environ.get("ACADEMY_DATABASE_URL") or Settings().database_url
    url = make_url(raw)
    backend, _, driver = url.drivername.partition("+")
    if driver in ASYNC_DRIVERS:
        sync_driver = ASYNC_DRIVERS[driver]
        url = url.set(drivername=f"{backend}+{sync_driver}" if sync_driver else backend)
    return url.render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    context.configure(
        url=_get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = _get_database_url()
    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # SQLite cannot ALTER most constraints in place.
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
