"""
academy_api.db.init_db

Schema bootstrap for dev and test runs. Deployed environments migrate with Alembic.
"""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from academy_api.db import models  # noqa: F401  # registers every model on Base.metadata
from academy_api.db.base import Base
from academy_api.observability.logging import get_logger

log = get_logger(__name__)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    log.info("db_initialized", tables=len(tables))
