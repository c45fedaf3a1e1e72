"""
academy_api.db.session

Async engine and session factory.

Responsibilities:
- Build the engine from settings, with SQLite and server-database variants.
- Build the sessionmaker used by request handlers and the cache lock.
"""

from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from academy_api.settings import Settings

SQLITE_BUSY_TIMEOUT_SECONDS = 15


def create_engine(settings: Settings) -> AsyncEngine:
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        # Cache locks write from their own connections while a request transaction is open.
        return create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows stay readable after commit so routers can serialize them.
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
