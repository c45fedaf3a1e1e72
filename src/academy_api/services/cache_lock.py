"""
academy_api.services.cache_lock

Short-lived mutual-exclusion flag stored in the database.

Each `acquire`/`release` runs in its own session and transaction so that the
flag is visible to concurrent requests immediately, independent of the caller's
unit of work.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_api.db.base import utcnow
from academy_api.db.repositories.cache_locks import CacheLockRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)


class CacheLock:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        key: str,
        *,
        ttl: timedelta,
        owner: str | None = None,
    ) -> None:
        self._sessionmaker = sessionmaker
        self.key = key
        self._ttl = ttl
        self._owner = owner
        self._held = False

    async def acquire(self) -> bool:
        async with self._sessionmaker() as session:
            added = await CacheLockRepo(session).add(
                self.key, ttl=self._ttl, now=utcnow(), owner=self._owner
            )
            if added:
                await session.commit()
        self._held = added
        if not added:
            log.info("cache_lock_busy", key=self.key)
        return added

    async def release(self) -> None:
        if not self._held:
            return
        async with self._sessionmaker() as session:
            await CacheLockRepo(session).forget(self.key)
            await session.commit()
        self._held = False
