"""
academy_api.db.repositories.cache_locks

Add-if-absent operations on the `cache_locks` table.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import CacheLock


class CacheLockRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, key: str, *, ttl: timedelta, now: datetime, owner: str | None = None) -> bool:
        # Expired keys are treated as absent.
        await self._session.execute(
            delete(CacheLock).where(CacheLock.key == key, CacheLock.expires_at <= now)
        )
        self._session.add(CacheLock(key=key, owner=owner, expires_at=now + ttl, created_at=now))
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            return False
        return True

    async def forget(self, key: str) -> None:
        await self._session.execute(delete(CacheLock).where(CacheLock.key == key))
