"""
academy_api.db.repositories.live_sessions

Repositories for live sessions, their participants and per-environment live settings.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Select, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import (
    EnvironmentLiveSettings,
    LiveSession,
    LiveSessionParticipant,
    LiveSessionStatus,
    ParticipantRole,
)


class LiveSessionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, **fields: object) -> LiveSession:
        live = LiveSession(**fields)
        self._session.add(live)
        await self._session.flush()
        return live

    async def get(self, live_session_id: uuid.UUID) -> LiveSession | None:
        return await self._session.get(LiveSession, live_session_id)

    async def get_in_environment(
        self, live_session_id: uuid.UUID, environment_id: uuid.UUID
    ) -> LiveSession | None:
        live = await self.get(live_session_id)
        if live is None or live.environment_id != environment_id:
            return None
        return live

    async def by_room(self, room_name: str) -> LiveSession | None:
        stmt = select(LiveSession).where(LiveSession.room_name == room_name)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    def filtered(self, environment_id: uuid.UUID, *, status: LiveSessionStatus | None = None) -> Select:
        stmt = select(LiveSession).where(LiveSession.environment_id == environment_id)
        if status is not None:
            stmt = stmt.where(LiveSession.status == status)
        return stmt.order_by(desc(LiveSession.scheduled_at))

    async def count_by_status(self, environment_id: uuid.UUID) -> dict[LiveSessionStatus, int]:
        stmt = (
            select(LiveSession.status, func.count(LiveSession.id))
            .where(LiveSession.environment_id == environment_id)
            .group_by(LiveSession.status)
        )
        return {status: int(n) for status, n in (await self._session.execute(stmt)).all()}

    async def count_live(self, environment_id: uuid.UUID) -> int:
        counts = await self.count_by_status(environment_id)
        return counts.get(LiveSessionStatus.live, 0)

    async def count_upcoming(self, environment_id: uuid.UUID, now: datetime) -> int:
        stmt = select(func.count(LiveSession.id)).where(
            LiveSession.environment_id == environment_id,
            LiveSession.status == LiveSessionStatus.scheduled,
            LiveSession.scheduled_at > now,
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def distinct_participants(self, environment_id: uuid.UUID) -> int:
        stmt = (
            select(func.count(func.distinct(LiveSessionParticipant.user_id)))
            .join(LiveSession, LiveSession.id == LiveSessionParticipant.live_session_id)
            .where(LiveSession.environment_id == environment_id)
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def delete(self, live: LiveSession) -> None:
        for participant in await self.participants(live.id):
            await self._session.delete(participant)
        await self._session.delete(live)
        await self._session.flush()

    async def participants(self, live_session_id: uuid.UUID) -> list[LiveSessionParticipant]:
        stmt = select(LiveSessionParticipant).where(
            LiveSessionParticipant.live_session_id == live_session_id
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get_participant(
        self, live_session_id: uuid.UUID, user_id: uuid.UUID
    ) -> LiveSessionParticipant | None:
        stmt = select(LiveSessionParticipant).where(
            LiveSessionParticipant.live_session_id == live_session_id,
            LiveSessionParticipant.user_id == user_id,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def ensure_participant(
        self, live_session_id: uuid.UUID, user_id: uuid.UUID, *, role: ParticipantRole
    ) -> LiveSessionParticipant:
        participant = await self.get_participant(live_session_id, user_id)
        if participant is None:
            participant = LiveSessionParticipant(
                live_session_id=live_session_id, user_id=user_id, role=role
            )
            self._session.add(participant)
            await self._session.flush()
        return participant


class LiveSettingsRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, environment_id: uuid.UUID) -> EnvironmentLiveSettings | None:
        stmt = select(EnvironmentLiveSettings).where(
            EnvironmentLiveSettings.environment_id == environment_id
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_or_create(self, environment_id: uuid.UUID) -> EnvironmentLiveSettings:
        settings = await self.get(environment_id)
        if settings is None:
            settings = EnvironmentLiveSettings(
                environment_id=environment_id,
                live_sessions_enabled=False,
                monthly_minutes_limit=0,
                monthly_minutes_used=0,
                max_concurrent_sessions=1,
                max_participants_per_session=100,
            )
            self._session.add(settings)
            await self._session.flush()
        return settings
