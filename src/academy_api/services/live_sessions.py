"""
academy_api.services.live_sessions

Live session lifecycle service (transaction owner).

Responsibilities:
- Schedule, update, cancel and delete sessions inside an environment.
- Start and end sessions while enforcing the environment's live settings.
- Issue LiveKit join tokens with the caller's participant role.
- Apply LiveKit webhook events (room and participant lifecycle).
"""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_403_FORBIDDEN,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from academy_api.api.responses import ApiError
from academy_api.db.base import as_naive_utc, utcnow
from academy_api.db.models import (
    EnvironmentLiveSettings,
    LiveSession,
    LiveSessionStatus,
    ParticipantRole,
    User,
    room_name_for,
)
from academy_api.db.repositories.live_sessions import LiveSessionRepo, LiveSettingsRepo
from academy_api.observability.logging import get_logger
from academy_api.services import livekit
from academy_api.settings import Settings

log = get_logger(__name__)

UPDATABLE_FIELDS = ("title", "description", "course_id", "scheduled_at", "max_participants", "settings")


def next_billing_reset(now: datetime) -> datetime:
    # First instant of the next calendar month.
    days = calendar.monthrange(now.year, now.month)[1]
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start_of_month + timedelta(days=days)


class LiveSessionService:
    def __init__(self, *, session: AsyncSession, settings: Settings) -> None:
        self._session = session
        self._settings = settings
        self._sessions = LiveSessionRepo(session)
        self._live_settings = LiveSettingsRepo(session)

    async def live_settings(self, environment_id: uuid.UUID) -> EnvironmentLiveSettings:
        live_settings = await self._live_settings.get_or_create(environment_id)
        now = utcnow()
        if live_settings.billing_cycle_resets_at is None:
            live_settings.billing_cycle_resets_at = next_billing_reset(now)
        elif live_settings.billing_cycle_resets_at <= now:
            live_settings.reset_monthly_usage(next_billing_reset(now))
            log.info("live_usage_reset", environment_id=str(environment_id))
        return live_settings

    async def create(
        self,
        *,
        environment_id: uuid.UUID,
        creator: User,
        title: str,
        scheduled_at: datetime,
        description: str | None = None,
        course_id: uuid.UUID | None = None,
        max_participants: int | None = None,
        settings: dict[str, Any] | None = None,
    ) -> LiveSession:
        live_settings = await self.live_settings(environment_id)
        if not live_settings.live_sessions_enabled:
            raise ApiError(HTTP_403_FORBIDDEN, "Live sessions are not enabled for this environment.")

        scheduled_at = as_naive_utc(scheduled_at)
        _require_future(scheduled_at)

        live = await self._sessions.create(
            environment_id=environment_id,
            created_by=creator.id,
            course_id=course_id,
            title=title,
            description=description,
            room_name=room_name_for(environment_id),
            status=LiveSessionStatus.scheduled,
            scheduled_at=scheduled_at,
            max_participants=max_participants or 100,
            settings=settings or {},
        )
        await self._sessions.ensure_participant(live.id, creator.id, role=ParticipantRole.host)
        await self._session.commit()
        log.info("live_session_created", live_session_id=str(live.id), room=live.room_name)
        return live

    async def update(self, live: LiveSession, changes: dict[str, Any]) -> LiveSession:
        if live.status != LiveSessionStatus.scheduled:
            raise ApiError(HTTP_422_UNPROCESSABLE_ENTITY, "Only scheduled sessions can be updated.")
        if "scheduled_at" in changes:
            changes["scheduled_at"] = as_naive_utc(changes["scheduled_at"])
            _require_future(changes["scheduled_at"])
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(live, field, changes[field])
        await self._session.commit()
        return live

    async def remove(self, live: LiveSession) -> str:
        if live.status == LiveSessionStatus.live:
            raise ApiError(
                HTTP_422_UNPROCESSABLE_ENTITY,
                "Cannot delete a live session that is currently in progress.",
            )
        if live.status == LiveSessionStatus.scheduled:
            live.status = LiveSessionStatus.cancelled
            await self._session.commit()
            return "Live session cancelled."
        await self._sessions.delete(live)
        await self._session.commit()
        return "Live session deleted."

    async def start(self, live: LiveSession) -> LiveSession:
        live_settings = await self.live_settings(live.environment_id)
        live_count = await self._sessions.count_live(live.environment_id)
        if not live_settings.can_start_new_session(live_count):
            raise ApiError(
                HTTP_403_FORBIDDEN,
                "Cannot start session: limit reached or live sessions disabled.",
            )
        if not live.start(utcnow()):
            raise ApiError(
                HTTP_422_UNPROCESSABLE_ENTITY,
                "Session cannot be started. It may already be live or ended.",
            )
        await self._session.commit()
        log.info("live_session_started", live_session_id=str(live.id))
        return live

    async def end(self, live: LiveSession) -> LiveSession:
        now = utcnow()
        if not live.end(now):
            raise ApiError(HTTP_422_UNPROCESSABLE_ENTITY, "Session cannot be ended. It may not be live.")
        await self._after_end(live, now)
        await self._session.commit()
        log.info("live_session_ended", live_session_id=str(live.id), minutes=live.duration_minutes)
        return live

    async def _after_end(self, live: LiveSession, now: datetime) -> None:
        live_settings = await self._live_settings.get(live.environment_id)
        if live_settings is not None:
            live_settings.add_usage(live.duration_minutes or 0)
        for participant in await self._sessions.participants(live.id):
            if participant.left_at is None and participant.joined_at is not None:
                participant.record_leave(now)

    async def stats(self, environment_id: uuid.UUID) -> dict[str, int]:
        counts = await self._sessions.count_by_status(environment_id)
        return {
            "upcoming": await self._sessions.count_upcoming(environment_id, utcnow()),
            "live_now": counts.get(LiveSessionStatus.live, 0),
            "completed": counts.get(LiveSessionStatus.ended, 0),
            "total_participants": await self._sessions.distinct_participants(environment_id),
        }

    async def join_token(self, live: LiveSession, user: User) -> dict[str, Any]:
        if live.status not in (LiveSessionStatus.live, LiveSessionStatus.scheduled):
            raise ApiError(HTTP_403_FORBIDDEN, "This session is not available to join.")

        if live.status == LiveSessionStatus.scheduled:
            opens_at = live.scheduled_at - timedelta(minutes=self._settings.live_join_window_minutes)
            if utcnow() < opens_at:
                raise ApiError(
                    HTTP_403_FORBIDDEN,
                    "Session has not started yet.",
                    data={"scheduled_at": live.scheduled_at},
                )

        role = ParticipantRole.host if live.created_by == user.id else ParticipantRole.viewer
        participant = await self._sessions.ensure_participant(live.id, user.id, role=role)
        await self._session.commit()

        token = livekit.issue_room_token(
            settings=self._settings,
            identity=livekit.identity_for(user.id),
            name=user.name,
            room=live.room_name,
            can_publish=participant.can_publish,
        )
        return {
            "token": token,
            "server_url": self._settings.livekit_server_url,
            "room_name": live.room_name,
            "role": participant.role.value,
            "can_publish": participant.can_publish,
        }

    async def handle_webhook(self, event: dict[str, Any]) -> None:
        kind = event.get("event")
        room = event.get("room")
        room_name = room.get("name") if isinstance(room, dict) else None
        live = await self._sessions.by_room(room_name) if room_name else None
        if live is None:
            log.info("livekit_webhook_ignored", webhook_event=kind, room=room_name)
            return

        now = utcnow()
        if kind == "room_started":
            live.start(now)
        elif kind == "room_finished":
            if live.end(now):
                await self._after_end(live, now)
        elif kind in ("participant_joined", "participant_left"):
            participant_info = event.get("participant")
            identity = participant_info.get("identity") if isinstance(participant_info, dict) else None
            user_id = livekit.user_id_from_identity(identity)
            if user_id is None:
                log.warning("livekit_unknown_identity", identity=identity)
                return
            role = ParticipantRole.host if live.created_by == user_id else ParticipantRole.viewer
            participant = await self._sessions.ensure_participant(live.id, user_id, role=role)
            if kind == "participant_joined":
                participant.record_join(now)
            else:
                participant.record_leave(now)
        else:
            log.info("livekit_webhook_ignored", webhook_event=kind, room=room_name)
            return

        await self._session.commit()
        log.info("livekit_webhook_applied", webhook_event=kind, live_session_id=str(live.id))


def _require_future(scheduled_at: datetime | None) -> None:
    if scheduled_at is None or scheduled_at <= utcnow():
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"scheduled_at": ["The scheduled at must be a date after now."]},
        )
