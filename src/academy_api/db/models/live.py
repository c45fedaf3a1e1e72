"""
academy_api.db.models.live

Live session schema (LiveKit-backed video rooms).

Responsibilities:
- LiveSession with its scheduled -> live -> ended lifecycle.
- Per-user participation with accumulated watch time.
- Per-environment live settings: feature flag, monthly minute quota, concurrency cap.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, String, Text, UniqueConstraint, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from academy_api.db.base import Base, utcnow


class LiveSessionStatus(enum.StrEnum):
    scheduled = "scheduled"
    live = "live"
    ended = "ended"
    cancelled = "cancelled"


class ParticipantRole(enum.StrEnum):
    host = "host"
    co_host = "co_host"
    viewer = "viewer"


PUBLISHING_ROLES = frozenset({ParticipantRole.host, ParticipantRole.co_host})


def room_name_for(environment_id: uuid.UUID) -> str:
    return f"env_{environment_id}_session_{uuid.uuid4()}"


class LiveSession(Base):
    __tablename__ = "live_sessions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    course_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("courses.id"), nullable=True
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    room_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    status: Mapped[LiveSessionStatus] = mapped_column(
        Enum(LiveSessionStatus), nullable=False, default=LiveSessionStatus.scheduled, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(nullable=True)
    max_participants: Mapped[int] = mapped_column(nullable=False, default=100)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    def start(self, now: datetime) -> bool:
        if self.status != LiveSessionStatus.scheduled:
            return False
        self.status = LiveSessionStatus.live
        self.started_at = now
        return True

    def end(self, now: datetime) -> bool:
        if self.status != LiveSessionStatus.live:
            return False
        self.status = LiveSessionStatus.ended
        self.ended_at = now
        if self.started_at is not None:
            self.duration_minutes = int((now - self.started_at).total_seconds() // 60)
        else:
            self.duration_minutes = 0
        return True


class LiveSessionParticipant(Base):
    __tablename__ = "live_session_participants"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    live_session_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("live_sessions.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    role: Mapped[ParticipantRole] = mapped_column(
        Enum(ParticipantRole), nullable=False, default=ParticipantRole.viewer
    )
    joined_at: Mapped[datetime | None] = mapped_column(nullable=True)
    left_at: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_seconds: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("live_session_id", "user_id", name="uq_participant_session_user"),)

    @property
    def can_publish(self) -> bool:
        return self.role in PUBLISHING_ROLES

    def record_join(self, now: datetime) -> None:
        self.joined_at = now
        self.left_at = None

    def record_leave(self, now: datetime) -> None:
        if self.joined_at is not None and self.left_at is None:
            self.duration_seconds += max(0, int((now - self.joined_at).total_seconds()))
        self.left_at = now


class EnvironmentLiveSettings(Base):
    __tablename__ = "environment_live_settings"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, unique=True
    )
    live_sessions_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 0 means unlimited.
    monthly_minutes_limit: Mapped[int] = mapped_column(nullable=False, default=0)
    monthly_minutes_used: Mapped[int] = mapped_column(nullable=False, default=0)
    max_concurrent_sessions: Mapped[int] = mapped_column(nullable=False, default=1)
    max_participants_per_session: Mapped[int] = mapped_column(nullable=False, default=100)
    billing_cycle_resets_at: Mapped[datetime | None] = mapped_column(nullable=True)

    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    def has_exceeded_limit(self) -> bool:
        if self.monthly_minutes_limit == 0:
            return False
        return self.monthly_minutes_used >= self.monthly_minutes_limit

    def remaining_minutes(self) -> int | None:
        if self.monthly_minutes_limit == 0:
            return None
        return max(0, self.monthly_minutes_limit - self.monthly_minutes_used)

    def add_usage(self, minutes: int) -> None:
        self.monthly_minutes_used += max(0, minutes)

    def reset_monthly_usage(self, next_reset: datetime) -> None:
        self.monthly_minutes_used = 0
        self.billing_cycle_resets_at = next_reset

    def can_start_new_session(self, live_sessions_count: int) -> bool:
        return (
            self.live_sessions_enabled
            and not self.has_exceeded_limit()
            and live_sessions_count < self.max_concurrent_sessions
        )
