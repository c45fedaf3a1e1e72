"""
academy_api.db.models.analytics

Academy traffic and learning-time analytics.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from academy_api.db.base import Base, utcnow


class AcademyVisitor(Base):
    __tablename__ = "academy_visitors"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False
    )
    # Client-generated browser fingerprint.
    visit_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    visits_count: Mapped[int] = mapped_column(nullable=False, default=0)
    first_seen_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_seen_at: Mapped[datetime | None] = mapped_column(nullable=True)

    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)
    country_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    state_prov: Mapped[str | None] = mapped_column(String(128), nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    isp: Mapped[str | None] = mapped_column(String(255), nullable=True)
    geo_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (UniqueConstraint("environment_id", "visit_hash", name="uq_visitor_env_hash"),)


class AcademyVisitEvent(Base):
    __tablename__ = "academy_visit_events"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False
    )
    visit_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_visit_events_env_occurred", "environment_id", "occurred_at"),)


class EnrollmentAnalytics(Base):
    __tablename__ = "enrollment_analytics"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("enrollments.id"), nullable=False, index=True
    )
    # Seconds spent in one learning session.
    session_duration: Mapped[int] = mapped_column(nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
