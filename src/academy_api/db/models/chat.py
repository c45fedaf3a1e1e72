"""
academy_api.db.models.chat

Course chat schema plus the search and archival bookkeeping built on it.

Responsibilities:
- ChatMessage: live (not yet archived) course discussion messages.
- ArchivalJob / ArchivedChatMessage: archival runs and the batch files they wrote.
- ChatSearchIndex: denormalized searchable copies of active and archived messages.
- SearchLog: one row per executed search, used for analytics and suggestions.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, Float, ForeignKey, Index, String, Text, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column

from academy_api.db.base import Base, utcnow


class ArchivalJobStatus(enum.StrEnum):
    processing = "processing"
    completed = "completed"
    failed = "failed"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    environment_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_message_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_chat_messages_course_created", "course_id", "created_at"),)


class ArchivalJob(Base):
    __tablename__ = "archival_jobs"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), nullable=False, index=True)
    status: Mapped[ArchivalJobStatus] = mapped_column(
        Enum(ArchivalJobStatus), nullable=False, default=ArchivalJobStatus.processing, index=True
    )
    cutoff_date: Mapped[datetime] = mapped_column(nullable=False)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    messages_archived: Mapped[int] = mapped_column(nullable=False, default=0)
    batches_created: Mapped[int] = mapped_column(nullable=False, default=0)
    storage_size_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggered_by: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)

    started_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class ArchivedChatMessage(Base):
    __tablename__ = "archived_chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), nullable=False, index=True)
    archival_job_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("archival_jobs.id"), nullable=True
    )
    archive_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    message_count: Mapped[int] = mapped_column(nullable=False)
    storage_size_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    checksum: Mapped[str] = mapped_column(String(32), nullable=False)
    batch_index: Mapped[int] = mapped_column(nullable=False, default=0)

    archived_date: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_archived_chat_course_range", "course_id", "start_date", "end_date"),)


class ChatSearchIndex(Base):
    __tablename__ = "chat_search_index"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    course_id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), nullable=False, index=True)
    environment_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_date: Mapped[datetime] = mapped_column(nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    indexed_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class SearchLog(Base):
    __tablename__ = "search_logs"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    course_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True, index=True)
    environment_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    query: Mapped[str] = mapped_column(String(255), nullable=False)
    result_count: Mapped[int] = mapped_column(nullable=False, default=0)
    response_time_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    searched_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
