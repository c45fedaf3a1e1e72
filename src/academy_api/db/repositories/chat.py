"""
academy_api.db.repositories.chat

Repositories for course chat messages, archives, the search index and search logs.

Responsibilities:
- Read and write active chat messages, including term-matching lookups.
- Track archival jobs and the archive batches they produce.
- Maintain the denormalized search index.
- Record and aggregate search logs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, case, delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.models import (
    ArchivalJob,
    ArchivalJobStatus,
    ArchivedChatMessage,
    ChatMessage,
    ChatSearchIndex,
    SearchLog,
)


@dataclass(frozen=True, slots=True)
class MessageFilter:
    course_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def _terms_clause(column: Any, terms: list[str]) -> Any:
    return or_(*(column.ilike(f"%{t}%") for t in terms))


class ChatMessageRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        course_id: uuid.UUID,
        environment_id: uuid.UUID | None,
        user_id: uuid.UUID,
        content: str,
        parent_message_id: uuid.UUID | None = None,
        created_at: datetime | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            course_id=course_id,
            environment_id=environment_id,
            user_id=user_id,
            content=content,
            parent_message_id=parent_message_id,
        )
        if created_at is not None:
            message.created_at = created_at
        self._session.add(message)
        await self._session.flush()
        return message

    async def get(self, message_id: uuid.UUID) -> ChatMessage | None:
        return await self._session.get(ChatMessage, message_id)

    async def recent(
        self, course_id: uuid.UUID, *, limit: int, before: datetime | None = None
    ) -> list[ChatMessage]:
        stmt = select(ChatMessage).where(ChatMessage.course_id == course_id)
        if before is not None:
            stmt = stmt.where(ChatMessage.created_at < before)
        stmt = stmt.order_by(desc(ChatMessage.created_at)).limit(limit)
        return list((await self._session.execute(stmt)).scalars().all())

    async def search(self, terms: list[str], flt: MessageFilter, *, limit: int) -> list[ChatMessage]:
        stmt = select(ChatMessage).where(_terms_clause(ChatMessage.content, terms))
        if flt.course_id is not None:
            stmt = stmt.where(ChatMessage.course_id == flt.course_id)
        if flt.user_id is not None:
            stmt = stmt.where(ChatMessage.user_id == flt.user_id)
        if flt.start_date is not None:
            stmt = stmt.where(ChatMessage.created_at >= flt.start_date)
        if flt.end_date is not None:
            stmt = stmt.where(ChatMessage.created_at <= flt.end_date)
        stmt = stmt.order_by(desc(ChatMessage.created_at)).limit(limit)
        return list((await self._session.execute(stmt)).scalars().all())

    async def in_range(
        self, course_id: uuid.UUID, *, start: datetime, end: datetime
    ) -> list[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .where(
                ChatMessage.course_id == course_id,
                ChatMessage.created_at >= start,
                ChatMessage.created_at <= end,
            )
            .order_by(ChatMessage.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def all_for_course(self, course_id: uuid.UUID) -> list[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.course_id == course_id)
            .order_by(ChatMessage.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    def older_than(self, course_id: uuid.UUID, cutoff: datetime) -> Select:
        return (
            select(ChatMessage)
            .where(ChatMessage.course_id == course_id, ChatMessage.created_at < cutoff)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )

    async def count_older_than(self, course_id: uuid.UUID, cutoff: datetime) -> int:
        stmt = select(func.count(ChatMessage.id)).where(
            ChatMessage.course_id == course_id, ChatMessage.created_at < cutoff
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def batch_older_than(
        self, course_id: uuid.UUID, cutoff: datetime, *, limit: int, offset: int = 0
    ) -> list[ChatMessage]:
        stmt = self.older_than(course_id, cutoff).limit(limit).offset(offset)
        return list((await self._session.execute(stmt)).scalars().all())

    async def count_for_course(self, course_id: uuid.UUID) -> int:
        stmt = select(func.count(ChatMessage.id)).where(ChatMessage.course_id == course_id)
        return int((await self._session.execute(stmt)).scalar_one())

    async def delete_ids(self, ids: list[uuid.UUID]) -> int:
        if not ids:
            return 0
        result = await self._session.execute(delete(ChatMessage).where(ChatMessage.id.in_(ids)))
        return result.rowcount or 0


class ArchiveRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_job(
        self, *, course_id: uuid.UUID, cutoff_date: datetime, triggered_by: uuid.UUID | None
    ) -> ArchivalJob:
        job = ArchivalJob(
            course_id=course_id,
            cutoff_date=cutoff_date,
            triggered_by=triggered_by,
            status=ArchivalJobStatus.processing,
        )
        self._session.add(job)
        await self._session.flush()
        return job

    async def latest_job(self, course_id: uuid.UUID) -> ArchivalJob | None:
        stmt = (
            select(ArchivalJob)
            .where(ArchivalJob.course_id == course_id)
            .order_by(desc(ArchivalJob.started_at))
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def processing_job(self, course_id: uuid.UUID) -> ArchivalJob | None:
        stmt = select(ArchivalJob).where(
            ArchivalJob.course_id == course_id,
            ArchivalJob.status == ArchivalJobStatus.processing,
        )
        return (await self._session.execute(stmt)).scalars().first()

    async def jobs_since(self, since: datetime) -> list[ArchivalJob]:
        stmt = select(ArchivalJob).where(ArchivalJob.started_at >= since)
        return list((await self._session.execute(stmt)).scalars().all())

    async def add_archive(self, **fields: Any) -> ArchivedChatMessage:
        archive = ArchivedChatMessage(**fields)
        self._session.add(archive)
        await self._session.flush()
        return archive

    async def archives_for_course(self, course_id: uuid.UUID) -> list[ArchivedChatMessage]:
        stmt = (
            select(ArchivedChatMessage)
            .where(ArchivedChatMessage.course_id == course_id)
            .order_by(ArchivedChatMessage.start_date, ArchivedChatMessage.batch_index)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def archives_overlapping(
        self, course_id: uuid.UUID, *, start: datetime, end: datetime
    ) -> list[ArchivedChatMessage]:
        stmt = (
            select(ArchivedChatMessage)
            .where(
                ArchivedChatMessage.course_id == course_id,
                and_(ArchivedChatMessage.start_date <= end, ArchivedChatMessage.end_date >= start),
            )
            .order_by(ArchivedChatMessage.start_date, ArchivedChatMessage.batch_index)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def archives_since(self, since: datetime) -> list[ArchivedChatMessage]:
        stmt = select(ArchivedChatMessage).where(ArchivedChatMessage.archived_date >= since)
        return list((await self._session.execute(stmt)).scalars().all())

    async def archived_message_count(self, course_id: uuid.UUID) -> int:
        stmt = select(func.coalesce(func.sum(ArchivedChatMessage.message_count), 0)).where(
            ArchivedChatMessage.course_id == course_id
        )
        return int((await self._session.execute(stmt)).scalar_one())


class SearchIndexRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def clear_course(self, course_id: uuid.UUID) -> None:
        await self._session.execute(
            delete(ChatSearchIndex).where(ChatSearchIndex.course_id == course_id)
        )

    async def add_many(self, rows: list[dict[str, Any]]) -> int:
        for row in rows:
            self._session.add(ChatSearchIndex(**row))
        await self._session.flush()
        return len(rows)

    async def mark_archived(self, message_ids: list[str]) -> int:
        if not message_ids:
            return 0
        result = await self._session.execute(
            update(ChatSearchIndex)
            .where(ChatSearchIndex.message_id.in_(message_ids))
            .values(is_archived=True)
        )
        return result.rowcount or 0

    async def search_archived(
        self, terms: list[str], flt: MessageFilter, *, limit: int
    ) -> list[ChatSearchIndex]:
        stmt = select(ChatSearchIndex).where(
            ChatSearchIndex.is_archived.is_(True),
            _terms_clause(ChatSearchIndex.content, terms),
        )
        if flt.course_id is not None:
            stmt = stmt.where(ChatSearchIndex.course_id == flt.course_id)
        if flt.user_id is not None:
            stmt = stmt.where(ChatSearchIndex.user_id == flt.user_id)
        if flt.start_date is not None:
            stmt = stmt.where(ChatSearchIndex.message_date >= flt.start_date)
        if flt.end_date is not None:
            stmt = stmt.where(ChatSearchIndex.message_date <= flt.end_date)
        stmt = stmt.order_by(desc(ChatSearchIndex.message_date)).limit(limit)
        return list((await self._session.execute(stmt)).scalars().all())

    async def contents_matching(
        self, term: str, *, course_id: uuid.UUID | None, limit: int
    ) -> list[str]:
        stmt = select(ChatSearchIndex.content).where(ChatSearchIndex.content.ilike(f"%{term}%"))
        if course_id is not None:
            stmt = stmt.where(ChatSearchIndex.course_id == course_id)
        stmt = stmt.order_by(desc(ChatSearchIndex.message_date)).limit(limit)
        return list((await self._session.execute(stmt)).scalars().all())

    async def statistics(self, course_id: uuid.UUID | None = None) -> dict[str, Any]:
        archived = func.sum(case((ChatSearchIndex.is_archived.is_(True), 1), else_=0))
        stmt = select(
            func.count(ChatSearchIndex.id),
            func.coalesce(archived, 0),
            func.max(ChatSearchIndex.indexed_at),
            func.coalesce(func.sum(func.length(ChatSearchIndex.content)), 0),
        )
        if course_id is not None:
            stmt = stmt.where(ChatSearchIndex.course_id == course_id)
        total, archived_count, last_indexed, content_bytes = (await self._session.execute(stmt)).one()
        return {
            "total": int(total),
            "archived": int(archived_count),
            "active": int(total) - int(archived_count),
            "last_indexed": last_indexed,
            "content_bytes": int(content_bytes),
        }


class SearchLogRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, **fields: Any) -> SearchLog:
        row = SearchLog(**fields)
        self._session.add(row)
        await self._session.flush()
        return row

    def _since(self, since: datetime, course_id: uuid.UUID | None) -> list[Any]:
        clauses = [SearchLog.searched_at >= since]
        if course_id is not None:
            clauses.append(SearchLog.course_id == course_id)
        return clauses

    async def summary(self, *, since: datetime, course_id: uuid.UUID | None) -> dict[str, Any]:
        stmt = select(
            func.count(SearchLog.id),
            func.count(func.distinct(SearchLog.user_id)),
            func.count(func.distinct(func.date(SearchLog.searched_at))),
            func.avg(SearchLog.result_count),
        ).where(*self._since(since, course_id))
        total, users, days, avg_results = (await self._session.execute(stmt)).one()
        return {
            "total_searches": int(total),
            "unique_users": int(users),
            "active_days": int(days),
            "avg_results_per_search": round(float(avg_results or 0.0), 2),
        }

    async def top_queries(
        self,
        *,
        since: datetime,
        course_id: uuid.UUID | None = None,
        contains: str | None = None,
        limit: int = 20,
    ) -> list[tuple[str, int]]:
        clauses = self._since(since, course_id)
        if contains:
            clauses.append(SearchLog.query.ilike(f"%{contains}%"))
        n = func.count(SearchLog.id).label("n")
        stmt = (
            select(SearchLog.query, n)
            .where(*clauses)
            .group_by(SearchLog.query)
            .order_by(desc(n), SearchLog.query)
            .limit(limit)
        )
        return [(q, int(c)) for q, c in (await self._session.execute(stmt)).all()]
