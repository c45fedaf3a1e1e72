"""
academy_api.services.chat_search

Search over active and archived course chat.

Responsibilities:
- Run term searches over active messages and the archived part of the index.
- Rank combined results by relevance, then recency.
- Build the per-course search index from active messages and archive files.
- Produce suggestions, search analytics and index health.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.db.base import utcnow
from academy_api.db.models import ChatMessage, ChatSearchIndex
from academy_api.db.repositories.chat import (
    ArchiveRepo,
    ChatMessageRepo,
    MessageFilter,
    SearchIndexRepo,
    SearchLogRepo,
)
from academy_api.observability.logging import get_logger
from academy_api.services.archive_storage import ArchiveStorage

log = get_logger(__name__)

# Upper bound per source before ranking; the caller's `limit` applies after.
SOURCE_FETCH_LIMIT = 500


def query_terms(query: str) -> list[str]:
    return [t for t in query.lower().split() if t] or [query.lower()]


def relevance(query: str, content: str) -> float:
    q = query.lower().strip()
    text = content.lower()
    if q and q in text:
        return 1.0
    words = q.split()
    content_words = text.split()
    matches = sum(1 for w in words if any(w in cw for cw in content_words))
    return matches / len(words) if words else 0.0


def extract_phrases(content: str, partial: str) -> list[str]:
    words = content.split()
    needle = partial.lower()
    phrases: list[str] = []
    for i, word in enumerate(words):
        if needle in word.lower():
            phrase = " ".join(words[max(0, i - 2) : i + 3]).strip()
            if phrase not in phrases:
                phrases.append(phrase)
    return phrases


def _active_row(m: ChatMessage, query: str) -> dict[str, Any]:
    return {
        "id": str(m.id),
        "course_id": str(m.course_id),
        "user_id": str(m.user_id),
        "content": m.content,
        "parent_message_id": str(m.parent_message_id) if m.parent_message_id else None,
        "created_at": m.created_at,
        "is_archived": False,
        "search_relevance": relevance(query, m.content),
    }


def _archived_row(row: ChatSearchIndex, query: str) -> dict[str, Any]:
    return {
        "id": row.message_id,
        "course_id": str(row.course_id),
        "user_id": str(row.user_id) if row.user_id else None,
        "content": row.content,
        "parent_message_id": None,
        "created_at": row.message_date,
        "is_archived": True,
        "search_relevance": relevance(query, row.content),
    }


def rank(results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(results, key=lambda r: (r["search_relevance"], r["created_at"]), reverse=True)


def _parse_datetime(raw: Any) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError:
        return None


class ChatSearchService:
    def __init__(self, *, session: AsyncSession, storage: ArchiveStorage) -> None:
        self._session = session
        self._storage = storage
        self._messages = ChatMessageRepo(session)
        self._archives = ArchiveRepo(session)
        self._index = SearchIndexRepo(session)
        self._logs = SearchLogRepo(session)

    async def search(
        self,
        query: str,
        flt: MessageFilter,
        *,
        include_archived: bool = True,
        limit: int = 50,
        user_id: uuid.UUID | None = None,
        environment_id: uuid.UUID | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        terms = query_terms(query)

        active = [
            _active_row(m, query)
            for m in await self._messages.search(terms, flt, limit=SOURCE_FETCH_LIMIT)
        ]
        archived: list[dict[str, Any]] = []
        if include_archived:
            archived = [
                _archived_row(r, query)
                for r in await self._index.search_archived(terms, flt, limit=SOURCE_FETCH_LIMIT)
            ]

        combined = rank(active + archived)
        total = len(combined)
        limited = total > limit
        combined = combined[:limit]
        response_time_ms = round((time.perf_counter() - started) * 1000, 2)

        await self._log_search(
            query=query,
            course_id=flt.course_id,
            user_id=user_id,
            environment_id=environment_id,
            result_count=total,
            response_time_ms=response_time_ms,
            user_agent=user_agent,
            ip_address=ip_address,
        )

        return {
            "active_messages": rank(active),
            "archived_messages": rank(archived),
            "combined_results": combined,
            "total_results": total,
            "search_metadata": {
                "active_count": len(active),
                "archived_count": len(archived),
                "include_archived": include_archived,
                "limited_results": limited,
                "limit_applied": limit,
            },
            "response_time_ms": response_time_ms,
        }

    async def _log_search(self, **fields: Any) -> None:
        try:
            await self._logs.add(searched_at=utcnow(), **fields)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            log.warning("search_log_failed", query=fields.get("query"), error=str(e))

    async def suggestions(
        self, partial: str, *, course_id: uuid.UUID | None, limit: int = 10
    ) -> dict[str, Any]:
        contents = await self._index.contents_matching(partial, course_id=course_id, limit=limit * 2)
        phrases: list[str] = []
        for content in dict.fromkeys(contents):
            for phrase in extract_phrases(content, partial):
                if phrase not in phrases:
                    phrases.append(phrase)
        popular = await self._logs.top_queries(
            since=utcnow() - timedelta(days=30), course_id=course_id, contains=partial, limit=3
        )
        return {
            "query_suggestions": phrases[:limit],
            "popular_terms": [q for q, _ in popular],
            "generated_at": utcnow(),
        }

    async def build_index(self, course_id: uuid.UUID) -> dict[str, Any]:
        started_at = utcnow()
        log.info("search_index_build_started", course_id=str(course_id))

        await self._index.clear_course(course_id)

        active_rows = [
            {
                "message_id": str(m.id),
                "course_id": m.course_id,
                "environment_id": m.environment_id,
                "user_id": m.user_id,
                "content": m.content,
                "message_date": m.created_at,
                "is_archived": False,
                "indexed_at": started_at,
            }
            for m in await self._messages.all_for_course(course_id)
        ]
        active_indexed = await self._index.add_many(active_rows)

        archived_rows: list[dict[str, Any]] = []
        seen = {r["message_id"] for r in active_rows}
        for archive in await self._archives.archives_for_course(course_id):
            messages = self._storage.read_verified(archive.archive_path, archive.checksum)
            if messages is None:
                log.warning(
                    "archive_checksum_mismatch",
                    archive_id=str(archive.id),
                    path=archive.archive_path,
                )
                continue
            for m in messages:
                message_id = str(m.get("id"))
                if message_id in seen:
                    continue
                seen.add(message_id)
                archived_rows.append(
                    {
                        "message_id": message_id,
                        "course_id": course_id,
                        "environment_id": _uuid_or_none(m.get("environment_id")),
                        "user_id": _uuid_or_none(m.get("user_id")),
                        "content": m.get("content") or "",
                        "message_date": _parse_datetime(m.get("created_at")) or archive.start_date,
                        "is_archived": True,
                        "indexed_at": started_at,
                    }
                )
        archived_indexed = await self._index.add_many(archived_rows)
        await self._session.commit()

        index_stats = await self._index.statistics(course_id)
        stats = {
            "active_messages_indexed": active_indexed,
            "archived_messages_indexed": archived_indexed,
            "total_indexed": active_indexed + archived_indexed,
            "index_size_mb": round(index_stats["content_bytes"] / (1024 * 1024), 2),
            "duration_seconds": round((utcnow() - started_at).total_seconds(), 3),
        }
        log.info("search_index_build_completed", course_id=str(course_id), **stats)
        return stats

    async def analytics(self, *, course_id: uuid.UUID | None, days: int) -> dict[str, Any]:
        now = utcnow()
        since = now - timedelta(days=days)
        summary = await self._logs.summary(since=since, course_id=course_id)
        top = await self._logs.top_queries(since=since, course_id=course_id, limit=20)
        return {
            "period": {
                "start_date": since.date().isoformat(),
                "end_date": now.date().isoformat(),
                "days": days,
            },
            "summary": summary,
            "top_queries": [{"query": q, "search_count": n} for q, n in top],
            "course_id": str(course_id) if course_id else None,
            "generated_at": now,
        }

    async def index_status(self, course_id: uuid.UUID | None) -> dict[str, Any]:
        stats = await self._index.statistics(course_id)
        coverage: float | None = None
        if course_id is not None:
            known = await self._messages.count_for_course(course_id)
            known += await self._archives.archived_message_count(course_id)
            coverage = round(stats["total"] / known * 100, 2) if known else 0.0
        return {
            "index_statistics": {
                "total_indexed": stats["total"],
                "active_indexed": stats["active"],
                "archived_indexed": stats["archived"],
                "last_indexed": stats["last_indexed"],
            },
            "index_health": {
                "is_healthy": stats["total"] > 0,
                "last_update": stats["last_indexed"],
                "coverage": coverage,
            },
            "course_id": str(course_id) if course_id else None,
        }


def _uuid_or_none(raw: Any) -> uuid.UUID | None:
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None
