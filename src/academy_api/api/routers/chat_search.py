"""
academy_api.api.routers.chat_search

Full-text search over active and archived course chat.

Responsibilities:
- Search with filters, suggestions, and search analytics.
- Build and rebuild the per-course search index (guarded by a cache lock).
- Report index coverage and health.
- Scope every read to a course the caller can see; only admins query across courses.

Failures are reported with a stable `error` code so clients can tell them apart.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.status import (
    HTTP_403_FORBIDDEN,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from academy_api.api.deps import db_session, environment_id_from_request, sessionmaker_from_app, settings_dep
from academy_api.api.responses import ApiError, success
from academy_api.api.routers.chat import course_for_instructor, course_for_participant
from academy_api.auth.deps import get_current_user
from academy_api.db.base import as_naive_utc
from academy_api.db.models import User
from academy_api.db.repositories.chat import MessageFilter
from academy_api.observability.logging import get_logger
from academy_api.services.analytics import client_ip
from academy_api.services.archive_storage import ArchiveStorage
from academy_api.services.cache_lock import CacheLock
from academy_api.services.chat_search import ChatSearchService
from academy_api.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/chat/search", tags=["chat-search"])


def chat_search_service(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> ChatSearchService:
    return ChatSearchService(session=session, storage=ArchiveStorage(settings.archive_storage_root))


def _failure(event: str, code: str, message: str, error: Exception, **context: object) -> ApiError:
    log.error(event, error=str(error), **context)
    return ApiError(HTTP_500_INTERNAL_SERVER_ERROR, message, code=code)


async def _check_scope(
    session: AsyncSession, course_id: uuid.UUID | None, user: User, *, instructor: bool = False
) -> None:
    if course_id is None:
        if not user.is_admin:
            raise ApiError(HTTP_403_FORBIDDEN, "A course_id is required to query course chat")
    elif instructor:
        await course_for_instructor(session, course_id, user)
    else:
        await course_for_participant(session, course_id, user)


@router.get("")
async def search_messages(
    request: Request,
    query: str = Query(min_length=2, max_length=255),
    course_id: uuid.UUID | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    include_archived: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    start, end = as_naive_utc(start_date), as_naive_utc(end_date)
    if start is not None and end is not None and end < start:
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"end_date": ["The end date must be a date after or equal to start date."]},
        )
    await _check_scope(session, course_id, user)

    flt = MessageFilter(course_id=course_id, user_id=user_id, start_date=start, end_date=end)
    peer = request.client.host if request.client else None
    try:
        result = await svc.search(
            query,
            flt,
            include_archived=include_archived,
            limit=limit,
            user_id=user.id,
            environment_id=environment_id_from_request(request),
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request.headers, peer),
        )
    except SQLAlchemyError as e:
        raise _failure("chat_search_failed", "SEARCH_FAILED", "Search failed", e, query=query) from e

    response_time_ms = result.pop("response_time_ms")
    filters_applied = {
        "user_id": str(user_id) if user_id else None,
        "start_date": start,
        "end_date": end,
        "include_archived": include_archived,
    }
    return success(
        result,
        meta={
            "query": query,
            "course_id": str(course_id) if course_id else None,
            "filters_applied": {k: v for k, v in filters_applied.items() if v is not None},
            "performance": {"response_time_ms": response_time_ms},
        },
    )


@router.get("/suggestions")
async def search_suggestions(
    q: str = Query(min_length=1, max_length=100),
    course_id: uuid.UUID | None = Query(default=None),
    limit: int = Query(default=10, ge=1, le=20),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    await _check_scope(session, course_id, user)
    try:
        data = await svc.suggestions(q, course_id=course_id, limit=limit)
    except SQLAlchemyError as e:
        raise _failure(
            "chat_suggestions_failed", "SUGGESTIONS_FAILED", "Failed to generate suggestions", e, q=q
        ) from e
    return success(data)


@router.post("/index/{course_id}")
async def build_index(
    course_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    await course_for_instructor(session, course_id, user)
    lock = CacheLock(
        sessionmaker,
        f"search_index_build:{course_id}",
        ttl=timedelta(seconds=settings.search_index_lock_ttl_seconds),
        owner=str(user.id),
    )
    if not await lock.acquire():
        raise ApiError(
            HTTP_409_CONFLICT,
            "Index build already in progress for this course",
            code="BUILD_IN_PROGRESS",
        )
    try:
        stats = await svc.build_index(course_id)
    except (SQLAlchemyError, OSError) as e:
        await session.rollback()
        raise _failure(
            "search_index_build_failed",
            "INDEX_BUILD_FAILED",
            "Failed to build search index",
            e,
            course_id=str(course_id),
        ) from e
    finally:
        await lock.release()
    return success(stats, message="Search index built successfully")


@router.post("/index/{course_id}/rebuild")
async def rebuild_index(
    course_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    await course_for_instructor(session, course_id, user)
    try:
        stats = await svc.build_index(course_id)
    except (SQLAlchemyError, OSError) as e:
        await session.rollback()
        raise _failure(
            "search_index_rebuild_failed",
            "INDEX_REBUILD_FAILED",
            "Failed to rebuild search index",
            e,
            course_id=str(course_id),
        ) from e
    return success(stats, message="Search index rebuilt successfully")


@router.get("/analytics")
async def search_analytics(
    course_id: uuid.UUID | None = Query(default=None),
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    await _check_scope(session, course_id, user, instructor=True)
    try:
        data = await svc.analytics(course_id=course_id, days=days)
    except SQLAlchemyError as e:
        raise _failure(
            "search_analytics_failed", "ANALYTICS_FAILED", "Failed to load search analytics", e
        ) from e
    return success(data)


@router.get("/index-status")
async def index_status(
    course_id: uuid.UUID | None = Query(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatSearchService = Depends(chat_search_service),
) -> JSONResponse:
    await _check_scope(session, course_id, user, instructor=True)
    try:
        data = await svc.index_status(course_id)
    except SQLAlchemyError as e:
        raise _failure(
            "search_index_status_failed", "INDEX_STATUS_FAILED", "Failed to load index status", e
        ) from e
    return success(data)
