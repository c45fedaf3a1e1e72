"""
academy_api.api.routers.chat_analytics

Course discussion engagement analytics for instructors.

Responsibilities:
- Full engagement reports over an explicit date range.
- Per-participant metrics filtered by role.
- A rolling dashboard for the last N days.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY

from academy_api.api.deps import db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.routers.chat import course_for_instructor
from academy_api.auth.deps import get_current_user
from academy_api.db.base import utcnow
from academy_api.db.models import User
from academy_api.services.participation_metrics import ParticipationMetricsService

router = APIRouter(prefix="/chat/analytics", tags=["chat-analytics"])

MAX_REPORT_DAYS = 365
DEFAULT_PARTICIPATION_DAYS = 30


def _validated_range(start: date, end: date) -> None:
    errors: dict[str, list[str]] = {}
    today = utcnow().date()
    if start > today:
        errors["start_date"] = ["The start date must not be in the future."]
    if end > today:
        errors["end_date"] = ["The end date must not be in the future."]
    elif end < start:
        errors["end_date"] = ["The end date must be a date after or equal to start date."]
    if errors:
        raise ApiError(HTTP_422_UNPROCESSABLE_ENTITY, "Validation failed", errors=errors)
    if (end - start).days > MAX_REPORT_DAYS:
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            f"Date range cannot exceed {MAX_REPORT_DAYS} days",
            errors={"end_date": [f"The date range cannot exceed {MAX_REPORT_DAYS} days."]},
        )


@router.get("/{course_id}/engagement-report")
async def engagement_report(
    course_id: uuid.UUID,
    start_date: date = Query(),
    end_date: date = Query(),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await course_for_instructor(session, course_id, user)
    _validated_range(start_date, end_date)
    report = await ParticipationMetricsService(session=session).engagement_report(course, start_date, end_date)
    return success(report)


@router.get("/{course_id}/participation")
async def participation(
    course_id: uuid.UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    role: Literal["student", "instructor", "all"] = Query(default="all"),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await course_for_instructor(session, course_id, user)
    end = end_date or utcnow().date()
    start = start_date or end - timedelta(days=DEFAULT_PARTICIPATION_DAYS - 1)
    _validated_range(start, end)
    rows = await ParticipationMetricsService(session=session).participation(
        course, start, end, role=role, limit=limit
    )
    return success(
        {
            "course_id": str(course.id),
            "period": {"start_date": start, "end_date": end},
            "role": role,
            "participants": rows,
        }
    )


@router.get("/{course_id}/dashboard")
async def dashboard(
    course_id: uuid.UUID,
    days: int = Query(default=30, ge=1, le=90),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    course = await course_for_instructor(session, course_id, user)
    data = await ParticipationMetricsService(session=session).dashboard(
        course, days=days, today=utcnow().date()
    )
    return success(data)
