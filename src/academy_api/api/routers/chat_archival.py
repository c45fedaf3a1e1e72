"""
academy_api.api.routers.chat_archival

Cold storage for old course chat.

Responsibilities:
- Report archive status per course and global archival statistics.
- Trigger archival runs and restore (or preview) archived ranges.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, model_validator
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_422_UNPROCESSABLE_ENTITY

from academy_api.api.deps import db_session, settings_dep
from academy_api.api.responses import ApiError, success
from academy_api.api.routers.chat import course_for_instructor
from academy_api.auth.deps import get_current_user, require_admin
from academy_api.db.base import utcnow
from academy_api.db.models import User
from academy_api.services.archive_storage import ArchiveStorage
from academy_api.services.chat_archival import ChatArchivalService
from academy_api.settings import Settings

router = APIRouter(prefix="/chat/archival", tags=["chat-archival"])

MAX_RESTORE_DAYS = 365


class ArchivalTrigger(BaseModel):
    cutoff_date: date | None = None
    force: bool = False


class RestoreRequest(BaseModel):
    start_date: date
    end_date: date
    preview: bool = False

    @model_validator(mode="after")
    def _ordered(self) -> RestoreRequest:
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


def chat_archival_service(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> ChatArchivalService:
    return ChatArchivalService(
        session=session, settings=settings, storage=ArchiveStorage(settings.archive_storage_root)
    )


@router.get("/statistics")
async def archival_statistics(
    days: int = Query(default=30, ge=1, le=365),
    _: User = Depends(require_admin),
    svc: ChatArchivalService = Depends(chat_archival_service),
) -> JSONResponse:
    return success(await svc.statistics(days))


@router.get("/{course_id}/status")
async def archival_status(
    course_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatArchivalService = Depends(chat_archival_service),
) -> JSONResponse:
    await course_for_instructor(session, course_id, user)
    return success(await svc.status(course_id))


@router.post("/{course_id}/trigger")
async def trigger_archival(
    course_id: uuid.UUID,
    body: ArchivalTrigger,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatArchivalService = Depends(chat_archival_service),
) -> JSONResponse:
    await course_for_instructor(session, course_id, user)
    cutoff: datetime | None = None
    if body.cutoff_date is not None:
        if body.cutoff_date >= utcnow().date():
            raise ApiError(
                HTTP_422_UNPROCESSABLE_ENTITY,
                "Validation failed",
                errors={"cutoff_date": ["The cutoff date must be a date before today."]},
            )
        cutoff = datetime.combine(body.cutoff_date, time.min)
    job = await svc.trigger(course_id, cutoff_date=cutoff, force=body.force, triggered_by=user.id)
    return success(job, message="Chat archival completed")


@router.post("/{course_id}/restore")
async def restore_archive(
    course_id: uuid.UUID,
    body: RestoreRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
    svc: ChatArchivalService = Depends(chat_archival_service),
) -> JSONResponse:
    await course_for_instructor(session, course_id, user)
    if (body.end_date - body.start_date).days > MAX_RESTORE_DAYS:
        raise ApiError(
            HTTP_400_BAD_REQUEST,
            f"Date range cannot exceed {MAX_RESTORE_DAYS} days",
            code="DATE_RANGE_TOO_LARGE",
        )
    data = await svc.restore(
        course_id,
        start=datetime.combine(body.start_date, time.min),
        end=datetime.combine(body.end_date, time.max),
        preview=body.preview,
    )
    return success(data)
