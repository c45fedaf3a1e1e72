"""
academy_api.api.routers.live_sessions

Live session endpoints (LiveKit rooms scoped to an environment).

Responsibilities:
- Read and update per-environment live settings.
- Schedule, list, update and cancel sessions; start/end them under quota rules.
- Mint LiveKit join tokens.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.deps import current_environment, db_session, settings_dep
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import live_session_out, live_settings_out
from academy_api.auth.deps import get_current_user, manages_environment
from academy_api.db.models import Environment, LiveSession, LiveSessionStatus, User, UserRole
from academy_api.db.pagination import paginate
from academy_api.db.repositories.live_sessions import LiveSessionRepo
from academy_api.services.live_sessions import LiveSessionService
from academy_api.settings import Settings

router = APIRouter(tags=["live-sessions"])

LIVE_SESSIONS_PER_PAGE = 15


class LiveSettingsUpdate(BaseModel):
    live_sessions_enabled: bool | None = None
    monthly_minutes_limit: int | None = Field(default=None, ge=0)
    max_concurrent_sessions: int | None = Field(default=None, ge=1)
    max_participants_per_session: int | None = Field(default=None, ge=1, le=1000)


class LiveSessionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    course_id: uuid.UUID | None = None
    scheduled_at: datetime
    max_participants: int = Field(default=100, ge=1, le=1000)
    settings: dict[str, Any] | None = None


class LiveSessionUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    course_id: uuid.UUID | None = None
    scheduled_at: datetime | None = None
    max_participants: int | None = Field(default=None, ge=1, le=1000)
    settings: dict[str, Any] | None = None


def live_session_service(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> LiveSessionService:
    return LiveSessionService(session=session, settings=settings)


def _require_manager(user: User, environment: Environment) -> None:
    if not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "Only the environment owner can manage live settings.")


def _require_host(user: User, environment: Environment, live: LiveSession) -> None:
    if live.created_by != user.id and not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to manage this session.")


async def _live_session(session: AsyncSession, live_session_id: uuid.UUID, environment: Environment) -> LiveSession:
    live = await LiveSessionRepo(session).get_in_environment(live_session_id, environment.id)
    if live is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Live session not found.")
    return live


@router.get("/live-settings")
async def get_live_settings(
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    _require_manager(user, environment)
    live_settings = await svc.live_settings(environment.id)
    await session.commit()
    return success(live_settings_out(live_settings))


@router.put("/live-settings")
async def update_live_settings(
    body: LiveSettingsUpdate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    _require_manager(user, environment)
    live_settings = await svc.live_settings(environment.id)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(live_settings, field, value)
    await session.commit()
    return success(live_settings_out(live_settings), message="Live settings updated.")


@router.get("/live-sessions")
async def list_live_sessions(
    status: LiveSessionStatus | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    _: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    stmt = LiveSessionRepo(session).filtered(environment.id, status=status)
    result = await paginate(session, stmt, page=page, per_page=LIVE_SESSIONS_PER_PAGE)
    return success(result.to_dict([live_session_out(s) for s in result.items]))


@router.post("/live-sessions")
async def create_live_session(
    body: LiveSessionCreate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    if user.role != UserRole.instructor and not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "Only instructors can schedule live sessions.")
    live = await svc.create(
        environment_id=environment.id,
        creator=user,
        title=body.title,
        description=body.description,
        course_id=body.course_id,
        scheduled_at=body.scheduled_at,
        max_participants=body.max_participants,
        settings=body.settings,
    )
    return success(live_session_out(live), message="Live session scheduled.", status_code=HTTP_201_CREATED)


@router.get("/live-sessions/stats")
async def live_session_stats(
    _: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    return success(await svc.stats(environment.id))


@router.get("/live-sessions/{live_session_id}")
async def get_live_session(
    live_session_id: uuid.UUID,
    _: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    participants = await LiveSessionRepo(session).participants(live.id)
    return success(live_session_out(live, participants))


@router.put("/live-sessions/{live_session_id}")
async def update_live_session(
    live_session_id: uuid.UUID,
    body: LiveSessionUpdate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    _require_host(user, environment, live)
    live = await svc.update(live, body.model_dump(exclude_unset=True, exclude_none=True))
    return success(live_session_out(live), message="Live session updated.")


@router.delete("/live-sessions/{live_session_id}")
async def delete_live_session(
    live_session_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    _require_host(user, environment, live)
    return success(None, message=await svc.remove(live))


@router.post("/live-sessions/{live_session_id}/start")
async def start_live_session(
    live_session_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    _require_host(user, environment, live)
    return success(live_session_out(await svc.start(live)), message="Live session started.")


@router.post("/live-sessions/{live_session_id}/end")
async def end_live_session(
    live_session_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    _require_host(user, environment, live)
    return success(live_session_out(await svc.end(live)), message="Live session ended.")


@router.post("/live-sessions/{live_session_id}/token")
async def live_session_token(
    live_session_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    svc: LiveSessionService = Depends(live_session_service),
) -> JSONResponse:
    live = await _live_session(session, live_session_id, environment)
    return success(await svc.join_token(live, user))
