"""
academy_api.api.routers.analytics_widgets

Academy visit tracking and owner dashboard widgets.

Responsibilities:
- Record (throttled) academy page visits with optional geo enrichment.
- Serve financial and traffic widgets for environment owners.

These endpoints answer with the `{success: bool}` envelope.
"""

from __future__ import annotations

from datetime import date

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_403_FORBIDDEN, HTTP_422_UNPROCESSABLE_ENTITY

from academy_api.api.deps import db_session, environment_id_from_request, http_client, settings_dep
from academy_api.api.responses import ApiError, success
from academy_api.auth.deps import get_current_user, manages_environment
from academy_api.db.models import Environment, User
from academy_api.services.analytics import AnalyticsService, client_ip
from academy_api.settings import Settings

router = APIRouter(prefix="/analytics", tags=["analytics"])


class TrackVisit(BaseModel):
    visit_hash: str = Field(min_length=1, max_length=200)
    path: str | None = Field(default=None, max_length=2048)
    referrer: str | None = Field(default=None, max_length=2048)


def analytics_service(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
    http: httpx.AsyncClient = Depends(http_client),
) -> AnalyticsService:
    return AnalyticsService(session=session, settings=settings, http=http)


async def widget_environment(
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> Environment:
    environment_id = environment_id_from_request(request)
    environment = await session.get(Environment, environment_id) if environment_id else None
    if environment is None:
        raise ApiError(HTTP_400_BAD_REQUEST, "No environment selected", envelope="success")
    if not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "Unauthorized", envelope="success")
    return environment


def _check_range(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and end < start:
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"end_date": ["The end date must be a date after or equal to start date."]},
            envelope="success",
        )


@router.post("/track-visit")
async def track_visit(
    body: TrackVisit,
    request: Request,
    session: AsyncSession = Depends(db_session),
    svc: AnalyticsService = Depends(analytics_service),
) -> JSONResponse:
    environment_id = environment_id_from_request(request)
    if environment_id is None or await session.get(Environment, environment_id) is None:
        raise ApiError(HTTP_400_BAD_REQUEST, "No environment selected", envelope="success")
    peer = request.client.host if request.client else None
    data = await svc.track_visit(
        environment_id=environment_id,
        visit_hash=body.visit_hash,
        path=body.path,
        referrer=body.referrer,
        ip=client_ip(request.headers, peer),
        user_agent=request.headers.get("user-agent"),
    )
    return success(data, envelope="success")


@router.get("/financial-widgets")
async def financial_widgets(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    environment: Environment = Depends(widget_environment),
    svc: AnalyticsService = Depends(analytics_service),
) -> JSONResponse:
    _check_range(start_date, end_date)
    data = await svc.financial_widgets(environment.id, start=start_date, end=end_date)
    return success(data, envelope="success")


@router.get("/traffic-widgets")
async def traffic_widgets(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    environment: Environment = Depends(widget_environment),
    svc: AnalyticsService = Depends(analytics_service),
) -> JSONResponse:
    _check_range(start_date, end_date)
    data = await svc.traffic_widgets(environment.id, start=start_date, end=end_date)
    return success(data, envelope="success")
