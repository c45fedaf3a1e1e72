"""
academy_api.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings, DB sessions and the shared HTTP client.
- Resolve the current tenant from the `X-Environment-ID` header.
- Parse common paging parameters.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx
from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from academy_api.api.responses import ApiError
from academy_api.db.models import Environment
from academy_api.settings import Settings

ENVIRONMENT_HEADER = "X-Environment-ID"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def settings_dep(request: Request) -> Settings:
    # The settings object passed to `create_app` wins over env-derived defaults.
    return request.app.state.settings  # type: ignore[attr-defined]


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session; handlers commit explicitly.
    async with session_factory() as session:
        yield session


def http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http  # type: ignore[attr-defined]


def environment_id_from_request(request: Request) -> uuid.UUID | None:
    raw = request.headers.get(ENVIRONMENT_HEADER)
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def current_environment(
    request: Request,
    session: AsyncSession = Depends(db_session),
) -> Environment:
    environment_id = environment_id_from_request(request)
    if environment_id is None:
        raise ApiError(HTTP_400_BAD_REQUEST, "No environment selected")
    environment = await session.get(Environment, environment_id)
    if environment is None:
        raise ApiError(HTTP_404_NOT_FOUND, "Environment not found")
    return environment


@dataclass(frozen=True, slots=True)
class PageParams:
    page: int
    per_page: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


def page_params(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=15, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, per_page=per_page)


# --- Module Notes -----------------------------------------------------------
# Tenancy is explicit: handlers that need a tenant depend on `current_environment`
# rather than reading headers themselves.
