"""
academy_api.api.routers.environments

Tenant (environment) creation and listing.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_422_UNPROCESSABLE_ENTITY

from academy_api.api.deps import db_session
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import environment_out
from academy_api.auth.deps import get_current_user
from academy_api.db.models import User
from academy_api.db.repositories.identity import EnvironmentRepo

router = APIRouter(prefix="/environments", tags=["environments"])


class EnvironmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)


@router.post("")
async def create_environment(
    body: EnvironmentCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    try:
        environment = await EnvironmentRepo(session).create(
            name=body.name, owner_id=user.id, domain=body.domain
        )
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ApiError(
            HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation failed",
            errors={"domain": ["The domain has already been taken."]},
        ) from e
    return success(
        environment_out(environment),
        message="Environment created successfully",
        status_code=HTTP_201_CREATED,
    )


@router.get("")
async def list_environments(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    environments = await EnvironmentRepo(session).list_for_user(user.id)
    return success([environment_out(e) for e in environments])
