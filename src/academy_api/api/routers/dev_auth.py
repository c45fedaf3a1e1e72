"""
academy_api.api.routers.dev_auth

Dev-only token minting so local clients and tests can act as any user.

Responsibilities:
- Upsert the user by email and issue a signed access token for it.
- Answer 404 when running in prod.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_404_NOT_FOUND

from academy_api.api.deps import EMAIL_PATTERN, db_session, settings_dep
from academy_api.auth.jwt import JwtConfig, issue_access_token
from academy_api.auth.models import Principal
from academy_api.db.models import UserRole
from academy_api.db.repositories.identity import UserRepo
from academy_api.settings import Settings

router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    role: UserRole = UserRole.student
    company_name: str | None = Field(default=None, max_length=255)
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(settings_dep),
    session: AsyncSession = Depends(db_session),
) -> DevTokenResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")

    user = await UserRepo(session).upsert(
        email=body.email, name=body.name, role=body.role, company_name=body.company_name
    )
    await session.commit()
    token = issue_access_token(
        cfg=JwtConfig.from_settings(settings),
        principal=Principal(user_id=user.id, roles=frozenset({user.role.value}), email=user.email),
        ttl=timedelta(minutes=body.ttl_minutes),
    )
    return DevTokenResponse(access_token=token, user_id=str(user.id))
