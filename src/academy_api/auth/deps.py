"""
academy_api.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
- Resolve the principal to a persisted `User` row.
- Provide an admin-only guard.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from academy_api.api.deps import db_session, settings_dep
from academy_api.auth.jwt import JwtConfig, JwtValidationError, decode_access_token
from academy_api.auth.models import Principal
from academy_api.db.models import Environment, User
from academy_api.db.repositories.identity import UserRepo
from academy_api.settings import Settings

_bearer = HTTPBearer(auto_error=False)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(settings_dep),
) -> Principal:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return decode_access_token(cfg=JwtConfig.from_settings(settings), token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e


async def get_current_user(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(db_session),
) -> User:
    user = await UserRepo(session).get(principal.user_id)
    if user is None:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def manages_environment(user: User, environment: Environment) -> bool:
    return user.is_admin or environment.owner_id == user.id


# --- Module Notes -----------------------------------------------------------
# The role stored on the user row is authoritative for authorization decisions;
# token roles reflect the role at mint time.
