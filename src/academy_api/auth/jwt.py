"""
academy_api.auth.jwt

Academy access tokens.

Responsibilities:
- Mint HS256 access tokens for a `Principal` (user id as `sub`, role list, email).
- Validate signature and registered claims and rebuild the `Principal`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError

from academy_api.auth.models import Principal
from academy_api.settings import Settings

REQUIRED_CLAIMS = ("exp", "iat", "iss", "aud", "sub")
DEFAULT_TTL = timedelta(hours=1)


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


class JwtValidationError(Exception):
    pass


def issue_access_token(*, cfg: JwtConfig, principal: Principal, ttl: timedelta = DEFAULT_TTL) -> str:
    issued_at = datetime.now(tz=UTC)
    claims: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": str(principal.user_id),
        "roles": sorted(principal.roles),
        "iat": issued_at,
        "exp": issued_at + ttl,
    }
    if principal.email:
        claims["email"] = principal.email
    return jwt.encode(claims, cfg.secret, algorithm=cfg.alg)


def decode_access_token(*, cfg: JwtConfig, token: str) -> Principal:
    try:
        claims = jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e

    try:
        user_id = uuid.UUID(str(claims["sub"]))
    except ValueError as e:
        raise JwtValidationError("subject is not a user id") from e
    roles = claims.get("roles", [])
    if not isinstance(roles, list):
        raise JwtValidationError("roles must be a list")
    return Principal(user_id=user_id, roles=frozenset(map(str, roles)), email=claims.get("email"))


# --- Module Notes -----------------------------------------------------------
# LiveKit room tokens use a different claim set and are minted in
# `services.livekit`; this module only covers API access tokens.
