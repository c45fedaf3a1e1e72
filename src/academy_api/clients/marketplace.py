"""
academy_api.clients.marketplace

Pass-through client for the marketplace service's internal API.

Responsibilities:
- Forward seller-panel calls to `{marketplace_api_url}/api/internal/{path}`.
- Authenticate with the shared internal secret and describe the acting user.
- Hand back the upstream status code and JSON body unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx

from academy_api.db.models import User
from academy_api.settings import Settings

ALLOWED_QUERY_PARAMS = frozenset({"page", "per_page", "status", "is_published", "search", "flat"})
ALLOWED_BODY_FIELDS = frozenset(
    {"name", "description", "price", "is_published", "thumbnail_url", "parent_id"}
)


@dataclass(frozen=True, slots=True)
class UpstreamResponse:
    status_code: int
    body: Any


def remote_user_header(user: User) -> str:
    return json.dumps(
        {
            "id": str(user.id),
            "name": user.name,
            "email": user.email,
            "role": user.role.value,
            "company_name": user.company_name,
        }
    )


class MarketplaceClient:
    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http

    def _headers(self, user: User) -> dict[str, str]:
        return {
            "X-Internal-Secret": self._settings.marketplace_internal_secret,
            "X-Remote-User": remote_user_header(user),
            "Accept": "application/json",
        }

    async def forward(
        self,
        method: str,
        path: str,
        *,
        user: User,
        query: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> UpstreamResponse:
        params = {k: v for k, v in (query or {}).items() if k in ALLOWED_QUERY_PARAMS}
        payload = None
        if body is not None:
            payload = {k: v for k, v in body.items() if k in ALLOWED_BODY_FIELDS}
        r = await self._http.request(
            method,
            f"{self._settings.marketplace_api_url.rstrip('/')}/api/internal/{path.lstrip('/')}",
            params=params,
            json=payload,
            headers=self._headers(user),
            timeout=self._settings.marketplace_timeout_seconds,
        )
        try:
            parsed = r.json()
        except ValueError:
            parsed = {"message": r.text}
        return UpstreamResponse(status_code=r.status_code, body=parsed)


# --- Module Notes -----------------------------------------------------------
# Upstream 4xx/5xx responses are not errors here: the seller panel relays them
# verbatim. Only transport failures surface as exceptions.
