"""
academy_api.clients.certificate_service

HTTP client for the external certificate rendering service.

Responsibilities:
- Log in with service credentials and keep the bearer token for subsequent calls.
- Render a certificate from a named template (`/api/certificates/generate`).
- Verify a certificate by access code (`/api/certificates/verify`).
"""

from __future__ import annotations

from typing import Any

import httpx

from academy_api.observability.logging import get_logger
from academy_api.settings import Settings

log = get_logger(__name__)


class CertificateServiceError(Exception):
    pass


class CertificateServiceClient:
    """
    Token-authenticated client. A 401 on any call triggers one re-login and a
    single retry of that call; nothing else is retried.
    """

    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._base_url = settings.certificate_service_url.rstrip("/")
        self._token: str | None = None

    async def login(self) -> str:
        r = await self._http.post(
            f"{self._base_url}/api/login",
            json={
                "email": self._settings.certificate_service_email,
                "password": self._settings.certificate_service_password,
            },
            timeout=self._settings.certificate_service_timeout_seconds,
        )
        r.raise_for_status()
        token = (r.json().get("data") or {}).get("access_token")
        if not token:
            raise CertificateServiceError("Login response carried no access token")
        self._token = token
        log.info("certificate_service_login")
        return token

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        if self._token is None:
            await self.login()
        r = await self._send(path, payload)
        if r.status_code == httpx.codes.UNAUTHORIZED:
            log.info("certificate_service_token_expired")
            await self.login()
            r = await self._send(path, payload)
        return r

    async def _send(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        return await self._http.post(
            f"{self._base_url}{path}",
            json=payload,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._settings.certificate_service_timeout_seconds,
        )

    async def generate(self, *, template_name: str, data: dict[str, Any]) -> dict[str, Any]:
        r = await self._post("/api/certificates/generate", {"template_name": template_name, "data": data})
        r.raise_for_status()
        body = r.json()
        result = body.get("data") or {}
        if not result.get("certificate_url"):
            raise CertificateServiceError("Certificate URL missing from response")
        return result

    async def verify(self, *, access_code: str) -> dict[str, Any]:
        r = await self._post("/api/certificates/verify", {"accessCode": access_code})
        r.raise_for_status()
        return r.json()


# --- Module Notes -----------------------------------------------------------
# A fresh client is built per request, so the token lives for one request. The
# service issues long-lived tokens; caching across requests is not needed yet.
