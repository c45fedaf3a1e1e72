"""
academy_api.clients.geoip

Client for the ipgeolocation.io lookup API.
"""

from __future__ import annotations

from typing import Any

import httpx

from academy_api.settings import Settings


class GeoIpRateLimited(Exception):
    pass


class GeoIpClient:
    def __init__(self, *, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http

    @property
    def enabled(self) -> bool:
        return bool(self._settings.ipgeolocation_api_key)

    async def lookup(self, ip: str) -> dict[str, Any]:
        r = await self._http.get(
            self._settings.ipgeolocation_url,
            params={
                "apiKey": self._settings.ipgeolocation_api_key,
                "ip": ip,
                "fields": "location,network.company.name",
            },
            timeout=self._settings.ipgeolocation_timeout_seconds,
        )
        if r.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise GeoIpRateLimited(ip)
        r.raise_for_status()
        return r.json()
