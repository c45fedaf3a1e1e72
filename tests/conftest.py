"""
tests.conftest

Shared fixtures for API tests.

Responsibilities:
- Boot the app against a throwaway SQLite database with explicit lifespan handling.
- Route every outbound HTTP call through a scripted `httpx.MockTransport`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from academy_api.api.app import create_app
from academy_api.settings import Settings
from tests.support import Upstream


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'academy.db'}",
        archive_storage_root=str(tmp_path / "storage"),
        livekit_api_key="lk-key",
        livekit_api_secret="lk-secret",
        ipgeolocation_api_key="geo-key",
        ipgeolocation_url="https://geo.test/ipgeo",
        marketplace_api_url="https://market.test",
        marketplace_internal_secret="internal-secret",
        certificate_service_url="https://certs.test",
        certificate_service_password="svc-password",
        media_url="https://media.test",
    )


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
async def app(settings: Settings, upstream: Upstream) -> AsyncIterator[FastAPI]:
    app = create_app(settings=settings, http_transport=httpx.MockTransport(upstream))
    # httpx ASGITransport does not manage lifespan automatically; do it explicitly.
    await app.router.startup()
    try:
        yield app
    finally:
        await app.router.shutdown()


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
