"""
tests.test_smoke

Smoke tests to validate the service can boot and serve core endpoints.

Responsibilities:
- Ensure the FastAPI app starts and the DB readiness check works in test mode.
- Check the error envelope for auth and tenancy failures.
"""

from __future__ import annotations

import uuid

import httpx
import pytest

from academy_api import __version__
from academy_api.api.app import create_app
from academy_api.settings import Settings
from tests.support import create_environment, in_env, login


@pytest.mark.asyncio
async def test_health_endpoints(client: httpx.AsyncClient) -> None:
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "version": __version__}

    r = await client.get("/readyz", headers={"x-request-id": "req-1"})
    assert r.status_code == 200
    assert r.json() == {"status": "ready", "checks": {"database": "ok", "archive_storage": "ok"}}
    assert r.headers["x-request-id"] == "req-1"


@pytest.mark.asyncio
async def test_missing_and_invalid_bearer_token(client: httpx.AsyncClient) -> None:
    r = await client.get("/environments")
    assert r.status_code == 401
    assert r.json() == {"status": "error", "message": "Missing bearer token"}

    r = await client.get("/environments", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["message"].startswith("Invalid token")


@pytest.mark.asyncio
async def test_environment_header_is_required(client: httpx.AsyncClient) -> None:
    owner = await login(client, "owner@example.com", role="instructor")

    r = await client.get("/courses", headers=owner["headers"])
    assert r.status_code == 400
    assert r.json()["message"] == "No environment selected"

    r = await client.get("/courses", headers=in_env(owner, str(uuid.uuid4())))
    assert r.status_code == 404
    assert r.json()["message"] == "Environment not found"

    env_id = await create_environment(client, owner)
    r = await client.get("/courses", headers=in_env(owner, env_id))
    assert r.status_code == 200
    assert r.json() == {"status": "success", "data": []}


@pytest.mark.asyncio
async def test_validation_errors_are_grouped_by_field(client: httpx.AsyncClient) -> None:
    owner = await login(client, "owner@example.com")
    r = await client.post("/environments", json={"name": ""}, headers=owner["headers"])
    assert r.status_code == 422
    body = r.json()
    assert body["status"] == "error"
    assert body["message"] == "Validation failed"
    assert "name" in body["errors"]


@pytest.mark.asyncio
async def test_dev_token_route_hidden_in_prod(settings: Settings) -> None:
    app = create_app(settings=settings.model_copy(update={"env": "prod"}))

    await app.router.startup()
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.post(
                "/v1/dev/token", json={"email": "someone@example.com", "name": "Someone"}
            )
            assert r.status_code == 404
    finally:
        await app.router.shutdown()


# --- Module Notes -----------------------------------------------------------
# Feature-level behaviour lives in the per-router test modules.
