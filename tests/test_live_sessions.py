"""
tests.test_live_sessions

Live session scheduling, quota enforcement, LiveKit tokens and webhooks.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pytest
from fastapi import FastAPI
from sqlalchemy import select

from academy_api.db.base import utcnow
from academy_api.db.models import EnvironmentLiveSettings, LiveSession, room_name_for
from tests.support import create_environment, in_env, login


def _at(delta: timedelta) -> str:
    return (datetime.now(tz=UTC) + delta).isoformat()


def _sign(body: bytes, secret: str = "lk-secret") -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def test_room_names_are_unique_per_environment() -> None:
    env_id = uuid.uuid4()
    first, second = room_name_for(env_id), room_name_for(env_id)
    assert first.startswith(f"env_{env_id}_session_")
    assert first != second


async def _enabled_environment(client: httpx.AsyncClient, **limits: int) -> dict:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    r = await client.put(
        "/live-settings",
        json={"live_sessions_enabled": True, **limits},
        headers=in_env(owner, env_id),
    )
    assert r.status_code == 200, r.text
    return {"owner": owner, "env_id": env_id}


async def _schedule(client: httpx.AsyncClient, actor: dict, env_id: str, *, starts_in: timedelta) -> dict:
    r = await client.post(
        "/live-sessions",
        json={"title": "Office hours", "scheduled_at": _at(starts_in)},
        headers=in_env(actor, env_id),
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_live_settings_and_disabled_environment(client: httpx.AsyncClient) -> None:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    headers = in_env(owner, env_id)

    r = await client.post(
        "/live-sessions",
        json={"title": "Too early", "scheduled_at": _at(timedelta(hours=1))},
        headers=headers,
    )
    assert r.status_code == 403

    r = await client.get("/live-settings", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["live_sessions_enabled"] is False
    assert data["remaining_minutes"] is None
    assert data["billing_cycle_resets_at"] is not None

    student = await login(client, "student@example.com")
    r = await client.put("/live-settings", json={"live_sessions_enabled": True}, headers=in_env(student, env_id))
    assert r.status_code == 403

    r = await client.put(
        "/live-settings",
        json={"live_sessions_enabled": True, "monthly_minutes_limit": 600},
        headers=headers,
    )
    data = r.json()["data"]
    assert data["live_sessions_enabled"] is True
    assert data["remaining_minutes"] == 600


@pytest.mark.asyncio
async def test_schedule_validation_and_permissions(client: httpx.AsyncClient) -> None:
    ctx = await _enabled_environment(client)
    headers = in_env(ctx["owner"], ctx["env_id"])

    r = await client.post(
        "/live-sessions",
        json={"title": "Yesterday", "scheduled_at": _at(-timedelta(days=1))},
        headers=headers,
    )
    assert r.status_code == 422
    assert "scheduled_at" in r.json()["errors"]

    student = await login(client, "student@example.com")
    r = await client.post(
        "/live-sessions",
        json={"title": "Mine", "scheduled_at": _at(timedelta(hours=1))},
        headers=in_env(student, ctx["env_id"]),
    )
    assert r.status_code == 403

    live = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(hours=1))
    assert live["status"] == "scheduled"
    assert live["room_name"].startswith(f"env_{ctx['env_id']}_session_")
    assert live["max_participants"] == 100

    r = await client.get(f"/live-sessions/{live['id']}", headers=headers)
    participants = r.json()["data"]["participants"]
    assert [(p["user_id"], p["role"]) for p in participants] == [(ctx["owner"]["user_id"], "host")]

    r = await client.put(f"/live-sessions/{live['id']}", json={"title": "Renamed"}, headers=in_env(student, ctx["env_id"]))
    assert r.status_code == 403
    r = await client.put(f"/live-sessions/{live['id']}", json={"title": "Renamed"}, headers=headers)
    assert r.json()["data"]["title"] == "Renamed"

    r = await client.put(
        f"/live-sessions/{live['id']}",
        json={"title": None, "scheduled_at": None, "max_participants": None},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["title"] == "Renamed"
    assert r.json()["data"]["scheduled_at"] == live["scheduled_at"]
    assert r.json()["data"]["max_participants"] == 100

    r = await client.delete(f"/live-sessions/{live['id']}", headers=headers)
    assert r.json()["message"] == "Live session cancelled."
    r = await client.get(f"/live-sessions/{live['id']}", headers=headers)
    assert r.json()["data"]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_join_window_and_token_claims(client: httpx.AsyncClient) -> None:
    ctx = await _enabled_environment(client)
    student = await login(client, "student@example.com", name="Student One")

    later = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(hours=2))
    r = await client.post(f"/live-sessions/{later['id']}/token", headers=in_env(student, ctx["env_id"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Session has not started yet."
    assert r.json()["data"]["scheduled_at"]

    soon = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(minutes=10))
    r = await client.post(f"/live-sessions/{soon['id']}/token", headers=in_env(student, ctx["env_id"]))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["role"] == "viewer"
    assert data["can_publish"] is False
    assert data["room_name"] == soon["room_name"]

    claims = jwt.decode(data["token"], "lk-secret", algorithms=["HS256"])
    assert claims["iss"] == "lk-key"
    assert claims["sub"] == f"user_{student['user_id']}"
    assert claims["name"] == "Student One"
    assert claims["video"] == {
        "roomJoin": True,
        "room": soon["room_name"],
        "canPublish": False,
        "canSubscribe": True,
        "canPublishData": False,
    }

    r = await client.post(f"/live-sessions/{soon['id']}/token", headers=in_env(ctx["owner"], ctx["env_id"]))
    assert r.json()["data"]["role"] == "host"
    assert r.json()["data"]["can_publish"] is True


@pytest.mark.asyncio
async def test_start_end_tracks_usage_and_concurrency(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _enabled_environment(client, max_concurrent_sessions=1)
    headers = in_env(ctx["owner"], ctx["env_id"])
    first = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(minutes=5))
    second = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(minutes=5))

    r = await client.post(f"/live-sessions/{first['id']}/start", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "live"

    r = await client.post(f"/live-sessions/{second['id']}/start", headers=headers)
    assert r.status_code == 403

    r = await client.delete(f"/live-sessions/{first['id']}", headers=headers)
    assert r.status_code == 422

    async with app.state.sessionmaker() as session:
        live = await session.get(LiveSession, uuid.UUID(first["id"]))
        live.started_at = utcnow() - timedelta(minutes=45)
        await session.commit()

    r = await client.post(f"/live-sessions/{first['id']}/end", headers=headers)
    assert r.status_code == 200
    ended = r.json()["data"]
    assert ended["status"] == "ended"
    assert ended["duration_minutes"] == 45

    r = await client.post(f"/live-sessions/{first['id']}/end", headers=headers)
    assert r.status_code == 422

    r = await client.get("/live-settings", headers=headers)
    assert r.json()["data"]["monthly_minutes_used"] == 45

    r = await client.get("/live-sessions/stats", headers=headers)
    assert r.json()["data"] == {"upcoming": 1, "live_now": 0, "completed": 1, "total_participants": 1}

    r = await client.get("/live-sessions", params={"status": "ended"}, headers=headers)
    page = r.json()["data"]
    assert page["total"] == 1
    assert page["per_page"] == 15


@pytest.mark.asyncio
async def test_elapsed_billing_cycle_resets_usage_before_start(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _enabled_environment(client, monthly_minutes_limit=10)
    headers = in_env(ctx["owner"], ctx["env_id"])
    live = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(minutes=5))

    async with app.state.sessionmaker() as session:
        live_settings = (
            await session.execute(
                select(EnvironmentLiveSettings).where(
                    EnvironmentLiveSettings.environment_id == uuid.UUID(ctx["env_id"])
                )
            )
        ).scalar_one()
        live_settings.monthly_minutes_used = 10
        live_settings.billing_cycle_resets_at = utcnow() - timedelta(days=1)
        await session.commit()

    r = await client.post(f"/live-sessions/{live['id']}/start", headers=headers)
    assert r.status_code == 200, r.text

    r = await client.get("/live-settings", headers=headers)
    data = r.json()["data"]
    assert data["monthly_minutes_used"] == 0
    assert data["remaining_minutes"] == 10
    assert datetime.fromisoformat(data["billing_cycle_resets_at"]) > utcnow()


@pytest.mark.asyncio
async def test_livekit_webhook_signature_and_participants(client: httpx.AsyncClient) -> None:
    ctx = await _enabled_environment(client)
    headers = in_env(ctx["owner"], ctx["env_id"])
    student = await login(client, "student@example.com")
    live = await _schedule(client, ctx["owner"], ctx["env_id"], starts_in=timedelta(minutes=5))

    body = json.dumps({"event": "room_started", "room": {"name": live["room_name"]}}).encode()
    r = await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": "forged"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid webhook signature"

    r = await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": _sign(body)})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}

    body = json.dumps(
        {
            "event": "participant_joined",
            "room": {"name": live["room_name"]},
            "participant": {"identity": f"user_{student['user_id']}"},
        }
    ).encode()
    r = await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": _sign(body)})
    assert r.status_code == 200

    r = await client.get(f"/live-sessions/{live['id']}", headers=headers)
    data = r.json()["data"]
    assert data["status"] == "live"
    joined = {p["user_id"]: p for p in data["participants"]}
    assert joined[student["user_id"]]["role"] == "viewer"
    assert joined[student["user_id"]]["joined_at"] is not None

    body = json.dumps({"event": "room_finished", "room": {"name": live["room_name"]}}).encode()
    await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": _sign(body)})
    r = await client.get(f"/live-sessions/{live['id']}", headers=headers)
    data = r.json()["data"]
    assert data["status"] == "ended"
    assert all(p["left_at"] is not None for p in data["participants"] if p["joined_at"] is not None)

    body = json.dumps({"event": "room_started", "room": {"name": "unknown-room"}}).encode()
    r = await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": _sign(body)})
    assert r.status_code == 200

    body = json.dumps({"event": "room_started", "room": "not-an-object"}).encode()
    r = await client.post("/api/webhooks/livekit", content=body, headers={"Authorization": _sign(body)})
    assert r.status_code == 200
