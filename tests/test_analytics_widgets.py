"""
tests.test_analytics_widgets

Visit tracking and the owner dashboard widgets.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy import select

from academy_api.db.base import utcnow
from academy_api.db.models import AcademyVisitor, EnrollmentAnalytics, Invoice, InvoiceStatus, Transaction
from academy_api.services.analytics import client_ip, hash_ip, is_public_ip
from tests.support import Upstream, create_environment, in_env, login, published_course


def _geo(country: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "ip": "8.8.8.8",
            "location": {"country_code2": country, "country_name": "United States", "city": "Mountain View"},
            "network": {"company": {"name": "Google LLC"}},
        },
    )


def test_client_ip_prefers_proxy_headers() -> None:
    assert client_ip({"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "2.2.2.2"}, "3.3.3.3") == "1.1.1.1"
    assert client_ip({"x-forwarded-for": "2.2.2.2, 10.0.0.1"}, "3.3.3.3") == "2.2.2.2"
    assert client_ip({"x-real-ip": "4.4.4.4"}, "3.3.3.3") == "4.4.4.4"
    assert client_ip({}, "3.3.3.3") == "3.3.3.3"


def test_ip_helpers() -> None:
    assert hash_ip("key", None) is None
    assert hash_ip("key", "8.8.8.8") == hash_ip("key", "8.8.8.8")
    assert hash_ip("key", "8.8.8.8") != hash_ip("other", "8.8.8.8")
    assert is_public_ip("8.8.8.8")
    assert not is_public_ip("10.0.0.5")
    assert not is_public_ip("127.0.0.1")
    assert not is_public_ip("garbage")


@pytest.mark.asyncio
async def test_track_visit_throttles_and_enriches(
    app: FastAPI, client: httpx.AsyncClient, upstream: Upstream
) -> None:
    upstream.on("GET", "/ipgeo", lambda req: _geo("US"))
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    env_header = {"X-Environment-ID": env_id}

    r = await client.post("/analytics/track-visit", json={"visit_hash": "abc"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "No environment selected"}

    visit = {"visit_hash": "abc", "path": "/courses", "referrer": "https://search.example"}
    r = await client.post(
        "/analytics/track-visit",
        json=visit,
        headers={**env_header, "X-Forwarded-For": "8.8.8.8, 10.0.0.1", "User-Agent": "pytest-browser"},
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "data": {"counted": True, "visits_count": 1, "country_code": "US"}}

    (lookup,) = upstream.calls("/ipgeo")
    assert lookup.url.params["ip"] == "8.8.8.8"
    assert lookup.url.params["apiKey"] == "geo-key"

    r = await client.post("/analytics/track-visit", json=visit, headers={**env_header, "X-Forwarded-For": "8.8.8.8"})
    assert r.json()["data"] == {"counted": False, "visits_count": 1, "country_code": "US"}
    assert len(upstream.calls("/ipgeo")) == 1

    async with app.state.sessionmaker() as session:
        visitor = (
            await session.execute(select(AcademyVisitor).where(AcademyVisitor.visit_hash == "abc"))
        ).scalar_one()
        assert visitor.ip_hash == hash_ip(app.state.settings.app_key, "8.8.8.8")
        assert visitor.city == "Mountain View"
        assert visitor.isp == "Google LLC"
        assert visitor.user_agent is not None

    r = await client.post(
        "/analytics/track-visit",
        json={"visit_hash": "lan"},
        headers={**env_header, "X-Forwarded-For": "10.0.0.5"},
    )
    assert r.json()["data"]["country_code"] is None
    assert len(upstream.calls("/ipgeo")) == 1


@pytest.mark.asyncio
async def test_geo_rate_limit_is_silent(client: httpx.AsyncClient, upstream: Upstream) -> None:
    upstream.on("GET", "/ipgeo", lambda req: httpx.Response(429, json={"message": "slow down"}))
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)

    r = await client.post(
        "/analytics/track-visit",
        json={"visit_hash": "xyz"},
        headers={"X-Environment-ID": env_id, "X-Forwarded-For": "1.1.1.1"},
    )
    assert r.status_code == 200
    assert r.json()["data"] == {"counted": True, "visits_count": 1, "country_code": None}


@pytest.mark.asyncio
async def test_geo_failures_never_fail_the_visit(client: httpx.AsyncClient, upstream: Upstream) -> None:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    answers = iter(
        [
            httpx.Response(503, json={"message": "maintenance"}),
            httpx.Response(200, content=b"<html>not json</html>"),
            httpx.Response(200, json=["unexpected", "shape"]),
            httpx.Response(200, json={"location": "nowhere", "network": {"company": "n/a"}}),
        ]
    )
    upstream.on("GET", "/ipgeo", lambda req: next(answers))

    for visit_hash in ("v1", "v2", "v3", "v4"):
        r = await client.post(
            "/analytics/track-visit",
            json={"visit_hash": visit_hash},
            headers={"X-Environment-ID": env_id, "X-Forwarded-For": "1.1.1.1"},
        )
        assert r.status_code == 200, r.text
        assert r.json()["data"] == {"counted": True, "visits_count": 1, "country_code": None}
    assert len(upstream.calls("/ipgeo")) == 4


@pytest.mark.asyncio
async def test_widget_access(client: httpx.AsyncClient) -> None:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    other = await login(client, "other@example.com", role="instructor")
    admin = await login(client, "admin@example.com", role="admin")

    r = await client.get("/analytics/financial-widgets", headers=owner["headers"])
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = await client.get("/analytics/traffic-widgets", headers=in_env(other, env_id))
    assert r.status_code == 403
    assert r.json() == {"success": False, "message": "Unauthorized"}

    r = await client.get("/analytics/traffic-widgets", headers=in_env(admin, env_id))
    assert r.status_code == 200

    r = await client.get(
        "/analytics/financial-widgets",
        params={"start_date": "2026-02-10", "end_date": "2026-02-01"},
        headers=in_env(owner, env_id),
    )
    assert r.status_code == 422
    assert r.json()["success"] is False
    assert "end_date" in r.json()["errors"]


@pytest.mark.asyncio
async def test_financial_widgets(app: FastAPI, client: httpx.AsyncClient) -> None:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    env_uuid = uuid.UUID(env_id)
    now = utcnow()

    async with app.state.sessionmaker() as session:
        session.add_all(
            [
                Transaction(
                    transaction_id="TXN-1", environment_id=env_uuid, amount=100, fee_amount=10,
                    total_amount=100, status="completed", created_at=now,
                ),
                Transaction(
                    transaction_id="TXN-2", environment_id=env_uuid, amount=50, fee_amount=5,
                    total_amount=50, status="completed", created_at=now - timedelta(days=60),
                ),
                Transaction(
                    transaction_id="TXN-3", environment_id=env_uuid, amount=30, fee_amount=3,
                    total_amount=30, status="pending", created_at=now,
                ),
                Invoice(
                    environment_id=env_uuid, invoice_number="INV-1",
                    status=InvoiceStatus.sent, total_fee_amount=12.5,
                ),
                Invoice(
                    environment_id=env_uuid, invoice_number="INV-2",
                    status=InvoiceStatus.paid, total_fee_amount=99,
                ),
            ]
        )
        await session.commit()

    headers = in_env(owner, env_id)
    r = await client.get("/analytics/financial-widgets", headers=headers)
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["net_earnings"] == 90.0
    assert data["platform_commission"] == 10.0
    assert data["unpaid_invoices"] == {"count": 1, "total": 12.5}
    assert data["currency"] == "USD"
    assert data["end_date"] == now.date().isoformat()
    assert data["start_date"] == (now.date() - timedelta(days=30)).isoformat()

    r = await client.get(
        "/analytics/financial-widgets",
        params={"start_date": (now.date() - timedelta(days=90)).isoformat()},
        headers=headers,
    )
    assert r.json()["data"]["net_earnings"] == 135.0
    assert r.json()["data"]["platform_commission"] == 15.0


@pytest.mark.asyncio
async def test_traffic_widgets(app: FastAPI, client: httpx.AsyncClient, upstream: Upstream) -> None:
    upstream.on("GET", "/ipgeo", lambda req: _geo("US"))
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    course = await published_course(client, owner, env_id)
    student = await login(client, "student@example.com")
    r = await client.post("/enrollments", json={"course_id": course["id"]}, headers=student["headers"])
    enrollment_id = uuid.UUID(r.json()["data"]["id"])

    async with app.state.sessionmaker() as session:
        session.add_all(
            [
                EnrollmentAnalytics(enrollment_id=enrollment_id, session_duration=300),
                EnrollmentAnalytics(enrollment_id=enrollment_id, session_duration=1800),
            ]
        )
        await session.commit()

    for visit_hash, ip in (("a", "8.8.8.8"), ("b", "10.0.0.1"), ("c", "192.168.1.4")):
        r = await client.post(
            "/analytics/track-visit",
            json={"visit_hash": visit_hash},
            headers={"X-Environment-ID": env_id, "X-Forwarded-For": ip},
        )
        assert r.status_code == 200

    r = await client.get("/analytics/traffic-widgets", headers=in_env(owner, env_id))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["total_visits"] == 3
    assert data["unique_visitors"] == 3
    assert data["visits_per_country"] == [
        {"country_code": "UN", "visits": 2},
        {"country_code": "US", "visits": 1},
    ]
    assert data["max_time_spent_seconds"] == 1800
