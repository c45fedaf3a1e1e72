"""
tests.test_commerce

Orders, fulfilment and digital product access.
"""

from __future__ import annotations

import uuid
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy import select

from academy_api.db.models import AssetDelivery, Product, ProductAsset, ProductCourse
from academy_api.services.digital_products import stream_signature
from academy_api.settings import Settings
from tests.support import create_environment, in_env, login, published_course


async def _catalog(app: FastAPI, env_id: str, course_id: str) -> dict[str, str]:
    async with app.state.sessionmaker() as session:
        bundle = Product(
            environment_id=uuid.UUID(env_id),
            name="Course bundle",
            price=100.0,
            discount_price=80.0,
            requires_fulfillment=True,
        )
        workbook = Product(environment_id=uuid.UUID(env_id), name="Workbook", price=50.0)
        retired = Product(environment_id=uuid.UUID(env_id), name="Old", price=10.0, is_active=False)
        session.add_all([bundle, workbook, retired])
        await session.flush()
        session.add(ProductCourse(product_id=bundle.id, course_id=uuid.UUID(course_id)))
        session.add_all(
            [
                ProductAsset(
                    product_id=bundle.id,
                    name="Slides",
                    asset_type="file",
                    file_path="bundles/slides.pdf",
                    display_order=0,
                ),
                ProductAsset(
                    product_id=bundle.id,
                    name="Community",
                    asset_type="external_link",
                    external_url="https://community.example.com/join",
                    display_order=1,
                ),
                ProductAsset(
                    product_id=bundle.id,
                    name="Hidden",
                    asset_type="file",
                    file_path="bundles/hidden.zip",
                    is_active=False,
                ),
            ]
        )
        await session.commit()
        return {"bundle": str(bundle.id), "workbook": str(workbook.id), "retired": str(retired.id)}


async def _setup(client: httpx.AsyncClient, app: FastAPI) -> dict:
    owner = await login(client, "owner@example.com", role="instructor")
    env_id = await create_environment(client, owner)
    course = await published_course(client, owner, env_id)
    buyer = await login(client, "buyer@example.com")
    products = await _catalog(app, env_id, course["id"])
    return {"owner": owner, "env_id": env_id, "course": course, "buyer": buyer, "products": products}


def _order_payload(*lines: tuple[str, int]) -> dict:
    return {
        "products": [{"id": pid, "quantity": qty} for pid, qty in lines],
        "billing_name": "Buyer One",
        "billing_email": "buyer@example.com",
        "billing_country": "US",
        "payment_method": "card",
    }


@pytest.mark.asyncio
async def test_order_totals_apply_discounts(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _setup(client, app)
    products = ctx["products"]
    headers = in_env(ctx["buyer"], ctx["env_id"])

    r = await client.post(
        "/orders",
        json=_order_payload((products["bundle"], 2), (products["workbook"], 1), (products["retired"], 1)),
        headers=headers,
    )
    assert r.status_code == 201, r.text
    order = r.json()["data"]
    assert order["status"] == "pending"
    assert order["order_number"].startswith("ORD-")
    assert order["total_amount"] == 210.0
    lines = {i["product_id"]: i for i in order["items"]}
    assert products["retired"] not in lines
    assert lines[products["bundle"]]["price"] == 100.0
    assert lines[products["bundle"]]["discount"] == 20.0
    assert lines[products["bundle"]]["total"] == 160.0

    r = await client.post("/orders", json=_order_payload((products["retired"], 1)), headers=headers)
    assert r.status_code == 400
    assert r.json()["message"] == "No valid products found for this order"

    r = await client.post(
        "/orders",
        json={**_order_payload((products["workbook"], 1)), "billing_email": "not-an-email"},
        headers=headers,
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_order_visibility_and_listing(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _setup(client, app)
    stranger = await login(client, "stranger@example.com")
    r = await client.post(
        "/orders",
        json=_order_payload((ctx["products"]["workbook"], 3)),
        headers=in_env(ctx["buyer"], ctx["env_id"]),
    )
    order = r.json()["data"]

    r = await client.get(f"/orders/{order['id']}", headers=in_env(stranger, ctx["env_id"]))
    assert r.status_code == 403
    r = await client.get(f"/orders/{order['id']}", headers=in_env(ctx["owner"], ctx["env_id"]))
    assert r.status_code == 200

    r = await client.get("/orders", headers=in_env(ctx["buyer"], ctx["env_id"]))
    assert r.status_code == 403

    r = await client.get(
        "/orders",
        params={"min_amount": 100, "status": "pending"},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    page = r.json()["data"]
    assert page["total"] == 1
    assert page["items"][0]["id"] == order["id"]

    r = await client.get("/orders", params={"min_amount": 500}, headers=in_env(ctx["owner"], ctx["env_id"]))
    assert r.json()["data"]["total"] == 0

    r = await client.get("/my-orders", headers=ctx["buyer"]["headers"])
    assert [o["id"] for o in r.json()["data"]] == [order["id"]]


@pytest.mark.asyncio
async def test_completing_an_order_fulfils_it_once(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _setup(client, app)
    buyer_env = in_env(ctx["buyer"], ctx["env_id"])
    r = await client.post("/orders", json=_order_payload((ctx["products"]["bundle"], 1)), headers=buyer_env)
    order_id = r.json()["data"]["id"]

    r = await client.put(
        f"/orders/{order_id}/status",
        json={"status": "completed", "payment_id": "pay_123"},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    assert r.status_code == 200, r.text
    assert r.json()["data"]["status"] == "completed"
    assert r.json()["data"]["payment_id"] == "pay_123"

    r = await client.get("/my-enrollments", headers=ctx["buyer"]["headers"])
    assert [e["course_id"] for e in r.json()["data"]] == [ctx["course"]["id"]]

    r = await client.get("/digital-products", headers=ctx["buyer"]["headers"])
    deliveries = r.json()["data"]
    assert sorted(d["asset"]["name"] for d in deliveries) == ["Community", "Slides"]
    assert all(d["is_valid"] and d["max_access_count"] is None for d in deliveries)

    # Re-completing does not duplicate enrollments or deliveries.
    await client.put(
        f"/orders/{order_id}/status",
        json={"status": "completed"},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    r = await client.get("/digital-products", headers=ctx["buyer"]["headers"])
    assert len(r.json()["data"]) == 2
    r = await client.get("/my-enrollments", headers=ctx["buyer"]["headers"])
    assert len(r.json()["data"]) == 1


@pytest.mark.asyncio
async def test_digital_asset_access(client: httpx.AsyncClient, app: FastAPI, settings: Settings) -> None:
    ctx = await _setup(client, app)
    r = await client.post(
        "/orders",
        json=_order_payload((ctx["products"]["bundle"], 1)),
        headers=in_env(ctx["buyer"], ctx["env_id"]),
    )
    await client.put(
        f"/orders/{r.json()['data']['id']}/status",
        json={"status": "completed"},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    r = await client.get("/digital-products", headers=ctx["buyer"]["headers"])
    tokens = {d["asset"]["name"]: d["download_token"] for d in r.json()["data"]}
    tenant = {"X-Environment-ID": ctx["env_id"]}

    r = await client.get(f"/digital-products/access/{tokens['Community']}", headers=tenant)
    assert r.status_code == 200
    assert r.json()["data"] == {
        "asset_type": "external_link",
        "title": "Community",
        "access_count": 1,
        "max_access_count": None,
        "expires_at": None,
        "redirect_url": "https://community.example.com/join",
    }

    r = await client.get(
        f"/digital-products/access/{tokens['Slides']}",
        headers={**tenant, "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["asset_type"] == "file"
    assert data["title"] == "Slides"
    assert data["access_count"] == 1
    url = urlparse(data["secure_url"])
    assert f"{url.scheme}://{url.netloc}" == "https://media.test"
    assert url.path == "/api/stream/bundles/slides.pdf"
    query = parse_qs(url.query)
    expires = int(query["expires"][0])
    assert query["signature"][0] == stream_signature(
        secret=settings.media_stream_secret, path="bundles/slides.pdf", expires=expires
    )

    async with app.state.sessionmaker() as session:
        delivery = (
            await session.execute(select(AssetDelivery).where(AssetDelivery.download_token == tokens["Slides"]))
        ).scalar_one()
        assert delivery.access_count == 1
        assert delivery.ip_address == "203.0.113.7"
        assert delivery.user_agent == "pytest"
        delivery.max_access_count = 2
        await session.commit()

    r = await client.get(f"/digital-products/access/{tokens['Slides']}", headers=tenant)
    assert r.status_code == 200
    assert r.json()["data"]["max_access_count"] == 2
    r = await client.get(f"/digital-products/access/{tokens['Slides']}", headers=tenant)
    assert r.status_code == 403
    assert r.json()["message"] == "Access limit reached or expired"

    r = await client.get("/digital-products", params={"status": "expired"}, headers=ctx["buyer"]["headers"])
    assert [d["asset"]["name"] for d in r.json()["data"]] == ["Slides"]

    r = await client.get("/digital-products/access/does-not-exist", headers=tenant)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_digital_access_is_scoped_to_the_environment(client: httpx.AsyncClient, app: FastAPI) -> None:
    ctx = await _setup(client, app)
    r = await client.post(
        "/orders",
        json=_order_payload((ctx["products"]["bundle"], 1)),
        headers=in_env(ctx["buyer"], ctx["env_id"]),
    )
    await client.put(
        f"/orders/{r.json()['data']['id']}/status",
        json={"status": "completed"},
        headers=in_env(ctx["owner"], ctx["env_id"]),
    )
    r = await client.get("/digital-products", headers=ctx["buyer"]["headers"])
    tokens = {d["asset"]["name"]: d["download_token"] for d in r.json()["data"]}
    other_env = await create_environment(client, ctx["owner"], name="Elsewhere")

    r = await client.get(f"/digital-products/access/{tokens['Slides']}")
    assert r.status_code == 400
    r = await client.get(f"/digital-products/access/{tokens['Slides']}", headers={"X-Environment-ID": other_env})
    assert r.status_code == 404
    assert r.json()["message"] == "Invalid or expired token"

    async with app.state.sessionmaker() as session:
        asset = (await session.execute(select(ProductAsset).where(ProductAsset.name == "Slides"))).scalar_one()
        asset.file_path = None
        await session.commit()

    r = await client.get(
        f"/digital-products/access/{tokens['Slides']}", headers={"X-Environment-ID": ctx["env_id"]}
    )
    assert r.status_code == 404
    assert r.json()["message"] == "File path not found"

    async with app.state.sessionmaker() as session:
        delivery = (
            await session.execute(select(AssetDelivery).where(AssetDelivery.download_token == tokens["Slides"]))
        ).scalar_one()
        assert delivery.access_count == 0
