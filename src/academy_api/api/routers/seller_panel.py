"""
academy_api.api.routers.seller_panel

Seller panel endpoints proxied to the marketplace service.

Responsibilities:
- Expose dashboard, order, listing and category routes under `/seller`.
- Relay the upstream status and JSON body verbatim.
- Map transport failures to 503.
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE

from academy_api.api.deps import http_client, settings_dep
from academy_api.api.responses import ApiError
from academy_api.auth.deps import get_current_user
from academy_api.clients.marketplace import MarketplaceClient
from academy_api.db.models import User
from academy_api.observability.logging import get_logger
from academy_api.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/seller", tags=["seller"])


def marketplace_client(
    settings: Settings = Depends(settings_dep),
    http: httpx.AsyncClient = Depends(http_client),
) -> MarketplaceClient:
    return MarketplaceClient(settings=settings, http=http)


async def _relay(
    client: MarketplaceClient,
    method: str,
    path: str,
    *,
    user: User,
    request: Request,
    body: dict[str, Any] | None = None,
) -> JSONResponse:
    try:
        upstream = await client.forward(
            method, path, user=user, query=dict(request.query_params), body=body
        )
    except httpx.TransportError as e:
        log.error("marketplace_unavailable", method=method, path=path, error=str(e))
        raise ApiError(HTTP_503_SERVICE_UNAVAILABLE, "Marketplace service unavailable") from e
    return JSONResponse(status_code=upstream.status_code, content=upstream.body)


@router.get("/dashboard")
async def dashboard(
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "GET", "seller/dashboard", user=user, request=request)


@router.get("/orders")
async def orders(
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "GET", "seller/orders", user=user, request=request)


@router.get("/orders/{order_id}")
async def order_detail(
    order_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "GET", f"seller/orders/{order_id}", user=user, request=request)


@router.get("/listings")
async def listings(
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "GET", "seller/listings", user=user, request=request)


@router.put("/listings/{listing_id}")
async def update_listing(
    listing_id: str,
    request: Request,
    body: dict[str, Any] = Body(default_factory=dict),
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "PUT", f"seller/listings/{listing_id}", user=user, request=request, body=body)


@router.delete("/listings/{listing_id}")
async def delete_listing(
    listing_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "DELETE", f"seller/listings/{listing_id}", user=user, request=request)


@router.get("/categories")
async def categories(
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "GET", "seller/categories", user=user, request=request)


@router.post("/categories")
async def create_category(
    request: Request,
    body: dict[str, Any] = Body(default_factory=dict),
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "POST", "seller/categories", user=user, request=request, body=body)


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    request: Request,
    body: dict[str, Any] = Body(default_factory=dict),
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(
        client, "PUT", f"seller/categories/{category_id}", user=user, request=request, body=body
    )


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    client: MarketplaceClient = Depends(marketplace_client),
) -> JSONResponse:
    return await _relay(client, "DELETE", f"seller/categories/{category_id}", user=user, request=request)
