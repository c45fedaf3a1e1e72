"""
academy_api.api.routers.digital_products

Purchased digital assets.

Responsibilities:
- List the caller's asset deliveries with their current validity.
- Redeem a download token, scoped to the `X-Environment-ID` tenant, for a redirect or a signed stream URL.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from academy_api.api.deps import current_environment, db_session, settings_dep
from academy_api.api.responses import success
from academy_api.api.serializers import delivery_out
from academy_api.auth.deps import get_current_user
from academy_api.db.base import utcnow
from academy_api.db.models import DeliveryStatus, Environment, User
from academy_api.db.repositories.commerce import DeliveryRepo
from academy_api.services.analytics import client_ip
from academy_api.services.digital_products import DigitalProductService
from academy_api.settings import Settings

router = APIRouter(prefix="/digital-products", tags=["digital-products"])


@router.get("")
async def list_deliveries(
    status: DeliveryStatus | None = Query(default=None),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    now = utcnow()
    deliveries = await DeliveryRepo(session).list_for_user(user.id, status=status)
    return success([delivery_out(d, now) for d in deliveries])


@router.get("/access/{token}")
async def access_asset(
    token: str,
    request: Request,
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    peer = request.client.host if request.client else None
    payload = await DigitalProductService(session=session, settings=settings).redeem(
        token,
        environment_id=environment.id,
        ip_address=client_ip(request.headers, peer),
        user_agent=request.headers.get("user-agent"),
    )
    return success(payload)
