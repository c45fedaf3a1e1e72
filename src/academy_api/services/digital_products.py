"""
academy_api.services.digital_products

Access to purchased digital assets.

Responsibilities:
- Redeem download tokens within their environment (validity, access counting, expiry on limit).
- Produce the right access payload per asset type (redirect or signed stream URL).
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote, urlencode

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND, HTTP_501_NOT_IMPLEMENTED

from academy_api.api.responses import ApiError
from academy_api.db.base import utcnow
from academy_api.db.repositories.commerce import DeliveryRepo
from academy_api.observability.logging import get_logger
from academy_api.settings import Settings

log = get_logger(__name__)


def stream_signature(*, secret: str, path: str, expires: int) -> str:
    return hmac.new(secret.encode(), f"stream:{path}:{expires}".encode(), hashlib.sha256).hexdigest()


def signed_stream_url(*, settings: Settings, path: str, now: datetime) -> str:
    link_expiry = now + timedelta(minutes=settings.media_stream_ttl_minutes)
    # `now` is naive UTC; pin the zone before taking the epoch.
    expires = int(link_expiry.replace(tzinfo=UTC).timestamp())
    signature = stream_signature(secret=settings.media_stream_secret, path=path, expires=expires)
    query = urlencode({"signature": signature, "expires": expires})
    return f"{settings.media_url.rstrip('/')}/api/stream/{quote(path)}?{query}"


class DigitalProductService:
    def __init__(self, *, session: AsyncSession, settings: Settings) -> None:
        self._session = session
        self._settings = settings
        self._deliveries = DeliveryRepo(session)

    async def redeem(
        self,
        token: str,
        *,
        environment_id: uuid.UUID,
        ip_address: str | None,
        user_agent: str | None,
    ) -> dict[str, Any]:
        delivery = await self._deliveries.by_token(token, environment_id=environment_id)
        if delivery is None:
            raise ApiError(HTTP_404_NOT_FOUND, "Invalid or expired token")

        now = utcnow()
        if not delivery.is_valid(now):
            raise ApiError(HTTP_403_FORBIDDEN, "Access limit reached or expired")

        asset = delivery.product_asset
        if asset.asset_type not in ("external_link", "file"):
            raise ApiError(HTTP_501_NOT_IMPLEMENTED, "Asset type not supported for online access")
        if asset.asset_type == "file" and not asset.file_path:
            raise ApiError(HTTP_404_NOT_FOUND, "File path not found")

        delivery.record_access(now=now, ip_address=ip_address, user_agent=user_agent)
        await self._session.commit()
        log.info(
            "digital_asset_accessed",
            delivery_id=str(delivery.id),
            access_count=delivery.access_count,
        )

        payload: dict[str, Any] = {
            "asset_type": asset.asset_type,
            "title": asset.name,
            "access_count": delivery.access_count,
            "max_access_count": delivery.max_access_count,
            "expires_at": delivery.expires_at,
        }
        if asset.asset_type == "external_link":
            payload["redirect_url"] = asset.external_url
        else:
            payload["secure_url"] = signed_stream_url(settings=self._settings, path=asset.file_path, now=now)
        return payload
