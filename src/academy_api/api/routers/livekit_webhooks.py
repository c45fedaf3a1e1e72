"""
academy_api.api.routers.livekit_webhooks

Inbound LiveKit room and participant events.

Responsibilities:
- Verify the webhook signature against the LiveKit API secret.
- Hand well-formed events to the live session service; ignore anything else.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_401_UNAUTHORIZED

from academy_api.api.deps import db_session, settings_dep
from academy_api.api.responses import ApiError
from academy_api.observability.logging import get_logger
from academy_api.services.livekit import verify_webhook
from academy_api.services.live_sessions import LiveSessionService
from academy_api.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/livekit")
async def livekit_webhook(
    request: Request,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> dict[str, str]:
    body = await request.body()
    if not verify_webhook(settings=settings, body=body, authorization=request.headers.get("authorization")):
        log.warning("livekit_webhook_rejected")
        raise ApiError(HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError as e:
        raise ApiError(HTTP_400_BAD_REQUEST, "Invalid webhook payload") from e
    if isinstance(event, dict):
        await LiveSessionService(session=session, settings=settings).handle_webhook(event)
    return {"status": "ok"}
