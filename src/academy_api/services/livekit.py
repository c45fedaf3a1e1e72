"""
academy_api.services.livekit

LiveKit integration helpers.

Responsibilities:
- Map platform users to LiveKit participant identities and back.
- Mint room access tokens (HS256 JWT with a `video` grant).
- Verify webhook signatures sent by the LiveKit server.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import time
import uuid
from typing import Any

import jwt

from academy_api.settings import Settings

_IDENTITY_RE = re.compile(r"^user_(.+)$")


def identity_for(user_id: uuid.UUID) -> str:
    return f"user_{user_id}"


def user_id_from_identity(identity: str | None) -> uuid.UUID | None:
    match = _IDENTITY_RE.match(identity) if isinstance(identity, str) else None
    if match is None:
        return None
    try:
        return uuid.UUID(match.group(1))
    except ValueError:
        return None


def issue_room_token(
    *,
    settings: Settings,
    identity: str,
    name: str,
    room: str,
    can_publish: bool,
) -> str:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": settings.livekit_api_key,
        "sub": identity,
        "name": name,
        "nbf": now,
        "exp": now + settings.livekit_token_ttl_seconds,
        "video": {
            "roomJoin": True,
            "room": room,
            "canPublish": can_publish,
            "canSubscribe": True,
            "canPublishData": can_publish,
        },
    }
    return jwt.encode(claims, settings.livekit_api_secret, algorithm="HS256")


def webhook_signature(*, settings: Settings, body: bytes) -> str:
    digest = hmac.new(settings.livekit_api_secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook(*, settings: Settings, body: bytes, authorization: str | None) -> bool:
    if not authorization:
        return False
    return hmac.compare_digest(webhook_signature(settings=settings, body=body), authorization)


# --- Module Notes -----------------------------------------------------------
# Publishing data channels is granted together with media publishing; viewers
# subscribe only.
