"""
academy_api.auth.models

The identity carried by an academy access token.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: uuid.UUID
    roles: frozenset[str]
    email: str | None = None
