"""
academy_api.db.models.cache

Database-backed cache keys used as short-lived mutual-exclusion flags.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from academy_api.db.base import Base, utcnow


class CacheLock(Base):
    __tablename__ = "cache_locks"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
