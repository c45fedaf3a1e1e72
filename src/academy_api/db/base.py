"""
academy_api.db.base

SQLAlchemy declarative base and shared column helpers.

Responsibilities:
- Provide a shared DeclarativeBase for all ORM models.
- Provide the naive-UTC clock used for timestamp defaults.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    # Persist naive UTC timestamps; SQLite has no timezone-aware type.
    return datetime.now(tz=UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass
