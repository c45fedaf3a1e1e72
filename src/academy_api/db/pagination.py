"""
academy_api.db.pagination

Offset pagination over SQLAlchemy select statements.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    def to_dict(self, items: list[Any]) -> dict[str, Any]:
        # `items` is the rendered form of `self.items` (schemas or dicts).
        return {
            "items": items,
            "current_page": self.page,
            "per_page": self.per_page,
            "total": self.total,
            "last_page": self.last_page,
        }


async def paginate(session: AsyncSession, stmt: Select, *, page: int, per_page: int) -> Page:
    total = (
        await session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
    ).scalar_one()
    rows = (
        await session.execute(stmt.limit(per_page).offset((page - 1) * per_page))
    ).scalars().all()
    return Page(items=list(rows), total=int(total), page=page, per_page=per_page)
