"""
academy_api.db.repositories.commerce

Repositories for products, orders and digital asset deliveries.

Responsibilities:
- Resolve purchasable products and what they grant (courses, assets).
- Create and filter orders.
- Create and look up asset deliveries by download token.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Select, asc, desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy_api.db.models import (
    AssetDelivery,
    DeliveryStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductCourse,
)

ORDER_SORT_COLUMNS = {
    "order_number": Order.order_number,
    "total_amount": Order.total_amount,
    "status": Order.status,
    "created_at": Order.created_at,
}


class ProductRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def active_by_ids(
        self, environment_id: uuid.UUID, product_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        stmt = select(Product).where(
            Product.environment_id == environment_id,
            Product.id.in_(product_ids),
            Product.is_active.is_(True),
        )
        return {p.id: p for p in (await self._session.execute(stmt)).scalars()}

    async def get_with_assets(self, product_id: uuid.UUID) -> Product | None:
        stmt = select(Product).where(Product.id == product_id).options(selectinload(Product.assets))
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def course_ids(self, product_id: uuid.UUID) -> list[uuid.UUID]:
        stmt = select(ProductCourse.course_id).where(ProductCourse.product_id == product_id)
        return list((await self._session.execute(stmt)).scalars().all())


class OrderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, items: list[OrderItem], **fields: object) -> Order:
        order = Order(status=OrderStatus.pending, items=items, **fields)
        self._session.add(order)
        await self._session.flush()
        return order

    async def get(self, order_id: uuid.UUID) -> Order | None:
        return await self._session.get(Order, order_id)

    def filtered(
        self,
        *,
        environment_id: uuid.UUID,
        search: str | None = None,
        status: OrderStatus | None = None,
        user_id: uuid.UUID | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        sort_by: str = "created_at",
        sort_direction: str = "desc",
    ) -> Select:
        stmt = select(Order).where(Order.environment_id == environment_id)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Order.order_number.ilike(like), Order.billing_email.ilike(like)))
        if status is not None:
            stmt = stmt.where(Order.status == status)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if min_amount is not None:
            stmt = stmt.where(Order.total_amount >= min_amount)
        if max_amount is not None:
            stmt = stmt.where(Order.total_amount <= max_amount)
        if start_date is not None:
            stmt = stmt.where(Order.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(Order.created_at <= end_date)
        column = ORDER_SORT_COLUMNS.get(sort_by, Order.created_at)
        return stmt.order_by(asc(column) if sort_direction == "asc" else desc(column))

    async def list_for_user(self, user_id: uuid.UUID) -> list[Order]:
        stmt = select(Order).where(Order.user_id == user_id).order_by(desc(Order.created_at))
        return list((await self._session.execute(stmt)).scalars().all())


class DeliveryRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, **fields: object) -> AssetDelivery:
        delivery = AssetDelivery(**fields)
        self._session.add(delivery)
        await self._session.flush()
        return delivery

    async def exists(self, *, order_item_id: uuid.UUID, product_asset_id: uuid.UUID) -> bool:
        stmt = select(AssetDelivery.id).where(
            AssetDelivery.order_item_id == order_item_id,
            AssetDelivery.product_asset_id == product_asset_id,
        )
        return (await self._session.execute(stmt)).first() is not None

    async def by_token(self, token: str, *, environment_id: uuid.UUID) -> AssetDelivery | None:
        stmt = select(AssetDelivery).where(
            AssetDelivery.download_token == token, AssetDelivery.environment_id == environment_id
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_for_user(
        self, user_id: uuid.UUID, *, status: DeliveryStatus | None = None
    ) -> list[AssetDelivery]:
        stmt = select(AssetDelivery).where(AssetDelivery.user_id == user_id)
        if status is not None:
            stmt = stmt.where(AssetDelivery.status == status)
        stmt = stmt.order_by(desc(AssetDelivery.access_granted_at))
        return list((await self._session.execute(stmt)).scalars().unique().all())
