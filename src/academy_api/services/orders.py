"""
academy_api.services.orders

Order placement and fulfilment.

Responsibilities:
- Price order lines from active products (discounts applied per unit).
- Create pending orders with human-readable order numbers.
- Fulfil completed orders: course enrollments and digital asset deliveries.
"""

from __future__ import annotations

import secrets
import string
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_400_BAD_REQUEST

from academy_api.api.responses import ApiError
from academy_api.db.base import utcnow
from academy_api.db.models import Order, OrderItem, OrderStatus, User
from academy_api.db.repositories.commerce import DeliveryRepo, OrderRepo, ProductRepo
from academy_api.db.repositories.enrollments import EnrollmentRepo
from academy_api.observability.logging import get_logger

log = get_logger(__name__)

DELIVERABLE_ASSET_TYPES = ("file", "external_link")


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"ORD-{utcnow():%Y%m%d}-{suffix}"


class OrderService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._products = ProductRepo(session)
        self._orders = OrderRepo(session)
        self._deliveries = DeliveryRepo(session)
        self._enrollments = EnrollmentRepo(session)

    async def place(
        self,
        *,
        environment_id: uuid.UUID,
        buyer: User,
        lines: list[tuple[uuid.UUID, int]],
        billing: dict[str, Any],
    ) -> Order:
        products = await self._products.active_by_ids(environment_id, [pid for pid, _ in lines])

        items: list[OrderItem] = []
        currency: str | None = None
        total = 0.0
        for product_id, quantity in lines:
            product = products.get(product_id)
            if product is None:
                continue
            currency = currency or product.currency
            effective = float(product.effective_price)
            line_total = round(effective * quantity, 2)
            items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    price=float(product.price),
                    discount=round(float(product.price) - effective, 2),
                    total=line_total,
                )
            )
            total += line_total

        if not items:
            raise ApiError(HTTP_400_BAD_REQUEST, "No valid products found for this order")

        order = await self._orders.create(
            items=items,
            order_number=generate_order_number(),
            user_id=buyer.id,
            environment_id=environment_id,
            total_amount=round(total, 2),
            currency=currency or "USD",
            **billing,
        )
        await self._session.commit()
        log.info("order_placed", order_id=str(order.id), order_number=order.order_number)
        return order

    async def set_status(
        self,
        order: Order,
        *,
        status: OrderStatus,
        payment_id: str | None = None,
        notes: str | None = None,
    ) -> Order:
        previous = order.status
        order.status = status
        if payment_id is not None:
            order.payment_id = payment_id
        if notes is not None:
            order.notes = notes
        if status == OrderStatus.completed and previous != OrderStatus.completed:
            await self.fulfil(order)
        await self._session.commit()
        log.info("order_status_changed", order_id=str(order.id), previous=previous, status=status)
        return order

    async def fulfil(self, order: Order) -> None:
        enrollments_created = 0
        deliveries_created = 0
        for item in order.items:
            for course_id in await self._products.course_ids(item.product_id):
                existing = await self._enrollments.find(user_id=order.user_id, course_id=course_id)
                if existing is None:
                    await self._enrollments.create(
                        user_id=order.user_id,
                        course_id=course_id,
                        environment_id=order.environment_id,
                    )
                    enrollments_created += 1

            product = await self._products.get_with_assets(item.product_id)
            if product is None or not product.requires_fulfillment:
                continue
            for asset in product.assets:
                if not asset.is_active:
                    continue
                if await self._deliveries.exists(order_item_id=item.id, product_asset_id=asset.id):
                    continue
                await self._deliveries.create(
                    order_id=order.id,
                    order_item_id=item.id,
                    product_asset_id=asset.id,
                    user_id=order.user_id,
                    environment_id=order.environment_id,
                    access_count=0,
                    max_access_count=None,
                )
                deliveries_created += 1
        log.info(
            "order_fulfilled",
            order_id=str(order.id),
            enrollments=enrollments_created,
            deliveries=deliveries_created,
        )
