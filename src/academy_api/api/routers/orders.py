"""
academy_api.api.routers.orders

Order endpoints.

Responsibilities:
- Environment-wide order listing for admins and environment owners.
- Order placement, lookup and status transitions (which trigger fulfilment).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

from academy_api.api.deps import EMAIL_PATTERN, PageParams, current_environment, db_session, page_params
from academy_api.api.responses import ApiError, success
from academy_api.api.serializers import order_out
from academy_api.auth.deps import get_current_user, manages_environment
from academy_api.db.base import as_naive_utc
from academy_api.db.models import Environment, Order, OrderStatus, User
from academy_api.db.pagination import paginate
from academy_api.db.repositories.commerce import OrderRepo
from academy_api.services.orders import OrderService

router = APIRouter(tags=["orders"])


class OrderLine(BaseModel):
    id: uuid.UUID
    quantity: int = Field(default=1, ge=1)


class OrderCreate(BaseModel):
    products: list[OrderLine] = Field(min_length=1)
    billing_name: str = Field(min_length=1, max_length=255)
    billing_email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    billing_address: str | None = Field(default=None, max_length=255)
    billing_city: str | None = Field(default=None, max_length=255)
    billing_country: str | None = Field(default=None, max_length=2)
    payment_method: str | None = Field(default=None, max_length=64)
    notes: str | None = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    payment_id: str | None = Field(default=None, max_length=255)
    notes: str | None = None


async def _visible_order(
    session: AsyncSession, order_id: uuid.UUID, user: User, environment: Environment
) -> Order:
    order = await OrderRepo(session).get(order_id)
    if order is None or order.environment_id != environment.id:
        raise ApiError(HTTP_404_NOT_FOUND, "Order not found")
    if order.user_id != user.id and not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "You are not allowed to access this order")
    return order


@router.get("/orders")
async def list_orders(
    search: str | None = Query(default=None, max_length=255),
    status: OrderStatus | None = Query(default=None),
    user_id: uuid.UUID | None = Query(default=None),
    min_amount: float | None = Query(default=None, ge=0),
    max_amount: float | None = Query(default=None, ge=0),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    sort_by: Literal["order_number", "total_amount", "status", "created_at"] = Query(default="created_at"),
    sort_direction: Literal["asc", "desc"] = Query(default="desc"),
    paging: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    if not manages_environment(user, environment):
        raise ApiError(HTTP_403_FORBIDDEN, "Only environment owners can list orders")
    stmt = OrderRepo(session).filtered(
        environment_id=environment.id,
        search=search,
        status=status,
        user_id=user_id,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=as_naive_utc(start_date),
        end_date=as_naive_utc(end_date),
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    page = await paginate(session, stmt, page=paging.page, per_page=paging.per_page)
    return success(page.to_dict([order_out(o) for o in page.items]))


@router.get("/my-orders")
async def my_orders(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    return success([order_out(o) for o in await OrderRepo(session).list_for_user(user.id)])


@router.post("/orders")
async def create_order(
    body: OrderCreate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    order = await OrderService(session=session).place(
        environment_id=environment.id,
        buyer=user,
        lines=[(line.id, line.quantity) for line in body.products],
        billing=body.model_dump(exclude={"products"}),
    )
    return success(order_out(order), message="Order created successfully", status_code=HTTP_201_CREATED)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    return success(order_out(await _visible_order(session, order_id, user, environment)))


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: uuid.UUID,
    body: OrderStatusUpdate,
    user: User = Depends(get_current_user),
    environment: Environment = Depends(current_environment),
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    order = await _visible_order(session, order_id, user, environment)
    order = await OrderService(session=session).set_status(
        order, status=body.status, payment_id=body.payment_id, notes=body.notes
    )
    return success(order_out(order), message="Order status updated successfully")
