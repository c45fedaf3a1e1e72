"""
academy_api.db.models.commerce

Billing and fulfilment schema.

Responsibilities:
- Products (with linked courses and downloadable assets) sold inside an environment.
- Orders and their line items.
- Transactions and invoices used by the financial widgets.
- Asset deliveries: tokenized, access-limited grants to digital assets.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid as SAUuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_api.db.base import Base, utcnow

# Money columns come back as floats; rounding happens at the edges.
Money = Numeric(12, 2, asdecimal=False)


class OrderStatus(enum.StrEnum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class InvoiceStatus(enum.StrEnum):
    draft = "draft"
    sent = "sent"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


class DeliveryStatus(enum.StrEnum):
    active = "active"
    expired = "expired"
    revoked = "revoked"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    discount_price: Mapped[float | None] = mapped_column(Money, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_fulfillment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    assets: Mapped[list[ProductAsset]] = relationship(
        back_populates="product", cascade="all, delete-orphan", order_by="ProductAsset.display_order"
    )

    @property
    def effective_price(self) -> float:
        return self.discount_price if self.discount_price is not None else self.price


class ProductCourse(Base):
    __tablename__ = "product_courses"

    product_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("products.id"), primary_key=True
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("courses.id"), primary_key=True
    )


class ProductAsset(Base):
    __tablename__ = "product_assets"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # "file", "external_link" or "license_key"; only the first two are deliverable online.
    asset_type: Mapped[str] = mapped_column(String(32), nullable=False)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(nullable=False, default=0)

    product: Mapped[Product] = relationship(back_populates="assets")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    total_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), nullable=False, default=OrderStatus.pending, index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    billing_name: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_email: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    billing_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    billing_country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order", cascade="all, delete-orphan", lazy="selectin"
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    price: Mapped[float] = mapped_column(Money, nullable=False)
    discount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    total: Mapped[float] = mapped_column(Money, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("orders.id"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    amount: Mapped[float] = mapped_column(Money, nullable=False)
    fee_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    total_amount: Mapped[float] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_transactions_env_status_created", "environment_id", "status", "created_at"),)


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False, index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.draft
    )
    total_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    total_fee_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class AssetDelivery(Base):
    __tablename__ = "asset_deliveries"

    id: Mapped[uuid.UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("order_items.id"), nullable=False
    )
    product_asset_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("product_assets.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    environment_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("environments.id"), nullable=False
    )
    download_token: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, default=lambda: str(uuid.uuid4())
    )
    access_count: Mapped[int] = mapped_column(nullable=False, default=0)
    # None means unlimited access.
    max_access_count: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus), nullable=False, default=DeliveryStatus.active
    )
    access_granted_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_accessed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    product_asset: Mapped[ProductAsset] = relationship(lazy="joined")

    def is_valid(self, now: datetime) -> bool:
        return (
            self.status == DeliveryStatus.active
            and (self.expires_at is None or self.expires_at > now)
            and (self.max_access_count is None or self.access_count < self.max_access_count)
        )

    def record_access(self, *, now: datetime, ip_address: str | None, user_agent: str | None) -> None:
        self.access_count += 1
        self.last_accessed_at = now
        self.ip_address = ip_address
        self.user_agent = user_agent
        if self.max_access_count and self.access_count >= self.max_access_count:
            self.status = DeliveryStatus.expired
