"""Order reconciliation models: orders, recipients, items, payments, shipments, logs."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.orders_service.models.enums import (
    LogLevel,
    OrderStatus,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# CATALOG
# ============================================================================


class Product(Base):
    """Printable product with the defaults used when an item leaves them unset."""

    __tablename__ = "pp_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="USD", nullable=False)

    default_color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    default_size: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    default_print_area: Mapped[str] = mapped_column(
        String(50), default="front", nullable=False
    )
    default_sizing: Mapped[str] = mapped_column(
        String(30), default="fillPrintArea", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<Product {self.sku}>"


# ============================================================================
# ORDER MODELS
# ============================================================================


class Order(Base):
    """Orders placed through the storefront."""

    __tablename__ = "pp_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Assigned by Prodigi once the fulfillment order is placed
    prodigi_order_id: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )

    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="USD", nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="pp_order_status_enum",
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )

    shipping_method: Mapped[str] = mapped_column(
        String(20), default="Standard", nullable=False
    )
    merchant_reference: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )

    # Guest lookup token (sent in the confirmation email)
    order_token: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, index=True, nullable=True
    )

    # Prodigi lifecycle
    prodigi_stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    prodigi_outcome: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    prodigi_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Cached Prodigi action availability
    available_actions: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True
    )
    last_action_check: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Provider breadcrumbs: last webhook, status blob, shipments, issues, errors
    order_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    # Relationships
    recipient = relationship(
        "Recipient",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
    )
    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )
    shipments = relationship(
        "Shipment", back_populates="order", cascade="all, delete-orphan"
    )
    payments = relationship(
        "Payment", back_populates="order", cascade="all, delete-orphan"
    )
    processing_errors = relationship(
        "OrderProcessingError", back_populates="order", cascade="all, delete-orphan"
    )

    @property
    def merchant_ref(self) -> str:
        return self.merchant_reference or f"PP-{self.id}"

    def __repr__(self):
        return f"<Order {self.id} status={self.status}>"


class Recipient(Base):
    """Shipping destination (one per order)."""

    __tablename__ = "pp_recipients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    order = relationship("Order", back_populates="recipient")

    def __repr__(self):
        return f"<Recipient {self.name} ({self.country_code})>"


class OrderItem(Base):
    """Order line items."""

    __tablename__ = "pp_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("pp_products.id"), nullable=False
    )

    copies: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # {"sku": ..., "size": "L", "color": "black", "printArea": "front", "sizing": ...}
    attributes: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    # [{"url": "https://...", "printArea": "front"}], supplied by the design tool
    assets: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    def __repr__(self):
        return f"<OrderItem {self.id} copies={self.copies}>"


class Payment(Base):
    """Captured payment for an order."""

    __tablename__ = "pp_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    provider: Mapped[str] = mapped_column(String(32), default="stripe", nullable=False)
    provider_transaction_id: Mapped[str] = mapped_column(
        String(128), unique=True, index=True, nullable=False
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            values_callable=enum_values,
            name="pp_payment_status_enum",
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    order = relationship("Order", back_populates="payments")

    def __repr__(self):
        return f"<Payment {self.provider_transaction_id} {self.status}>"


# ============================================================================
# FULFILLMENT MODELS
# ============================================================================


class Shipment(Base):
    """One physical parcel dispatched by Prodigi."""

    __tablename__ = "pp_shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prodigi_shipment_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False
    )

    carrier: Mapped[str] = mapped_column(String(100), nullable=False)
    service: Mapped[str] = mapped_column(String(100), nullable=False)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    # [{"id": "itm_...", "copies": 1}]
    items: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    order = relationship("Order", back_populates="shipments")

    def __repr__(self):
        return f"<Shipment {self.prodigi_shipment_id} {self.carrier}>"


class OrderProcessingError(Base):
    """Error trail for orders that need a human to look at them."""

    __tablename__ = "pp_order_processing_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    error: Mapped[str] = mapped_column(Text, nullable=False)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_attempt: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    order = relationship("Order", back_populates="processing_errors")

    def __repr__(self):
        return f"<OrderProcessingError order={self.order_id}>"


class Log(Base):
    """Application log rows surfaced in the admin back-office."""

    __tablename__ = "pp_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[LogLevel] = mapped_column(
        SAEnum(LogLevel, values_callable=enum_values, name="pp_log_level_enum"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    log_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )

    def __repr__(self):
        return f"<Log {self.level} {self.message[:40]}>"


# ============================================================================
# EVENT LOG / DEDUP LEDGER
# ============================================================================


class OrderEvent(Base):
    """Append-only provider event log for an order."""

    __tablename__ = "pp_order_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pp_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "prodigi"
    event_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    occurred_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payload: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        Index("ix_pp_order_events_order_id_recorded_at", "order_id", "recorded_at"),
    )

    def __repr__(self):
        return f"<OrderEvent {self.source}:{self.event_type} order={self.order_id}>"


class ProcessedWebhookEvent(Base):
    """Webhook event ids already applied; redeliveries are short-circuited."""

    __tablename__ = "pp_processed_webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("pp_orders.id", ondelete="SET NULL"), nullable=True
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_pp_webhook_provider_event"),
    )

    def __repr__(self):
        return f"<ProcessedWebhookEvent {self.provider}:{self.event_id}>"
