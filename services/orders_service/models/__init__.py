"""Orders Service models package."""

from services.orders_service.models.core import (
    Log,
    Order,
    OrderEvent,
    OrderItem,
    OrderProcessingError,
    Payment,
    ProcessedWebhookEvent,
    Product,
    Recipient,
    Shipment,
)
from services.orders_service.models.enums import (
    LogLevel,
    OrderStatus,
    PaymentStatus,
    ProdigiStage,
)

__all__ = [
    "Log",
    "LogLevel",
    "Order",
    "OrderEvent",
    "OrderItem",
    "OrderProcessingError",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "ProcessedWebhookEvent",
    "ProdigiStage",
    "Product",
    "Recipient",
    "Shipment",
]
