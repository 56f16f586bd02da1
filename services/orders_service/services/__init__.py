"""Public exports for the order reconciliation flows."""

from services.orders_service.services.finalizer import (
    CheckoutSessionError,
    finalize_checkout,
)
from services.orders_service.services.fulfillment import FulfillmentError, map_size
from services.orders_service.services.order_changes import (
    OrderChangeError,
    change_recipient,
    change_shipping_method,
)
from services.orders_service.services.webhook_consumer import (
    EventTypeInfo,
    WebhookValidationError,
    parse_event_type,
    parse_order_payload,
    process_prodigi_webhook,
)

__all__ = [
    "CheckoutSessionError",
    "finalize_checkout",
    "FulfillmentError",
    "map_size",
    "OrderChangeError",
    "change_recipient",
    "change_shipping_method",
    "EventTypeInfo",
    "WebhookValidationError",
    "parse_event_type",
    "parse_order_payload",
    "process_prodigi_webhook",
]
