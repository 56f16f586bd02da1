"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance (or, for
provider payloads, a plain dict / dataclass). Override any field via kwargs.

Usage:
    order = OrderFactory.create(status=OrderStatus.COMPLETED)
    db_session.add(order)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _hex(n: int = 8) -> str:
    return uuid.uuid4().hex[:n]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ProductFactory:
    @staticmethod
    def create(**overrides):
        from services.orders_service.models import Product

        defaults = {
            "name": "Classic Tee",
            "sku": "GLOBAL-TEE-GIL-64000",
            "price": Decimal("29.99"),
            "currency": "USD",
            "default_color": "black",
            "default_size": "M",
            "default_print_area": "front",
            "default_sizing": "fillPrintArea",
        }
        defaults.update(overrides)
        return Product(**defaults)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class RecipientFactory:
    @staticmethod
    def create(**overrides):
        from services.orders_service.models import Recipient

        defaults = {
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "phone_number": "+441234567890",
            "address_line1": "12 Analytical Row",
            "address_line2": None,
            "city": "London",
            "state": None,
            "postal_code": "N1 9GU",
            "country_code": "GB",
        }
        defaults.update(overrides)
        return Recipient(**defaults)


class OrderItemFactory:
    @staticmethod
    def create(product=None, **overrides):
        from services.orders_service.models import OrderItem

        defaults = {
            "product": product or ProductFactory.create(),
            "copies": 1,
            "price": Decimal("29.99"),
            "attributes": {"size": "L", "color": "white"},
            "assets": [{"url": "https://cdn.example.com/designs/abc.png"}],
        }
        defaults.update(overrides)
        return OrderItem(**defaults)


class OrderFactory:
    @staticmethod
    def create(with_recipient: bool = True, items=1, **overrides):
        """``items`` is either a count of default line items or a list of OrderItems."""
        from services.orders_service.models import Order, OrderStatus

        if isinstance(items, int):
            items = [OrderItemFactory.create() for _ in range(items)]

        defaults = {
            "total_price": sum((i.price * i.copies for i in items), Decimal("0")),
            "currency": "USD",
            "status": OrderStatus.PENDING,
            "shipping_method": "Standard",
            "order_token": f"tok_{_hex(16)}",
            "order_metadata": {},
        }
        if with_recipient:
            defaults["recipient"] = RecipientFactory.create()
        defaults["items"] = items
        defaults.update(overrides)
        return Order(**defaults)


class ShipmentFactory:
    @staticmethod
    def create(order_id: int, **overrides):
        from services.orders_service.models import Shipment

        defaults = {
            "order_id": order_id,
            "prodigi_shipment_id": f"shp_{_hex()}",
            "carrier": "Royal Mail",
            "service": "Tracked 48",
            "tracking_number": "RM123456789GB",
            "tracking_url": "https://track.example.com/RM123456789GB",
            "shipped_at": _now(),
            "items": [{"id": "itm_1", "copies": 1}],
        }
        defaults.update(overrides)
        return Shipment(**defaults)


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------


class CheckoutSessionFactory:
    @staticmethod
    def create(order_id=None, **overrides):
        from services.orders_service.stripe_client import (
            CheckoutSession,
            CustomerAddress,
            CustomerDetails,
        )

        defaults = {
            "id": f"cs_test_{_hex(12)}",
            "payment_status": "paid",
            "metadata": {"orderId": str(order_id)} if order_id is not None else {},
            "currency": "usd",
            "amount_total": 2999,
            "payment_intent_id": f"pi_{_hex(12)}",
            "customer_details": CustomerDetails(
                name="Grace Hopper",
                email="grace@example.com",
                phone="+15555550100",
                address=CustomerAddress(
                    line1="1 Compiler Way",
                    line2="Suite 2",
                    city="Arlington",
                    state="VA",
                    postal_code="22201",
                    country="us",
                ),
            ),
        }
        defaults.update(overrides)
        return CheckoutSession(**defaults)


# ---------------------------------------------------------------------------
# Prodigi
# ---------------------------------------------------------------------------


class ProdigiOrderResponseFactory:
    @staticmethod
    def create(prodigi_order_id: str = None, **overrides) -> dict:
        body = {
            "outcome": "Created",
            "order": {
                "id": prodigi_order_id or f"ord_{_hex(6)}",
                "created": "2024-05-01T10:00:00.000Z",
                "status": {"stage": "InProgress", "issues": [], "details": {}},
                "shipments": [],
            },
        }
        body.update(overrides)
        return body


class ProdigiEventFactory:
    """CloudEvents envelope as Prodigi posts it to the callback URL."""

    @staticmethod
    def create(
        prodigi_order_id: str,
        event_type: str = "com.prodigi.order.status.stage.changed#InProgress",
        stage: str = "InProgress",
        shipments: list = None,
        issues: list = None,
        **overrides,
    ) -> dict:
        envelope = {
            "specversion": "1.0",
            "type": event_type,
            "source": "http://api.prodigi.com/v4.0/Orders/",
            "id": f"evt_{_hex(12)}",
            "time": "2024-05-02T08:30:00Z",
            "datacontenttype": "application/json",
            "subject": prodigi_order_id,
            "data": {
                "order": {
                    "id": prodigi_order_id,
                    "created": "2024-05-01T10:00:00Z",
                    "status": {
                        "stage": stage,
                        "issues": issues or [],
                        "details": {
                            "downloadAssets": "Complete",
                            "printReadyAssetsPrepared": "Complete",
                            "allocateProductionLocation": "Complete",
                            "inProduction": "InProgress",
                            "shipping": "NotStarted",
                        },
                    },
                    "shipments": shipments or [],
                    "merchantReference": "PP-1",
                    "shippingMethod": "Standard",
                }
            },
        }
        envelope.update(overrides)
        return envelope

    @staticmethod
    def shipment(**overrides) -> dict:
        shipment = {
            "id": f"shp_{_hex()}",
            "carrier": {"name": "Royal Mail", "service": "Tracked 48"},
            "tracking": {
                "number": "RM123456789GB",
                "url": "https://track.example.com/RM123456789GB",
            },
            "dispatchDate": "2024-05-03T09:00:00Z",
            "items": [{"id": "itm_1", "copies": 1}],
        }
        shipment.update(overrides)
        return shipment
