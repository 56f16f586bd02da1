"""Mapping of local orders onto Prodigi order requests."""

import re
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from services.orders_service.image_resolver import ImageResolver
from services.orders_service.models import Order, OrderItem, Recipient

SHIPPING_METHOD = "Standard"
DEFAULT_SIZE = "m"

SIZE_MAP = {
    "XXS": "2xs",
    "XS": "xs",
    "S": "s",
    "M": "m",
    "L": "l",
    "XL": "xl",
    "XXL": "2xl",
    "XXXL": "3xl",
    "XXXXL": "4xl",
    "XXXXXL": "5xl",
    "XXXXXXL": "6xl",
}

_NUMERIC_SIZE = re.compile(r"^(\d)X([SL])$")


class FulfillmentError(Exception):
    """An order cannot be sent to production as it stands."""

    def __init__(self, message: str, order_item_id: Optional[int] = None):
        self.message = message
        self.order_item_id = order_item_id
        super().__init__(message)


def map_size(size: Optional[str]) -> str:
    """Translate a storefront size (``XL``, ``2xl``, ``XXXL``) to Prodigi's vocabulary."""
    if not size:
        return DEFAULT_SIZE
    key = size.strip().upper()
    numeric = _NUMERIC_SIZE.match(key)
    if numeric:
        key = "X" * int(numeric.group(1)) + numeric.group(2)
    return SIZE_MAP.get(key, DEFAULT_SIZE)


def format_amount(value: Any) -> str:
    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def build_prodigi_recipient(recipient: Recipient) -> dict[str, Any]:
    address = {
        "line1": recipient.address_line1,
        "postalOrZipCode": recipient.postal_code,
        "countryCode": recipient.country_code,
        "townOrCity": recipient.city,
    }
    if recipient.address_line2:
        address["line2"] = recipient.address_line2
    if recipient.state:
        address["stateOrCounty"] = recipient.state

    payload: dict[str, Any] = {"name": recipient.name, "address": address}
    if recipient.email:
        payload["email"] = recipient.email
    if recipient.phone_number:
        payload["phoneNumber"] = recipient.phone_number
    return payload


def build_prodigi_item(
    item: OrderItem, resolver: ImageResolver, currency: str
) -> dict[str, Any]:
    """
    Build one Prodigi line item.

    Raises:
        FulfillmentError: If the item carries no design asset
        AssetResolutionError: If the asset cannot be made public
    """
    assets = item.assets or []
    first = assets[0] if assets else None
    asset_url = first.get("url") if isinstance(first, dict) else None
    if not asset_url:
        raise FulfillmentError(
            f"Order item {item.id} has no design asset", order_item_id=item.id
        )

    product = item.product
    attributes = item.attributes or {}

    color = attributes.get("color") or product.default_color
    item_attributes = {"size": map_size(attributes.get("size") or product.default_size)}
    if color:
        item_attributes["color"] = color

    print_area = (
        first.get("printArea")
        or attributes.get("printArea")
        or product.default_print_area
    )

    return {
        "sku": attributes.get("sku") or product.sku,
        "copies": item.copies,
        "sizing": attributes.get("sizing") or product.default_sizing,
        "attributes": item_attributes,
        "recipientCost": {
            "amount": format_amount(item.price),
            "currency": currency.upper(),
        },
        "assets": [{"printArea": print_area, "url": resolver.resolve(asset_url)}],
    }


def build_prodigi_items(
    order: Order, resolver: ImageResolver, currency: str
) -> list[dict[str, Any]]:
    """All line items for an order; one bad item fails the whole order."""
    return [build_prodigi_item(item, resolver, currency) for item in order.items]


def build_idempotency_key(order_id: int, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"order-{order_id}-{now_ms}"


def build_order_request(
    order: Order, items: list[dict[str, Any]], callback_url: Optional[str] = None
) -> dict[str, Any]:
    request: dict[str, Any] = {
        "shippingMethod": SHIPPING_METHOD,
        "merchantReference": order.merchant_ref,
        "recipient": build_prodigi_recipient(order.recipient),
        "items": items,
    }
    if callback_url:
        request["callbackUrl"] = callback_url
    return request
