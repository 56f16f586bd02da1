"""Customer-initiated changes to an order already placed with Prodigi.

Both changes are only possible while Prodigi still offers the matching action
(``changeRecipientDetails`` / ``changeShippingMethod``). Prodigi is updated
first; the local order follows only when Prodigi accepted the change.
"""

from decimal import Decimal

from libs.common.datetime_utils import utc_now, utc_now_iso
from libs.common.logging import get_logger
from services.orders_service.models import Order, OrderStatus, Recipient
from services.orders_service.prodigi_client import ProdigiClient, ProdigiError
from services.orders_service.repository import OrderRepository
from services.orders_service.schemas import (
    AddressUpdateRequest,
    OrderChangeResponse,
    ShippingUpdateRequest,
)
from services.orders_service.services.fulfillment import (
    build_prodigi_recipient,
    format_amount,
)

logger = get_logger(__name__)

# Flat shipping charge per method, used to price downgrades
SHIPPING_COSTS = {
    "Budget": Decimal("5.00"),
    "Standard": Decimal("10.00"),
    "Express": Decimal("20.00"),
    "Overnight": Decimal("35.00"),
}


class OrderChangeError(Exception):
    """A change request that cannot be applied; carries the HTTP status to answer with."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


async def _require_action(
    prodigi_client: ProdigiClient, order: Order, action: str, fallback: str
) -> None:
    if order.status == OrderStatus.CANCELED:
        raise OrderChangeError(409, "Order is canceled")
    if not order.prodigi_order_id:
        raise OrderChangeError(400, "Order has not been sent to production yet")

    try:
        actions = await prodigi_client.get_actions(order.prodigi_order_id)
    except ProdigiError as e:
        logger.error(
            f"Failed to fetch Prodigi actions for order {order.id}: {e.message}",
            extra={"extra_fields": {"order_id": order.id, "status_code": e.status_code}},
        )
        raise OrderChangeError(502, "Could not reach the print provider")

    order.available_actions = actions
    order.last_action_check = utc_now()

    entry = actions.get(action) or {}
    if entry.get("isAvailable") != "Yes":
        raise OrderChangeError(409, entry.get("reason") or fallback)


async def change_recipient(
    order: Order,
    update: AddressUpdateRequest,
    *,
    repo: OrderRepository,
    prodigi_client: ProdigiClient,
) -> OrderChangeResponse:
    """
    Correct the shipping address of a placed order.

    The postal code must stay the same; a different destination means a new
    order.

    Raises:
        OrderChangeError: 400/409 when the change is not allowed, 502 when
            Prodigi fails
    """
    current = order.recipient
    if current is None:
        raise OrderChangeError(400, "Order has no recipient")
    if update.postal_code.strip() != current.postal_code.strip():
        raise OrderChangeError(
            400,
            "Cannot change postal/zip code. Please cancel and create a new order "
            "if you need to ship to a different location.",
        )

    await _require_action(
        prodigi_client,
        order,
        "changeRecipientDetails",
        "Address cannot be updated at this time (order may already be in production)",
    )

    fields = update.model_dump()
    fields["email"] = update.email or current.email
    try:
        await prodigi_client.update_recipient(
            order.prodigi_order_id, build_prodigi_recipient(Recipient(**fields))
        )
    except ProdigiError as e:
        logger.error(
            f"Prodigi recipient update failed for order {order.id}: {e.message}",
            extra={"extra_fields": {"order_id": order.id, "status_code": e.status_code}},
        )
        raise OrderChangeError(502, "Print provider rejected the address change")

    for key, value in fields.items():
        setattr(current, key, value)
    repo.record_event(
        order.id,
        source="customer",
        event_type="recipient.updated",
        payload={"city": update.city, "countryCode": update.country_code},
    )
    await repo.commit()

    logger.info(
        f"Shipping address updated for order {order.id}",
        extra={"extra_fields": {"order_id": order.id}},
    )
    return OrderChangeResponse(
        order_id=order.id, message="Shipping address updated successfully"
    )


async def change_shipping_method(
    order: Order,
    update: ShippingUpdateRequest,
    *,
    repo: OrderRepository,
    prodigi_client: ProdigiClient,
) -> OrderChangeResponse:
    """
    Move a placed order to a cheaper shipping method.

    The price difference is recorded on the order as ``shippingRefundDue``;
    the refund itself is issued manually.

    Raises:
        OrderChangeError: 400/409 when the change is not allowed, 502 when
            Prodigi fails
    """
    previous = order.shipping_method
    new_method = update.shipping_method
    current_cost = SHIPPING_COSTS.get(previous, Decimal("0"))
    new_cost = SHIPPING_COSTS[new_method]
    if new_cost >= current_cost:
        raise OrderChangeError(
            400,
            "New shipping method must be cheaper than the current method. "
            "Upgrades are not supported.",
        )

    await _require_action(
        prodigi_client,
        order,
        "changeShippingMethod",
        "Shipping method cannot be changed at this time "
        "(order may already be in production)",
    )

    try:
        await prodigi_client.update_shipping_method(order.prodigi_order_id, new_method)
    except ProdigiError as e:
        logger.error(
            f"Prodigi shipping update failed for order {order.id}: {e.message}",
            extra={"extra_fields": {"order_id": order.id, "status_code": e.status_code}},
        )
        raise OrderChangeError(502, "Print provider rejected the shipping change")

    refund_due = current_cost - new_cost
    order.shipping_method = new_method
    order.order_metadata = {
        **(order.order_metadata or {}),
        "shippingMethodChangedAt": utc_now_iso(),
        "previousShippingMethod": previous,
        "shippingRefundDue": format_amount(refund_due),
    }
    repo.record_event(
        order.id,
        source="customer",
        event_type="shipping.updated",
        payload={"from": previous, "to": new_method},
    )
    await repo.commit()

    logger.info(
        f"Shipping method for order {order.id} changed {previous} -> {new_method}",
        extra={
            "extra_fields": {"order_id": order.id, "refund_due": str(refund_due)}
        },
    )
    return OrderChangeResponse(
        order_id=order.id,
        message=(
            f"Shipping method updated. A refund of {format_amount(refund_due)} "
            f"{order.currency} will be issued by our support team."
        ),
        shipping_method=new_method,
        refund_due=float(refund_due),
    )
