"""Checkout finalization.

Runs when a customer lands on the checkout success page: confirms the Stripe
session was paid, marks the local order COMPLETED, records the payment and the
shipping address, then places the print order with Prodigi.

Payment and fulfillment are decoupled. A failure while placing the print order
never surfaces as an error to the customer; the order is CANCELED, the failure
is logged to the error trail, and support picks it up from there.
"""

import traceback
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import parse_iso_datetime, utc_now, utc_now_iso
from libs.common.logging import get_logger
from services.orders_service.image_resolver import ImageResolver
from services.orders_service.models import (
    LogLevel,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    ProdigiStage,
)
from services.orders_service.order_state import can_transition
from services.orders_service.prodigi_client import ProdigiClient, ProdigiError
from services.orders_service.repository import OrderRepository
from services.orders_service.schemas import SUPPORT_NOTICE, CheckoutSuccessResponse
from services.orders_service.services.fulfillment import (
    build_idempotency_key,
    build_order_request,
    build_prodigi_items,
)
from services.orders_service.stripe_client import (
    CheckoutSession,
    PaymentProviderError,
    StripeCheckoutClient,
)

logger = get_logger(__name__)

PLACEHOLDER_NAME = "Pending"
PLACEHOLDER_EMAIL = "pending@example.com"
PLACEHOLDER_POSTAL_CODE = "00000"
PLACEHOLDER_COUNTRY = "US"

PAID_MESSAGE = "Payment received. Your order is being prepared."
PENDING_MESSAGE = "Payment has not completed yet."


class CheckoutSessionError(Exception):
    """The success page cannot be rendered; the customer is sent home."""


def _parse_order_id(reference: Optional[str]) -> Optional[int]:
    if not reference:
        return None
    try:
        return int(reference)
    except (TypeError, ValueError):
        return None


def _success(
    session: CheckoutSession,
    order: Optional[Order] = None,
    *,
    fulfillment_issue: bool = False,
) -> CheckoutSuccessResponse:
    return CheckoutSuccessResponse(
        status="success",
        payment_status=session.payment_status,
        order_id=order.id if order else None,
        order_status=order.status if order else None,
        prodigi_order_id=order.prodigi_order_id if order else None,
        fulfillment_issue=fulfillment_issue,
        message=PAID_MESSAGE,
        support_notice=SUPPORT_NOTICE if fulfillment_issue else None,
    )


async def finalize_checkout(
    session_id: Optional[str],
    *,
    repo: OrderRepository,
    payment_client: Optional[StripeCheckoutClient],
    prodigi_client: ProdigiClient,
    image_resolver: ImageResolver,
) -> CheckoutSuccessResponse:
    """
    Finalize an order from a Stripe Checkout Session id.

    Raises:
        CheckoutSessionError: If the session id is missing, no Stripe key is
            configured, or Stripe cannot resolve the session
    """
    if not session_id:
        raise CheckoutSessionError("Missing checkout session id")
    if payment_client is None:
        raise CheckoutSessionError("Payment provider is not configured")

    try:
        session = await payment_client.retrieve_session(session_id)
    except PaymentProviderError as e:
        raise CheckoutSessionError(f"Could not resolve session {session_id}") from e

    order_id = _parse_order_id(session.order_reference)

    if not session.is_paid:
        order = await repo.get_order(order_id) if order_id is not None else None
        logger.info(
            f"Checkout session {session.id} not paid ({session.payment_status})",
            extra={"extra_fields": {"session_id": session.id, "order_id": order_id}},
        )
        return CheckoutSuccessResponse(
            status="pending",
            payment_status=session.payment_status,
            order_id=order.id if order else None,
            order_status=order.status if order else None,
            prodigi_order_id=order.prodigi_order_id if order else None,
            message=PENDING_MESSAGE,
        )

    if order_id is None:
        logger.error(
            f"Paid checkout session {session.id} carries no usable order reference",
            extra={"extra_fields": {"session_id": session.id}},
        )
        repo.add_log(
            LogLevel.ERROR,
            "Paid checkout session without order reference",
            {"sessionId": session.id, "metadata": session.metadata},
        )
        await repo.commit()
        return _success(session, fulfillment_issue=True)

    order = await repo.get_order(order_id, for_update=True)
    if order is None:
        logger.error(
            f"Paid checkout session {session.id} references unknown order {order_id}",
            extra={"extra_fields": {"session_id": session.id, "order_id": order_id}},
        )
        repo.add_log(
            LogLevel.ERROR,
            f"Order {order_id} not found for paid checkout session",
            {"sessionId": session.id, "orderId": order_id},
        )
        await repo.commit()
        return _success(session, fulfillment_issue=True)

    await _record_payment(repo, order, session)
    await repo.commit()

    if order.recipient is None:
        logger.warning(
            f"Order {order.id} is paid but has no recipient; fulfillment skipped",
            extra={"extra_fields": {"order_id": order.id, "session_id": session.id}},
        )
        repo.add_processing_error(
            order.id, "Paid order has no recipient; fulfillment order not placed"
        )
        await repo.commit()
        return _success(session, order, fulfillment_issue=True)

    if order.prodigi_order_id:
        logger.info(
            f"Order {order.id} already placed with Prodigi as {order.prodigi_order_id}"
        )
        return _success(session, order)

    if order.status == OrderStatus.CANCELED:
        # An earlier placement attempt failed; support owns it now
        return _success(session, order, fulfillment_issue=True)

    try:
        await _place_fulfillment_order(
            repo, order, session, prodigi_client, image_resolver
        )
    except Exception as e:
        await repo.rollback()
        order = await repo.get_order(order_id)
        await _record_fulfillment_failure(repo, order, e, prodigi_client)
        return _success(session, order, fulfillment_issue=True)

    return _success(session, order)


async def _record_payment(
    repo: OrderRepository, order: Order, session: CheckoutSession
) -> None:
    if can_transition(order.status, OrderStatus.COMPLETED):
        order.status = OrderStatus.COMPLETED
    else:
        logger.warning(
            f"Order {order.id} is {order.status.value}; not marking COMPLETED",
            extra={"extra_fields": {"order_id": order.id, "session_id": session.id}},
        )

    provider_id = session.payment_intent_id or session.id
    existing = await repo.get_payment_by_provider_id(provider_id)
    if existing is None:
        repo.add_payment(
            Payment(
                order_id=order.id,
                provider="stripe",
                provider_transaction_id=provider_id,
                status=PaymentStatus.SUCCEEDED,
                amount=Decimal(session.amount_total) / Decimal(100),
                currency=session.currency.upper(),
            )
        )

    recipient = order.recipient
    if recipient is None:
        return

    details = session.customer_details
    address = details.address
    recipient.name = details.name or PLACEHOLDER_NAME
    recipient.email = details.email or PLACEHOLDER_EMAIL
    recipient.phone_number = details.phone
    recipient.address_line1 = address.line1 or PLACEHOLDER_NAME
    recipient.address_line2 = address.line2
    recipient.city = address.city or PLACEHOLDER_NAME
    recipient.state = address.state
    recipient.postal_code = address.postal_code or PLACEHOLDER_POSTAL_CODE
    recipient.country_code = (address.country or PLACEHOLDER_COUNTRY).upper()


async def _place_fulfillment_order(
    repo: OrderRepository,
    order: Order,
    session: CheckoutSession,
    prodigi_client: ProdigiClient,
    image_resolver: ImageResolver,
) -> None:
    items = build_prodigi_items(order, image_resolver, session.currency)
    request = build_order_request(
        order, items, callback_url=get_settings().prodigi_callback_url
    )
    idempotency_key = build_idempotency_key(order.id)

    logger.info(
        f"Placing Prodigi order for order {order.id}",
        extra={
            "extra_fields": {
                "order_id": order.id,
                "item_count": len(items),
                "idempotency_key": idempotency_key,
            }
        },
    )
    response = await prodigi_client.create_order(
        request, idempotency_key=idempotency_key
    )

    prodigi_order = response.get("order") or {}
    prodigi_order_id = prodigi_order.get("id")
    if not prodigi_order_id:
        raise ProdigiError(
            "Prodigi response did not include an order id", response_data=response
        )

    created_at = parse_iso_datetime(prodigi_order.get("created")) or utc_now()
    stage = (prodigi_order.get("status") or {}).get(
        "stage"
    ) or ProdigiStage.ON_HOLD.value

    order.prodigi_order_id = prodigi_order_id
    order.prodigi_created_at = created_at
    order.prodigi_stage = stage
    order.prodigi_outcome = response.get("outcome")
    order.merchant_reference = order.merchant_ref
    order.order_metadata = {
        **(order.order_metadata or {}),
        "prodigiResponse": response,
    }
    repo.record_event(
        order.id,
        source="prodigi",
        event_type="order.created",
        stage=stage,
        occurred_at=created_at,
        payload={"outcome": response.get("outcome"), "prodigiOrderId": prodigi_order_id},
    )
    await repo.commit()

    logger.info(
        f"Prodigi order {prodigi_order_id} placed for order {order.id}",
        extra={"extra_fields": {"order_id": order.id, "outcome": order.prodigi_outcome}},
    )


async def _record_fulfillment_failure(
    repo: OrderRepository,
    order: Order,
    error: Exception,
    prodigi_client: ProdigiClient,
) -> None:
    message = str(error) or type(error).__name__
    stack = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    has_api_key = prodigi_client.has_api_key
    api_key_length = prodigi_client.api_key_length

    logger.error(
        f"Failed to place Prodigi order for order {order.id}: {message}",
        exc_info=(type(error), error, error.__traceback__),
        extra={
            "extra_fields": {
                "order_id": order.id,
                "has_api_key": has_api_key,
                "api_key_length": api_key_length,
            }
        },
    )

    repo.add_log(
        LogLevel.ERROR,
        f"Failed to create Prodigi order for order {order.id}",
        {
            "orderId": order.id,
            "error": message,
            "stack": stack,
            "hasApiKey": has_api_key,
            "apiKeyLength": api_key_length,
        },
    )
    repo.add_processing_error(order.id, f"Fulfillment placement failed: {message}")

    if can_transition(order.status, OrderStatus.CANCELED):
        order.status = OrderStatus.CANCELED
    order.order_metadata = {
        **(order.order_metadata or {}),
        "fulfillmentError": {
            "message": message,
            "type": type(error).__name__,
            "occurredAt": utc_now_iso(),
        },
    }
    await repo.commit()
