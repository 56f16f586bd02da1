"""Customer-facing order tracking and self-service changes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.models import Order
from services.orders_service.prodigi_client import (
    ProdigiClient,
    ProdigiError,
    get_prodigi_client,
)
from services.orders_service.repository import OrderRepository, get_order_repository
from services.orders_service.schemas import (
    AddressUpdateRequest,
    OrderActionsResponse,
    OrderChangeResponse,
    OrderItemSummary,
    OrderLookupResponse,
    RecipientSummary,
    ShipmentResponse,
    ShippingUpdateRequest,
)
from services.orders_service.services.order_changes import (
    OrderChangeError,
    change_recipient,
    change_shipping_method,
)

router = APIRouter(prefix="/orders", tags=["orders"])
logger = get_logger(__name__)


async def get_customer_order(
    order_id: int,
    token: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    repo: OrderRepository = Depends(get_order_repository),
) -> Order:
    """
    Resolve the order in the path for a guest customer.

    The caller proves ownership with the order's lookup token or the
    recipient email. A credential that does not match the order gets the
    same 404 as an unknown order.
    """
    if not token and not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either a token or the order email",
        )

    if token:
        order = await repo.find_by_token(token)
        if order and order.id != order_id:
            order = None
    else:
        order = await repo.find_by_email_and_id(email, order_id)

    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Order not found"
        )
    return order


def _to_lookup_response(order: Order) -> OrderLookupResponse:
    return OrderLookupResponse(
        id=order.id,
        created_at=order.created_at,
        total_price=float(order.total_price),
        currency=order.currency,
        status=order.status,
        prodigi_order_id=order.prodigi_order_id,
        prodigi_stage=order.prodigi_stage,
        shipping_method=order.shipping_method,
        recipient=(
            RecipientSummary.model_validate(order.recipient)
            if order.recipient
            else None
        ),
        shipments=[ShipmentResponse.model_validate(s) for s in order.shipments],
        items=[
            OrderItemSummary(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name if item.product else None,
                copies=item.copies,
                price=float(item.price),
                attributes=item.attributes,
            )
            for item in order.items
        ],
    )


@router.get("/lookup", response_model=OrderLookupResponse)
async def lookup_order(
    token: Optional[str] = Query(default=None),
    email: Optional[str] = Query(default=None),
    order_id: Optional[str] = Query(default=None),
    repo: OrderRepository = Depends(get_order_repository),
):
    """
    Guest order tracking, by lookup token or by email plus order number.
    """
    if not token and not (email and order_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either a token, or an email and order_id",
        )

    parsed_id = None
    if not token:
        try:
            parsed_id = int(order_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="order_id must be a number",
            )

    order = await repo.find_for_lookup(token=token, email=email, order_id=parsed_id)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Order not found"
        )
    return _to_lookup_response(order)


@router.get("/{order_id}/actions", response_model=OrderActionsResponse)
async def get_order_actions(
    order: Order = Depends(get_customer_order),
    repo: OrderRepository = Depends(get_order_repository),
    prodigi_client: ProdigiClient = Depends(get_prodigi_client),
):
    """Ask Prodigi which actions are still available and cache the answer."""
    if not order.prodigi_order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order has not been sent to production yet",
        )

    try:
        actions = await prodigi_client.get_actions(order.prodigi_order_id)
    except ProdigiError as e:
        logger.error(
            f"Failed to fetch Prodigi actions for order {order.id}: {e.message}",
            extra={"extra_fields": {"order_id": order.id, "status_code": e.status_code}},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not reach the print provider",
        )

    order.available_actions = actions
    order.last_action_check = utc_now()
    await repo.commit()

    return OrderActionsResponse(
        order_id=order.id,
        prodigi_order_id=order.prodigi_order_id,
        actions=actions,
        last_action_check=order.last_action_check,
    )


@router.patch("/{order_id}/address", response_model=OrderChangeResponse)
async def update_order_address(
    update: AddressUpdateRequest,
    order: Order = Depends(get_customer_order),
    repo: OrderRepository = Depends(get_order_repository),
    prodigi_client: ProdigiClient = Depends(get_prodigi_client),
):
    """Correct the shipping address while Prodigi still allows it."""
    try:
        return await change_recipient(
            order, update, repo=repo, prodigi_client=prodigi_client
        )
    except OrderChangeError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{order_id}/shipping", response_model=OrderChangeResponse)
async def update_order_shipping(
    update: ShippingUpdateRequest,
    order: Order = Depends(get_customer_order),
    repo: OrderRepository = Depends(get_order_repository),
    prodigi_client: ProdigiClient = Depends(get_prodigi_client),
):
    """Downgrade the shipping method; the price difference is refunded by support."""
    try:
        return await change_shipping_method(
            order, update, repo=repo, prodigi_client=prodigi_client
        )
    except OrderChangeError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
