"""Admin order operations: manual status changes, cancellation, error trail."""

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.datetime_utils import utc_now, utc_now_iso
from libs.common.logging import get_logger
from services.orders_service.models import Order, OrderStatus
from services.orders_service.order_state import (
    OrderTransitionError,
    derive_prodigi_stage,
    ensure_transition,
)
from services.orders_service.prodigi_client import (
    ProdigiClient,
    ProdigiError,
    get_prodigi_client,
)
from services.orders_service.repository import OrderRepository, get_order_repository
from services.orders_service.schemas import (
    AdminOrderResponse,
    OrderEventLogResponse,
    OrderEventResponse,
    ProcessingErrorResponse,
    StatusUpdateRequest,
)

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])
logger = get_logger(__name__)


async def _get_order_or_404(
    repo: OrderRepository, order_id: int, *, for_update: bool = False
) -> Order:
    order = await repo.get_order(order_id, for_update=for_update)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Order not found"
        )
    return order


def _stamp_status(order: Order, target: OrderStatus, extra: dict = None) -> None:
    metadata = dict(order.order_metadata or {})
    if target == OrderStatus.COMPLETED:
        metadata["completedAt"] = utc_now_iso()
    elif target == OrderStatus.CANCELED:
        metadata["cancelledAt"] = utc_now_iso()
    metadata.update(extra or {})
    order.order_metadata = metadata
    order.status = target


@router.get("/{order_id}", response_model=AdminOrderResponse)
async def get_order(
    order_id: int,
    current_user: AuthUser = Depends(require_admin),
    repo: OrderRepository = Depends(get_order_repository),
):
    return await _get_order_or_404(repo, order_id)


@router.patch("/{order_id}/status", response_model=AdminOrderResponse)
async def update_order_status(
    order_id: int,
    payload: StatusUpdateRequest,
    current_user: AuthUser = Depends(require_admin),
    repo: OrderRepository = Depends(get_order_repository),
):
    """Manually move an order along the status state machine."""
    order = await _get_order_or_404(repo, order_id, for_update=True)
    previous = order.status

    try:
        ensure_transition(previous, payload.status)
    except OrderTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if previous == payload.status:
        return order

    _stamp_status(order, payload.status)
    repo.record_event(
        order.id,
        source="admin",
        event_type=f"status.{payload.status.value.lower()}",
        payload={
            "from": previous.value,
            "to": payload.status.value,
            "note": payload.note,
            "by": current_user.email or current_user.user_id,
        },
    )
    await repo.commit()

    logger.info(
        f"Order {order.id} status set to {payload.status.value} by admin",
        extra={"extra_fields": {"order_id": order.id, "admin": current_user.user_id}},
    )
    return order


@router.post("/{order_id}/cancel", response_model=AdminOrderResponse)
async def cancel_order(
    order_id: int,
    current_user: AuthUser = Depends(require_admin),
    repo: OrderRepository = Depends(get_order_repository),
    prodigi_client: ProdigiClient = Depends(get_prodigi_client),
):
    """
    Cancel an order at Prodigi (while it is still cancellable) and locally.

    Refunds are handled manually in the Stripe dashboard.
    """
    order = await _get_order_or_404(repo, order_id, for_update=True)
    if order.status == OrderStatus.CANCELED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Order is already canceled"
        )

    if order.prodigi_order_id:
        try:
            actions = await prodigi_client.get_actions(order.prodigi_order_id)
            order.available_actions = actions
            order.last_action_check = utc_now()

            if (actions.get("cancel") or {}).get("isAvailable") != "Yes":
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Order can no longer be cancelled at the print provider",
                )

            await prodigi_client.cancel_order(order.prodigi_order_id)
        except ProdigiError as e:
            logger.error(
                f"Prodigi cancellation failed for order {order.id}: {e.message}",
                extra={
                    "extra_fields": {"order_id": order.id, "status_code": e.status_code}
                },
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Print provider rejected the cancellation request",
            )

    _stamp_status(order, OrderStatus.CANCELED, {"cancellationSource": "admin"})
    repo.record_event(
        order.id,
        source="admin",
        event_type="order.cancelled",
        payload={"by": current_user.email or current_user.user_id},
    )
    await repo.commit()

    logger.info(
        f"Order {order.id} cancelled by admin",
        extra={"extra_fields": {"order_id": order.id, "admin": current_user.user_id}},
    )
    return order


@router.get("/{order_id}/errors", response_model=list[ProcessingErrorResponse])
async def list_order_errors(
    order_id: int,
    current_user: AuthUser = Depends(require_admin),
    repo: OrderRepository = Depends(get_order_repository),
):
    """Processing errors for an order, newest first."""
    await _get_order_or_404(repo, order_id)
    return await repo.list_processing_errors(order_id)


@router.get("/{order_id}/events", response_model=OrderEventLogResponse)
async def list_order_events(
    order_id: int,
    current_user: AuthUser = Depends(require_admin),
    repo: OrderRepository = Depends(get_order_repository),
):
    """The order's provider/admin event log and the stage derived from it."""
    order = await _get_order_or_404(repo, order_id)
    events = await repo.list_events(order_id)
    return OrderEventLogResponse(
        order_id=order.id,
        current_stage=derive_prodigi_stage(events, fallback=order.prodigi_stage),
        events=[OrderEventResponse.model_validate(e) for e in events],
    )
