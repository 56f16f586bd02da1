"""Order status state machine and Prodigi stage mapping.

Order.status only moves forward:

    PENDING   -> COMPLETED | CANCELED
    COMPLETED -> CANCELED        (cancelled at Prodigi or by support after payment)
    CANCELED  -> (terminal)

Same-state transitions are accepted as no-ops.
"""

from typing import Iterable, Optional

from libs.common.logging import get_logger
from services.orders_service.models import OrderEvent, OrderStatus, ProdigiStage

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.CANCELED}),
    OrderStatus.CANCELED: frozenset(),
}

_STAGE_TO_STATUS = {
    ProdigiStage.IN_PROGRESS.value: OrderStatus.PENDING,
    ProdigiStage.COMPLETE.value: OrderStatus.COMPLETED,
    ProdigiStage.CANCELLED.value: OrderStatus.CANCELED,
}


class OrderTransitionError(Exception):
    """Raised when a status change is not in the allowed-transition table."""

    def __init__(self, current: OrderStatus, target: OrderStatus):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move order from {current.value} to {target.value}"
        )


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(current, target):
        raise OrderTransitionError(current, target)


def map_prodigi_stage_to_status(stage: str) -> OrderStatus:
    """Map a Prodigi stage (InProgress/Complete/Cancelled) onto OrderStatus."""
    status = _STAGE_TO_STATUS.get(stage)
    if status is None:
        logger.warning("Unknown Prodigi stage %r, treating as PENDING", stage)
        return OrderStatus.PENDING
    return status


def derive_prodigi_stage(
    events: Iterable[OrderEvent], fallback: Optional[str] = None
) -> Optional[str]:
    """Latest provider stage in an event log (given in recording order), else ``fallback``."""
    stage = fallback
    for event in events:
        if event.stage:
            stage = event.stage
    return stage
