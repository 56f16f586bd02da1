"""Prodigi webhook processing.

Prodigi delivers order lifecycle callbacks as CloudEvents 1.0 envelopes::

    {
        "specversion": "1.0",
        "type": "com.prodigi.order.status.stage.changed#Complete",
        "id": "evt_...",
        "time": "2024-05-01T10:00:00Z",
        "subject": "ord_1469466",
        "data": {"order": {"status": {...}, "shipments": [...]}}
    }

Malformed envelopes are rejected with 400 and unknown orders with 404. Once an
envelope is accepted, every outcome is acknowledged with 200 so Prodigi does
not redeliver a half-processed event. That includes an unusable ``data.order``
body, which is only inspected after the order has been found.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

from libs.common.datetime_utils import parse_iso_datetime, utc_now, utc_now_iso
from libs.common.logging import get_logger
from pydantic import ValidationError
from services.orders_service.models import Order, OrderStatus
from services.orders_service.order_state import (
    can_transition,
    map_prodigi_stage_to_status,
)
from services.orders_service.repository import OrderRepository
from services.orders_service.schemas import (
    ProdigiIssue,
    ProdigiOrderPayload,
    ProdigiShipment,
    ProdigiWebhookAck,
)

logger = get_logger(__name__)

PROVIDER = "prodigi"
CLOUDEVENTS_VERSION = "1.0"
STAGE_CHANGE_PATH = "order.status.stage.changed"

_EVENT_TYPE = re.compile(r"^com\.prodigi\.(.+?)#(.+)$")


@dataclass(frozen=True)
class EventTypeInfo:
    object: str
    path: str
    value: str
    is_stage_change: bool
    is_shipment: bool


class WebhookValidationError(Exception):
    """Envelope rejected before any processing."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


@dataclass
class ProdigiEvent:
    """A validated envelope. ``order_data`` is the untouched ``data.order`` value."""

    id: Optional[str]
    type: str
    time: Optional[str]
    subject: str
    info: EventTypeInfo
    order_data: Any
    raw: dict[str, Any]

    @property
    def raw_status(self) -> Optional[dict]:
        if isinstance(self.order_data, dict):
            return self.order_data.get("status")
        return None


def parse_event_type(event_type: Any) -> Optional[EventTypeInfo]:
    """
    Split a Prodigi event type into its parts.

    ``com.prodigi.order.status.stage.changed#InProgress`` gives object
    ``order``, path ``order.status.stage.changed`` and value ``InProgress``.
    """
    if not isinstance(event_type, str):
        return None
    match = _EVENT_TYPE.match(event_type)
    if not match:
        return None
    path, value = match.group(1), match.group(2)
    return EventTypeInfo(
        object=path.split(".")[0],
        path=path,
        value=value,
        is_stage_change=path == STAGE_CHANGE_PATH,
        is_shipment="shipment" in path,
    )


def parse_envelope(raw_body: bytes) -> ProdigiEvent:
    """
    Validate a raw webhook body.

    Raises:
        WebhookValidationError: 400 for any malformed envelope
    """
    try:
        payload = json.loads(raw_body or b"")
    except ValueError:
        raise WebhookValidationError(400, "Invalid JSON payload")
    if not isinstance(payload, dict):
        raise WebhookValidationError(400, "Invalid JSON payload")

    if payload.get("specversion") != CLOUDEVENTS_VERSION:
        logger.error(f"Invalid CloudEvents version: {payload.get('specversion')}")
        raise WebhookValidationError(400, "Invalid CloudEvents version")

    info = parse_event_type(payload.get("type"))
    if info is None:
        logger.error(f"Invalid event type format: {payload.get('type')}")
        raise WebhookValidationError(400, "Invalid event type format")

    subject = payload.get("subject")
    if not isinstance(subject, str) or not subject.startswith("ord_"):
        logger.error(f"Invalid order ID in subject: {subject}")
        raise WebhookValidationError(400, "Invalid order ID in subject")

    data = payload.get("data")
    event_id = payload.get("id")
    return ProdigiEvent(
        id=str(event_id) if event_id else None,
        type=payload["type"],
        time=payload.get("time"),
        subject=subject,
        info=info,
        order_data=data.get("order") if isinstance(data, dict) else None,
        raw=payload,
    )


def parse_order_payload(event: ProdigiEvent) -> ProdigiOrderPayload:
    """
    Validate the ``data.order`` body of an accepted envelope.

    Null collections (``shipments``, ``issues``, ``details``) are read as empty.

    Raises:
        ValueError: when the order body is missing or does not validate
    """
    if not isinstance(event.order_data, dict):
        raise ValueError("Missing order payload")
    try:
        return ProdigiOrderPayload.model_validate(event.order_data)
    except ValidationError as e:
        raise ValueError(f"Invalid order payload: {e.error_count()} error(s)") from e


async def process_prodigi_webhook(
    raw_body: bytes, repo: OrderRepository
) -> ProdigiWebhookAck:
    """
    Fold one Prodigi callback into the local order.

    Raises:
        WebhookValidationError: 400 for malformed envelopes, 404 for unknown orders
    """
    event = parse_envelope(raw_body)
    raw_status = event.raw_status if isinstance(event.raw_status, dict) else {}
    logger.info(
        f"Received Prodigi event {event.type}",
        extra={
            "extra_fields": {
                "event_id": event.id,
                "subject": event.subject,
                "stage": raw_status.get("stage"),
                "details": raw_status.get("details"),
            }
        },
    )

    if event.id and await repo.is_event_processed(PROVIDER, event.id):
        logger.info(f"Prodigi event {event.id} already processed, skipping")
        return ProdigiWebhookAck(eventId=event.id, eventType=event.type, duplicate=True)

    order = await repo.get_by_prodigi_id(event.subject, for_update=True)
    if order is None:
        logger.error(f"Order not found for Prodigi order {event.subject}")
        raise WebhookValidationError(404, "Order not found")

    order_id = order.id
    try:
        payload = parse_order_payload(event)
        await _apply_event(repo, order, event, payload)
        await repo.commit()
    except Exception as e:
        await repo.rollback()
        logger.exception(
            f"Error processing Prodigi webhook for order {order_id}",
            extra={"extra_fields": {"order_id": order_id, "event_id": event.id}},
        )
        return ProdigiWebhookAck(error="Failed to process webhook", details=str(e))

    logger.info(
        f"Order {order_id} updated from Prodigi event {event.id}",
        extra={"extra_fields": {"order_id": order_id, "status": order.status.value}},
    )
    return ProdigiWebhookAck(
        orderId=order_id,
        eventId=event.id,
        eventType=event.type,
        stage=payload.status.stage,
        updated=True,
    )


async def _apply_event(
    repo: OrderRepository,
    order: Order,
    event: ProdigiEvent,
    payload: ProdigiOrderPayload,
) -> None:
    now_iso = utc_now_iso()
    metadata = {
        **(order.order_metadata or {}),
        "lastProdigiWebhookId": event.id,
        "lastProdigiWebhookTime": event.time,
        "lastProdigiWebhookType": event.type,
        "prodigiStatus": event.raw_status,
    }

    stage = event.info.value if event.info.is_stage_change else payload.status.stage

    if event.info.is_stage_change:
        _apply_stage_change(order, event, metadata, now_iso)

    if stage:
        order.prodigi_stage = stage

    repo.record_event(
        order.id,
        source=PROVIDER,
        event_type=event.type,
        event_id=event.id,
        stage=stage,
        occurred_at=parse_iso_datetime(event.time),
        payload=event.raw,
    )

    if payload.shipments:
        await _apply_shipments(repo, order, payload.shipments, metadata)

    if payload.status.issues:
        _apply_issues(repo, order, payload.status.issues, metadata, now_iso)

    order.order_metadata = metadata
    if event.id:
        repo.mark_event_processed(PROVIDER, event.id, order.id)


def _apply_stage_change(
    order: Order, event: ProdigiEvent, metadata: dict, now_iso: str
) -> None:
    current = order.status
    target = map_prodigi_stage_to_status(event.info.value)

    if current != target and not can_transition(current, target):
        logger.warning(
            f"Ignoring Prodigi stage {event.info.value} for order {order.id}: "
            f"{current.value} -> {target.value} is not allowed",
            extra={"extra_fields": {"order_id": order.id, "event_id": event.id}},
        )
        metadata["ignoredTransitions"] = [
            *metadata.get("ignoredTransitions", []),
            {
                "eventId": event.id,
                "stage": event.info.value,
                "from": current.value,
                "to": target.value,
                "at": now_iso,
            },
        ]
        return

    if current != target:
        logger.info(
            f"Order {order.id} stage changed: {current.value} -> {target.value}",
            extra={
                "extra_fields": {"order_id": order.id, "prodigi_stage": event.info.value}
            },
        )
        order.status = target

    # Terminal stages are stamped even when the status was already set locally
    if target == OrderStatus.COMPLETED:
        metadata["completedAt"] = now_iso
    elif target == OrderStatus.CANCELED:
        metadata["cancelledAt"] = now_iso


async def _apply_shipments(
    repo: OrderRepository,
    order: Order,
    shipments: list[ProdigiShipment],
    metadata: dict,
) -> None:
    logger.info(
        f"{len(shipments)} shipment(s) received for order {order.id}",
        extra={"extra_fields": {"order_id": order.id}},
    )
    metadata["shipments"] = [
        {
            "id": shipment.id,
            "carrier": shipment.carrier.name if shipment.carrier else None,
            "service": shipment.carrier.service if shipment.carrier else None,
            "trackingNumber": shipment.tracking.number if shipment.tracking else None,
            "trackingUrl": shipment.tracking.url if shipment.tracking else None,
            "dispatchDate": shipment.dispatchDate,
            "itemIds": [item.get("id") for item in shipment.items],
        }
        for shipment in shipments
    ]

    for shipment in shipments:
        carrier = shipment.carrier
        tracking = shipment.tracking
        _, created = await repo.upsert_shipment(
            order.id,
            shipment.id,
            carrier=(carrier.name if carrier else None) or "Unknown",
            service=(carrier.service if carrier else None) or "Standard",
            tracking_number=tracking.number if tracking else None,
            tracking_url=tracking.url if tracking else None,
            shipped_at=parse_iso_datetime(shipment.dispatchDate) or utc_now(),
            items=shipment.items,
        )
        logger.info(
            f"Shipment {shipment.id} {'created' if created else 'updated'} "
            f"for order {order.id}"
        )


def _apply_issues(
    repo: OrderRepository,
    order: Order,
    issues: list[ProdigiIssue],
    metadata: dict,
    now_iso: str,
) -> None:
    logger.warning(
        f"Order {order.id} has {len(issues)} Prodigi issue(s)",
        extra={"extra_fields": {"order_id": order.id}},
    )
    metadata["issues"] = [
        {
            "objectId": issue.objectId,
            "errorCode": issue.errorCode,
            "description": issue.description,
            "timestamp": now_iso,
            "authorisationDetails": issue.authorisationDetails,
        }
        for issue in issues
    ]

    for issue in issues:
        code = issue.errorCode or ""
        if "Failed" in code or "Error" in code:
            logger.error(
                f"Critical Prodigi issue on order {order.id}: {issue.errorCode}",
                extra={
                    "extra_fields": {
                        "order_id": order.id,
                        "error_code": issue.errorCode,
                        "description": issue.description,
                    }
                },
            )
            repo.add_processing_error(
                order.id, f"{issue.errorCode}: {issue.description}"
            )
