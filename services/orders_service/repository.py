"""Database access for the reconciliation flows.

Handlers receive an ``OrderRepository`` through FastAPI dependency injection
instead of touching a module-level session, so tests can hand in any session.
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import Depends
from libs.common.datetime_utils import utc_now
from libs.db.session import get_async_db
from services.orders_service.models import (
    Log,
    LogLevel,
    Order,
    OrderEvent,
    OrderItem,
    OrderProcessingError,
    Payment,
    ProcessedWebhookEvent,
    Recipient,
    Shipment,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload


def _order_query():
    return select(Order).options(
        selectinload(Order.recipient),
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.shipments),
    )


class OrderRepository:
    """Order, shipment, error-log and event-ledger persistence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order(
        self, order_id: int, *, for_update: bool = False
    ) -> Optional[Order]:
        query = _order_query().where(Order.id == order_id)
        if for_update:
            query = query.with_for_update(of=Order)
        result = await self.db.execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_prodigi_id(
        self, prodigi_order_id: str, *, for_update: bool = False
    ) -> Optional[Order]:
        query = _order_query().where(Order.prodigi_order_id == prodigi_order_id)
        if for_update:
            query = query.with_for_update(of=Order)
        result = await self.db.execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def find_by_token(self, token: str) -> Optional[Order]:
        result = await self.db.execute(
            _order_query()
            .where(Order.order_token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_email_and_id(self, email: str, order_id: int) -> Optional[Order]:
        query = (
            _order_query()
            .join(Order.recipient)
            .where(
                Order.id == order_id,
                func.lower(Recipient.email) == email.strip().lower(),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_for_lookup(
        self,
        *,
        token: Optional[str] = None,
        email: Optional[str] = None,
        order_id: Optional[int] = None,
    ) -> Optional[Order]:
        """Guest lookup: by order token, or by recipient email plus order id."""
        if token:
            return await self.find_by_token(token)
        if email and order_id is not None:
            return await self.find_by_email_and_id(email, order_id)
        return None

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def get_payment_by_provider_id(
        self, provider_transaction_id: str
    ) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(
                Payment.provider_transaction_id == provider_transaction_id
            )
        )
        return result.scalar_one_or_none()

    def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        return payment

    # ------------------------------------------------------------------
    # Shipments
    # ------------------------------------------------------------------

    async def upsert_shipment(
        self, order_id: int, prodigi_shipment_id: str, **fields: Any
    ) -> tuple[Shipment, bool]:
        """Create or update the shipment keyed by Prodigi's shipment id.

        Returns ``(shipment, created)``.
        """
        result = await self.db.execute(
            select(Shipment).where(Shipment.prodigi_shipment_id == prodigi_shipment_id)
        )
        shipment = result.scalar_one_or_none()
        created = shipment is None
        if created:
            shipment = Shipment(
                order_id=order_id, prodigi_shipment_id=prodigi_shipment_id, **fields
            )
            self.db.add(shipment)
        else:
            for key, value in fields.items():
                setattr(shipment, key, value)
        await self.db.flush()
        return shipment, created

    # ------------------------------------------------------------------
    # Error trail
    # ------------------------------------------------------------------

    def add_processing_error(self, order_id: int, error: str) -> OrderProcessingError:
        row = OrderProcessingError(
            order_id=order_id,
            error=error,
            retry_count=0,
            last_attempt=utc_now(),
        )
        self.db.add(row)
        return row

    def add_log(
        self, level: LogLevel, message: str, metadata: Optional[dict] = None
    ) -> Log:
        row = Log(level=level, message=message, log_metadata=metadata)
        self.db.add(row)
        return row

    async def list_processing_errors(self, order_id: int) -> list[OrderProcessingError]:
        result = await self.db.execute(
            select(OrderProcessingError)
            .where(OrderProcessingError.order_id == order_id)
            .order_by(
                OrderProcessingError.last_attempt.desc(),
                OrderProcessingError.id.desc(),
            )
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Event log and dedup ledger
    # ------------------------------------------------------------------

    def record_event(
        self,
        order_id: int,
        *,
        source: str,
        event_type: str,
        event_id: Optional[str] = None,
        stage: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        payload: Optional[dict] = None,
    ) -> OrderEvent:
        event = OrderEvent(
            order_id=order_id,
            source=source,
            event_id=event_id,
            event_type=event_type,
            stage=stage,
            occurred_at=occurred_at,
            payload=payload,
        )
        self.db.add(event)
        return event

    async def list_events(self, order_id: int) -> list[OrderEvent]:
        result = await self.db.execute(
            select(OrderEvent)
            .where(OrderEvent.order_id == order_id)
            .order_by(OrderEvent.recorded_at, OrderEvent.id)
        )
        return list(result.scalars().all())

    async def is_event_processed(self, provider: str, event_id: str) -> bool:
        result = await self.db.execute(
            select(ProcessedWebhookEvent.id).where(
                ProcessedWebhookEvent.provider == provider,
                ProcessedWebhookEvent.event_id == event_id,
            )
        )
        return result.first() is not None

    def mark_event_processed(
        self, provider: str, event_id: str, order_id: Optional[int] = None
    ) -> ProcessedWebhookEvent:
        row = ProcessedWebhookEvent(
            provider=provider, event_id=event_id, order_id=order_id
        )
        self.db.add(row)
        return row

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()


def get_order_repository(
    db: AsyncSession = Depends(get_async_db),
) -> OrderRepository:
    """FastAPI dependency that wraps the request's session."""
    return OrderRepository(db)
