"""Prodigi callback endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from services.orders_service.repository import OrderRepository, get_order_repository
from services.orders_service.services import (
    WebhookValidationError,
    process_prodigi_webhook,
)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/prodigi")
async def prodigi_webhook(
    request: Request,
    repo: OrderRepository = Depends(get_order_repository),
):
    """
    Prodigi CloudEvents callback (no auth; the order id in ``subject`` must exist).

    400/404 only for malformed envelopes and unknown orders; everything else is
    acknowledged with 200.
    """
    raw = await request.body()
    try:
        ack = await process_prodigi_webhook(raw, repo)
    except WebhookValidationError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    return ack.model_dump(exclude_none=True)
