"""Checkout success page handler."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.orders_service.image_resolver import ImageResolver, get_image_resolver
from services.orders_service.prodigi_client import ProdigiClient, get_prodigi_client
from services.orders_service.repository import OrderRepository, get_order_repository
from services.orders_service.schemas import CheckoutSuccessResponse
from services.orders_service.services import CheckoutSessionError, finalize_checkout
from services.orders_service.stripe_client import (
    StripeCheckoutClient,
    get_payment_client,
)

router = APIRouter(prefix="/checkout", tags=["checkout"])
logger = get_logger(__name__)


@router.get("/success", response_model=CheckoutSuccessResponse)
async def checkout_success(
    session_id: Optional[str] = Query(default=None),
    repo: OrderRepository = Depends(get_order_repository),
    payment_client: Optional[StripeCheckoutClient] = Depends(get_payment_client),
    prodigi_client: ProdigiClient = Depends(get_prodigi_client),
    image_resolver: ImageResolver = Depends(get_image_resolver),
):
    """
    Landing endpoint after Stripe Checkout.

    Redirects to the storefront home page when the session is missing or
    cannot be resolved.
    """
    try:
        return await finalize_checkout(
            session_id,
            repo=repo,
            payment_client=payment_client,
            prodigi_client=prodigi_client,
            image_resolver=image_resolver,
        )
    except CheckoutSessionError as e:
        logger.warning(f"Checkout success redirected home: {e}")
        return RedirectResponse(
            url=get_settings().PUBLIC_SITE_URL,
            status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        )
