"""
Stripe client for hosted checkout session retrieval.

Only the read side is needed here: after a customer returns from Stripe
Checkout, the session is resolved to learn whether it was paid, who paid,
and where the parcel should go.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import stripe
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class PaymentProviderError(Exception):
    """Raised when the payment provider cannot resolve a checkout session."""

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class CustomerAddress:
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


@dataclass
class CustomerDetails:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: CustomerAddress = field(default_factory=CustomerAddress)


@dataclass
class CheckoutSession:
    """The parts of a Stripe Checkout Session the finalizer relies on."""

    id: str
    payment_status: str
    metadata: dict[str, str] = field(default_factory=dict)
    currency: str = "usd"
    amount_total: int = 0  # minor units
    payment_intent_id: Optional[str] = None
    customer_details: CustomerDetails = field(default_factory=CustomerDetails)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def order_reference(self) -> Optional[str]:
        return self.metadata.get("orderId") or None

    @classmethod
    def from_stripe(cls, obj: Any) -> "CheckoutSession":
        details = _get(obj, "customer_details")
        # Shipping collected by Checkout wins over the billing address
        shipping = _get(obj, "shipping_details") or _get(obj, "collected_information")
        if shipping is not None and _get(shipping, "shipping_details") is not None:
            shipping = _get(shipping, "shipping_details")
        address = _get(shipping, "address") or _get(details, "address")

        payment_intent = _get(obj, "payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = _get(payment_intent, "id")

        return cls(
            id=_get(obj, "id"),
            payment_status=_get(obj, "payment_status") or "unpaid",
            metadata={k: str(v) for k, v in _as_dict(_get(obj, "metadata")).items()},
            currency=_get(obj, "currency") or "usd",
            amount_total=int(_get(obj, "amount_total") or 0),
            payment_intent_id=payment_intent,
            customer_details=CustomerDetails(
                name=_get(shipping, "name") or _get(details, "name"),
                email=_get(details, "email"),
                phone=_get(details, "phone"),
                address=CustomerAddress(
                    line1=_get(address, "line1"),
                    line2=_get(address, "line2"),
                    city=_get(address, "city"),
                    state=_get(address, "state"),
                    postal_code=_get(address, "postal_code"),
                    country=_get(address, "country"),
                ),
            ),
        )


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _as_dict(obj: Any) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return {}


class StripeCheckoutClient:
    """Async wrapper around the Stripe SDK's Checkout Session API."""

    def __init__(self, secret_key: Optional[str] = None):
        if secret_key is None:
            secret_key = get_settings().STRIPE_SECRET_KEY
        self.secret_key = secret_key
        if not self.secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required")

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        """
        Resolve a Checkout Session by id.

        Raises:
            PaymentProviderError: If Stripe rejects the lookup
        """
        try:
            session = await stripe.checkout.Session.retrieve_async(
                session_id,
                api_key=self.secret_key,
                expand=["payment_intent"],
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session lookup failed for {session_id}: {e}")
            raise PaymentProviderError(
                message=str(e) or "Stripe request failed",
                status_code=getattr(e, "http_status", None),
            ) from e

        return CheckoutSession.from_stripe(session)


def get_payment_client() -> Optional[StripeCheckoutClient]:
    """
    FastAPI dependency returning a StripeCheckoutClient.

    Returns None when no Stripe key is configured; callers treat that as an
    unresolvable session instead of failing the request.
    """
    if not get_settings().STRIPE_SECRET_KEY:
        logger.error("STRIPE_SECRET_KEY is not configured")
        return None
    return StripeCheckoutClient()
