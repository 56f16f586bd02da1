"""
Prodigi Print API client.

Provides async methods for:
- Creating print orders
- Checking which actions (cancel, change recipient, ...) are still available
- Cancelling orders
- Changing the recipient address or shipping method
"""

from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class ProdigiError(Exception):
    """Base exception for Prodigi API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


class ProdigiClient:
    """Async client for the Prodigi v4 Orders API."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        callback_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.PRODIGI_API_KEY
        self.base_url = (base_url or settings.PRODIGI_API_URL).rstrip("/")
        self.callback_url = callback_url or settings.prodigi_callback_url
        self.timeout = timeout or settings.PRODIGI_TIMEOUT_SECONDS
        self._transport = transport
        self._headers = {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def api_key_length(self) -> int:
        return len(self.api_key or "")

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict = None,
        headers: dict = None,
    ) -> dict:
        """Make an async request to the Prodigi API."""
        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method=method,
                url=url,
                headers={**self._headers, **(headers or {})},
                json=json_data,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.is_success:
            logger.error(f"Prodigi API error: {response.status_code} - {data}")
            raise ProdigiError(
                message=(
                    f"Prodigi request failed: {response.status_code} "
                    f"{response.reason_phrase}"
                    + (f" - {data}" if data else "")
                ),
                status_code=response.status_code,
                response_data=data,
            )

        return data

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_order(
        self, request: dict[str, Any], idempotency_key: str = None
    ) -> dict:
        """
        Create a print order.

        Every item must carry an asset URL; ``sizing`` defaults to
        ``fillPrintArea`` and ``callbackUrl`` to the configured webhook URL.

        Returns:
            The raw Prodigi response (``outcome`` plus ``order``)
        """
        items = []
        for item in request.get("items", []):
            assets = item.get("assets") or []
            if not assets or not assets[0].get("url"):
                raise ProdigiError(
                    f"Missing artwork URL for SKU: {item.get('sku')}"
                )
            items.append({**item, "sizing": item.get("sizing") or "fillPrintArea"})

        payload = {
            **request,
            "items": items,
            "callbackUrl": request.get("callbackUrl") or self.callback_url,
        }
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None

        return await self._request("POST", "/orders", json_data=payload, headers=headers)

    async def get_actions(self, prodigi_order_id: str) -> dict:
        """
        Which actions Prodigi still allows on an order.

        Returns:
            Mapping such as ``{"cancel": {"isAvailable": "Yes"}, ...}``
        """
        data = await self._request("GET", f"/orders/{prodigi_order_id}/actions")
        return data.get("actions") or {}

    async def cancel_order(self, prodigi_order_id: str) -> dict:
        """Cancel an order that has not entered production."""
        return await self._request("POST", f"/orders/{prodigi_order_id}/actions/cancel")

    async def update_recipient(
        self, prodigi_order_id: str, recipient: dict[str, Any]
    ) -> dict:
        """Replace the shipping recipient (``changeRecipientDetails`` action)."""
        return await self._request(
            "POST",
            f"/orders/{prodigi_order_id}/actions/updateRecipient",
            json_data={"recipient": recipient},
        )

    async def update_shipping_method(
        self, prodigi_order_id: str, shipping_method: str
    ) -> dict:
        """Switch the shipping method (``changeShippingMethod`` action)."""
        return await self._request(
            "POST",
            f"/orders/{prodigi_order_id}/actions/updateShippingMethod",
            json_data={"shippingMethod": shipping_method},
        )


def get_prodigi_client() -> ProdigiClient:
    """FastAPI dependency returning a ProdigiClient."""
    return ProdigiClient()
