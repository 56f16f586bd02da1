from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.orders_service.models import OrderStatus

SUPPORT_NOTICE = (
    "Your payment was received, but we hit a problem sending your order to "
    "production. Our support team has been notified and will resolve it shortly."
)


# --- Checkout ---


class CheckoutSuccessResponse(BaseModel):
    status: Literal["success", "pending"]
    payment_status: str
    order_id: Optional[int] = None
    order_status: Optional[OrderStatus] = None
    prodigi_order_id: Optional[str] = None
    fulfillment_issue: bool = False
    message: str
    support_notice: Optional[str] = None


# --- Prodigi webhook envelope ---


class ProdigiShipmentCarrier(BaseModel):
    name: Optional[str] = None
    service: Optional[str] = None


class ProdigiShipmentTracking(BaseModel):
    number: Optional[str] = None
    url: Optional[str] = None


class ProdigiShipment(BaseModel):
    id: str
    carrier: Optional[ProdigiShipmentCarrier] = None
    tracking: Optional[ProdigiShipmentTracking] = None
    dispatchDate: Optional[str] = None
    items: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("items", mode="before")
    @classmethod
    def _null_items(cls, v):
        return [] if v is None else v


class ProdigiIssue(BaseModel):
    objectId: Optional[str] = None
    errorCode: Optional[str] = None
    description: Optional[str] = None
    authorisationDetails: Optional[dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class ProdigiOrderStatus(BaseModel):
    stage: Optional[str] = None
    issues: list[ProdigiIssue] = Field(default_factory=list)
    # downloadAssets / printReadyAssetsPrepared / allocateProductionLocation /
    # inProduction / shipping -> NotStarted | InProgress | Complete | Error
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @field_validator("issues", mode="before")
    @classmethod
    def _null_issues(cls, v):
        return [] if v is None else v

    @field_validator("details", mode="before")
    @classmethod
    def _null_details(cls, v):
        if v is None:
            return {}
        if isinstance(v, dict):
            return {key: value for key, value in v.items() if value is not None}
        return v


class ProdigiOrderPayload(BaseModel):
    id: Optional[str] = None
    created: Optional[str] = None
    status: ProdigiOrderStatus = Field(default_factory=ProdigiOrderStatus)
    shipments: list[ProdigiShipment] = Field(default_factory=list)
    merchantReference: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("status", mode="before")
    @classmethod
    def _null_status(cls, v):
        return {} if v is None else v

    @field_validator("shipments", mode="before")
    @classmethod
    def _null_shipments(cls, v):
        return [] if v is None else v


class ProdigiWebhookAck(BaseModel):
    received: bool = True
    orderId: Optional[int] = None
    eventId: Optional[str] = None
    eventType: Optional[str] = None
    stage: Optional[str] = None
    updated: Optional[bool] = None
    duplicate: Optional[bool] = None
    error: Optional[str] = None
    details: Optional[str] = None


# --- Customer order lookup ---


class RecipientSummary(BaseModel):
    name: str
    email: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country_code: str

    model_config = ConfigDict(from_attributes=True)


class ShipmentResponse(BaseModel):
    prodigi_shipment_id: str
    carrier: str
    service: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderItemSummary(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    copies: int
    price: float
    attributes: Optional[dict] = None


class OrderLookupResponse(BaseModel):
    id: int
    created_at: datetime
    total_price: float
    currency: str
    status: OrderStatus
    prodigi_order_id: Optional[str] = None
    prodigi_stage: Optional[str] = None
    shipping_method: str
    recipient: Optional[RecipientSummary] = None
    shipments: list[ShipmentResponse] = Field(default_factory=list)
    items: list[OrderItemSummary] = Field(default_factory=list)


class OrderActionsResponse(BaseModel):
    order_id: int
    prodigi_order_id: str
    actions: dict[str, Any]
    last_action_check: datetime


ShippingMethodName = Literal["Budget", "Standard", "Express", "Overnight"]


class AddressUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: str = Field(min_length=1, max_length=20)
    country_code: str = Field(min_length=2, max_length=2)

    @field_validator("country_code")
    @classmethod
    def _upper_country(cls, v: str) -> str:
        return v.upper()


class ShippingUpdateRequest(BaseModel):
    shipping_method: ShippingMethodName


class OrderChangeResponse(BaseModel):
    success: bool = True
    order_id: int
    message: str
    shipping_method: Optional[str] = None
    refund_due: Optional[float] = None


# --- Admin ---


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=500)


class AdminOrderResponse(BaseModel):
    id: int
    status: OrderStatus
    prodigi_order_id: Optional[str] = None
    prodigi_stage: Optional[str] = None
    order_metadata: Optional[dict] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProcessingErrorResponse(BaseModel):
    id: int
    order_id: int
    error: str
    retry_count: int
    last_attempt: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderEventResponse(BaseModel):
    id: int
    order_id: int
    source: str
    event_id: Optional[str] = None
    event_type: str
    stage: Optional[str] = None
    occurred_at: Optional[datetime] = None
    recorded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderEventLogResponse(BaseModel):
    order_id: int
    current_stage: Optional[str] = None
    events: list[OrderEventResponse] = Field(default_factory=list)
