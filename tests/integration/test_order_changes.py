"""Integration tests for customer address and shipping-method changes."""

import pytest
from services.orders_service.models import Order, OrderEvent, OrderStatus, Recipient
from sqlalchemy import select
from tests.factories import OrderFactory

PRODIGI_ID = "ord_70"
ACTIONS_PATH = f"/orders/{PRODIGI_ID}/actions"

NEW_ADDRESS = {
    "name": "Ada King",
    "address_line1": "14 Analytical Row",
    "address_line2": "Flat 2",
    "city": "London",
    "postal_code": "N1 9GU",
    "country_code": "gb",
}


async def _seed(db_session, **overrides) -> Order:
    defaults = {"prodigi_order_id": PRODIGI_ID, "prodigi_stage": "InProgress"}
    defaults.update(overrides)
    order = OrderFactory.create(**defaults)
    db_session.add(order)
    await db_session.commit()
    return order


async def _recipient(db_session, order_id: int) -> Recipient:
    result = await db_session.execute(
        select(Recipient)
        .where(Recipient.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _reload(db_session, order_id: int) -> Order:
    result = await db_session.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _allow(prodigi_api, action: str, available: str = "Yes", **extra) -> None:
    prodigi_api.respond(
        "GET",
        ACTIONS_PATH,
        200,
        {"outcome": "Ok", "actions": {action: {"isAvailable": available, **extra}}},
    )


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_updates_prodigi_and_local_recipient(
    client, db_session, prodigi_api
):
    order = await _seed(db_session)
    order_id, token = order.id, order.order_token
    _allow(prodigi_api, "changeRecipientDetails")
    prodigi_api.respond(
        "POST", f"{ACTIONS_PATH}/updateRecipient", 200, {"outcome": "Updated"}
    )

    response = await client.patch(
        f"/orders/{order_id}/address", params={"token": token}, json=NEW_ADDRESS
    )

    assert response.status_code == 200, response.text
    assert response.json() == {
        "success": True,
        "order_id": order_id,
        "message": "Shipping address updated successfully",
        "shipping_method": None,
        "refund_due": None,
    }

    [body] = prodigi_api.json_bodies("POST", f"{ACTIONS_PATH}/updateRecipient")
    assert body["recipient"]["name"] == "Ada King"
    assert body["recipient"]["address"]["line1"] == "14 Analytical Row"
    assert body["recipient"]["address"]["line2"] == "Flat 2"
    assert body["recipient"]["address"]["countryCode"] == "GB"
    # No email in the request keeps the one on file
    assert body["recipient"]["email"] == "ada@example.com"

    recipient = await _recipient(db_session, order_id)
    assert recipient.name == "Ada King"
    assert recipient.address_line1 == "14 Analytical Row"
    assert recipient.email == "ada@example.com"

    event = (await db_session.execute(select(OrderEvent))).scalar_one()
    assert event.source == "customer"
    assert event.event_type == "recipient.updated"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_cannot_move_postal_code(client, db_session, prodigi_api):
    order = await _seed(db_session)

    response = await client.patch(
        f"/orders/{order.id}/address",
        params={"token": order.order_token},
        json={**NEW_ADDRESS, "postal_code": "EC1A 1BB"},
    )

    assert response.status_code == 400
    assert "Cannot change postal/zip code" in response.json()["detail"]
    assert prodigi_api.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_blocked_once_in_production(
    client, db_session, prodigi_api
):
    order = await _seed(db_session)
    order_id, token = order.id, order.order_token
    _allow(prodigi_api, "changeRecipientDetails", available="No")

    response = await client.patch(
        f"/orders/{order_id}/address", params={"token": token}, json=NEW_ADDRESS
    )

    assert response.status_code == 409
    assert "may already be in production" in response.json()["detail"]
    assert prodigi_api.calls("POST", f"{ACTIONS_PATH}/updateRecipient") == []
    recipient = await _recipient(db_session, order_id)
    assert recipient.address_line1 == "12 Analytical Row"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_rejected_by_prodigi_is_bad_gateway(
    client, db_session, prodigi_api
):
    order = await _seed(db_session)
    order_id, token = order.id, order.order_token
    _allow(prodigi_api, "changeRecipientDetails")
    prodigi_api.respond(
        "POST", f"{ACTIONS_PATH}/updateRecipient", 400, {"outcome": "ValidationFailed"}
    )

    response = await client.patch(
        f"/orders/{order_id}/address", params={"token": token}, json=NEW_ADDRESS
    )

    assert response.status_code == 502
    recipient = await _recipient(db_session, order_id)
    assert recipient.name == "Ada Lovelace"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_requires_credentials(client, db_session, prodigi_api):
    order = await _seed(db_session)

    missing = await client.patch(f"/orders/{order.id}/address", json=NEW_ADDRESS)
    wrong = await client.patch(
        f"/orders/{order.id}/address",
        params={"email": "mallory@example.com"},
        json=NEW_ADDRESS,
    )

    assert missing.status_code == 400
    assert wrong.status_code == 404
    assert prodigi_api.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_address_change_on_unsent_order_is_bad_request(
    client, db_session, prodigi_api
):
    order = await _seed(db_session, prodigi_order_id=None)

    response = await client.patch(
        f"/orders/{order.id}/address",
        params={"token": order.order_token},
        json=NEW_ADDRESS,
    )

    assert response.status_code == 400
    assert prodigi_api.requests == []


# ---------------------------------------------------------------------------
# Shipping method
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shipping_downgrade_records_refund_due(client, db_session, prodigi_api):
    order = await _seed(db_session, shipping_method="Express")
    order_id, token = order.id, order.order_token
    _allow(prodigi_api, "changeShippingMethod")
    prodigi_api.respond(
        "POST", f"{ACTIONS_PATH}/updateShippingMethod", 200, {"outcome": "Ok"}
    )

    response = await client.patch(
        f"/orders/{order_id}/shipping",
        params={"token": token},
        json={"shipping_method": "Budget"},
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["shipping_method"] == "Budget"
    assert data["refund_due"] == 15.0
    assert "15.00 USD" in data["message"]

    [body] = prodigi_api.json_bodies("POST", f"{ACTIONS_PATH}/updateShippingMethod")
    assert body == {"shippingMethod": "Budget"}

    order = await _reload(db_session, order_id)
    assert order.shipping_method == "Budget"
    assert order.order_metadata["previousShippingMethod"] == "Express"
    assert order.order_metadata["shippingRefundDue"] == "15.00"
    assert "shippingMethodChangedAt" in order.order_metadata
    assert order.available_actions == {"changeShippingMethod": {"isAvailable": "Yes"}}

    event = (await db_session.execute(select(OrderEvent))).scalar_one()
    assert event.event_type == "shipping.updated"
    assert event.payload == {"from": "Express", "to": "Budget"}


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("method", ["Standard", "Express", "Overnight"])
async def test_shipping_upgrade_or_same_method_is_rejected(
    client, db_session, prodigi_api, method
):
    order = await _seed(db_session, shipping_method="Standard")

    response = await client.patch(
        f"/orders/{order.id}/shipping",
        params={"token": order.order_token},
        json={"shipping_method": method},
    )

    assert response.status_code == 400
    assert "Upgrades are not supported" in response.json()["detail"]
    assert prodigi_api.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_shipping_method_is_unprocessable(client, db_session):
    order = await _seed(db_session)

    response = await client.patch(
        f"/orders/{order.id}/shipping",
        params={"token": order.order_token},
        json={"shipping_method": "Teleport"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shipping_change_unavailable_uses_prodigi_reason(
    client, db_session, prodigi_api
):
    order = await _seed(db_session, shipping_method="Overnight")
    order_id, token = order.id, order.order_token
    _allow(
        prodigi_api,
        "changeShippingMethod",
        available="No",
        reason="Order has been dispatched",
    )

    response = await client.patch(
        f"/orders/{order_id}/shipping",
        params={"token": token},
        json={"shipping_method": "Standard"},
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "Order has been dispatched"
    order = await _reload(db_session, order_id)
    assert order.shipping_method == "Overnight"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shipping_change_on_canceled_order_is_conflict(
    client, db_session, prodigi_api
):
    order = await _seed(
        db_session, shipping_method="Express", status=OrderStatus.CANCELED
    )

    response = await client.patch(
        f"/orders/{order.id}/shipping",
        params={"token": order.order_token},
        json={"shipping_method": "Budget"},
    )

    assert response.status_code == 409
    assert prodigi_api.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shipping_change_when_prodigi_unreachable(
    client, db_session, prodigi_api
):
    order = await _seed(db_session, shipping_method="Express")
    prodigi_api.respond("GET", ACTIONS_PATH, 503, {"outcome": "Error"})

    response = await client.patch(
        f"/orders/{order.id}/shipping",
        params={"token": order.order_token},
        json={"shipping_method": "Budget"},
    )

    assert response.status_code == 502
