"""Tests for the HTTP API."""

from typing import Any
from uuid import uuid4

import pytest
from httpx import AsyncClient

from comanda.models.delivery import RestaurantDeliveryConfig
from comanda.state.restaurant import RestaurantConfigStore

ITEMS = [
    {"product_id": "bandeja", "name": "Bandeja paisa", "quantity": 1, "unit_price": 22000},
    {"product_id": "limonada", "name": "Limonada de coco", "quantity": 2, "unit_price": 4000},
]

CASHIER = {"X-Operator-Id": "cashier-1"}


async def create_dine_in(test_client: AsyncClient) -> dict[str, Any]:
    response = await test_client.post(
        "/api/v1/orders", json={"order_type": "dine_in", "items": ITEMS}
    )
    assert response.status_code == 201, response.text
    return response.json()["order"]


@pytest.mark.asyncio
async def test_health(test_client: AsyncClient) -> None:
    response = await test_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_quote_and_create_delivery_order(
    test_client: AsyncClient,
    configured_store: RestaurantConfigStore,
    delivery_config: RestaurantDeliveryConfig,
) -> None:
    quote_response = await test_client.post(
        "/api/v1/delivery/quote",
        json={"lat": delivery_config.origin_lat + 0.03, "lng": delivery_config.origin_lng},
    )
    assert quote_response.status_code == 200
    quote = quote_response.json()
    assert quote["out_of_coverage"] is False

    order_response = await test_client.post(
        "/api/v1/orders",
        json={
            "order_type": "delivery",
            "items": ITEMS,
            "delivery_quote": quote,
            "customer": {
                "name": "Laura Gómez",
                "phone": "3005550101",
                "address": "Calle 45 # 13-20",
            },
        },
    )

    assert order_response.status_code == 201
    order = order_response.json()["order"]
    assert order["subtotal"] == 30000
    assert order["delivery_fee"] == quote["total_cost"]
    assert order["status"] == "taken"


@pytest.mark.asyncio
async def test_edited_quote_is_rejected(
    test_client: AsyncClient,
    configured_store: RestaurantConfigStore,
    delivery_config: RestaurantDeliveryConfig,
) -> None:
    quote_response = await test_client.post(
        "/api/v1/delivery/quote",
        json={"lat": delivery_config.origin_lat + 0.03, "lng": delivery_config.origin_lng},
    )
    quote = {**quote_response.json(), "total_cost": 0, "excess_cost": 0, "base_cost": 0}

    response = await test_client.post(
        "/api/v1/orders",
        json={
            "order_type": "delivery",
            "items": ITEMS,
            "delivery_quote": quote,
            "customer": {"name": "Laura Gómez", "address": "Calle 45 # 13-20"},
        },
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "invalid_order"


@pytest.mark.asyncio
async def test_quote_out_of_coverage(
    test_client: AsyncClient, configured_store: RestaurantConfigStore
) -> None:
    response = await test_client.post("/api/v1/delivery/quote", json={"lat": 6.2442, "lng": -75.5812})

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "out_of_coverage"


@pytest.mark.asyncio
async def test_order_not_found(test_client: AsyncClient) -> None:
    response = await test_client.get(f"/api/v1/orders/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


@pytest.mark.asyncio
async def test_transition_and_settle(test_client: AsyncClient) -> None:
    order = await create_dine_in(test_client)
    order_id = order["id"]

    ready = await test_client.post(
        f"/api/v1/orders/{order_id}/transitions",
        json={"target_status": "ready"},
        headers={"X-Operator-Id": "cook-1"},
    )
    assert ready.status_code == 200
    assert ready.json()["order"]["status"] == "ready"

    settlement = await test_client.post(
        f"/api/v1/orders/{order_id}/settlement",
        json={"payment_method": "card", "tip_percentage": 10},
        headers=CASHIER,
    )
    assert settlement.status_code == 200, settlement.text
    receipt = settlement.json()["receipt"]
    assert receipt["final_total"] == 33000
    assert receipt["order"]["status"] == "delivered"

    again = await test_client.post(
        f"/api/v1/orders/{order_id}/settlement",
        json={"payment_method": "card"},
        headers=CASHIER,
    )
    assert again.status_code == 409
    assert again.json()["detail"]["kind"] == "already_settled"

    history = await test_client.get(f"/api/v1/orders/{order_id}/history")
    assert [h["to_status"] for h in history.json()] == ["taken", "ready", "delivered"]


@pytest.mark.asyncio
async def test_settlement_requires_operator(test_client: AsyncClient) -> None:
    order = await create_dine_in(test_client)

    response = await test_client.post(
        f"/api/v1/orders/{order['id']}/settlement", json={"payment_method": "cash"}
    )

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "missing_operator"


@pytest.mark.asyncio
async def test_illegal_transition_is_conflict(test_client: AsyncClient) -> None:
    order = await create_dine_in(test_client)

    response = await test_client.post(
        f"/api/v1/orders/{order['id']}/transitions", json={"target_status": "en_route"}
    )

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "illegal_transition"


@pytest.mark.asyncio
async def test_cancel_and_delete(test_client: AsyncClient) -> None:
    cancelled = await create_dine_in(test_client)
    deletable = await create_dine_in(test_client)

    cancel = await test_client.post(
        f"/api/v1/orders/{cancelled['id']}/cancel", json={"reason": "wrong table"}
    )
    delete_cancelled = await test_client.delete(f"/api/v1/orders/{cancelled['id']}")
    delete_taken = await test_client.delete(f"/api/v1/orders/{deletable['id']}")

    assert cancel.status_code == 200
    assert cancel.json()["order"]["status"] == "cancelled"
    assert delete_cancelled.status_code == 409
    assert delete_taken.status_code == 204


@pytest.mark.asyncio
async def test_status_snapshot(test_client: AsyncClient) -> None:
    order = await create_dine_in(test_client)

    response = await test_client.get(f"/api/v1/orders/{order['id']}/status")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "taken"
    assert body["can_cancel"] is True
    assert body["tracking_finished"] is False


@pytest.mark.asyncio
async def test_tip_registration(test_client: AsyncClient) -> None:
    order = await create_dine_in(test_client)
    await test_client.post(
        f"/api/v1/orders/{order['id']}/transitions", json={"target_status": "ready"}
    )
    settlement = await test_client.post(
        f"/api/v1/orders/{order['id']}/settlement",
        json={"payment_method": "cash"},
        headers=CASHIER,
    )
    payment_id = settlement.json()["receipt"]["payment"]["id"]

    first = await test_client.post(f"/api/v1/payments/{payment_id}/tip", json={"amount": 2000})
    second = await test_client.post(f"/api/v1/payments/{payment_id}/tip", json={"amount": 2000})

    assert first.status_code == 201
    assert first.json()["amount"] == 2000
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_customer_profile_and_active_order(test_client: AsyncClient) -> None:
    saved = await test_client.put(
        "/api/v1/customers/3104445566", json={"name": "Camilo", "address": "Cra 15 # 93-47"}
    )
    fetched = await test_client.get("/api/v1/customers/3104445566")
    no_order = await test_client.get("/api/v1/customers/3104445566/active-order")
    too_short = await test_client.put("/api/v1/customers/123", json={"name": "X"})

    assert saved.status_code == 200
    assert fetched.json()["name"] == "Camilo"
    assert no_order.status_code == 404
    assert too_short.status_code == 422
