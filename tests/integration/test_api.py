"""
HTTP API: коды ответов, формат конвертов, camelCase
"""
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from craft_orders.config import settings
from craft_orders.main import app
from craft_orders.presentation.api import get_uow

BUYER = {"X-User-Id": "buyer-1", "X-User-Roles": "buyer"}
OTHER_BUYER = {"X-User-Id": "buyer-2", "X-User-Roles": "buyer"}
ARTISAN_A = {"X-User-Id": "artisan-a", "X-User-Roles": "artisan"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Roles": "admin"}

ORDER_BODY = {
    "items": [{"productId": "P", "quantity": 2}, {"productId": "Q", "quantity": 1}],
    "shippingAddress": {"line1": "12 Potter Street", "city": "Jaipur", "country": "IN"},
}


@pytest_asyncio.fixture
async def client(uow, catalog):
    app.dependency_overrides[get_uow] = lambda: uow
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _create(client, body=None, headers=BUYER):
    return await client.post("/api/orders", json=body or ORDER_BODY, headers=headers)


async def test_create_order(client, catalog):
    response = await _create(client)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Order created successfully"
    assert body["data"]["orderId"].startswith("ord_")
    assert body["data"]["orderNumber"].startswith("CC-")
    assert body["data"]["totalAmount"] == 250.0
    assert body["data"]["status"] == "pending"
    assert await catalog.stock("P") == 3


async def test_missing_identity_is_unauthorized(client):
    response = await client.post("/api/orders", json=ORDER_BODY)

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Authentication required"}


async def test_only_buyers_create_orders(client):
    response = await _create(client, headers=ARTISAN_A)

    assert response.status_code == 403
    assert response.json()["success"] is False


async def test_insufficient_stock_is_conflict(client, catalog):
    body = {"items": [{"productId": "Q", "quantity": 2}], "shippingAddress": {"city": "Jaipur"}}

    response = await _create(client, body)

    assert response.status_code == 409
    assert "Insufficient stock for product Q" in response.json()["message"]
    assert await catalog.stock("Q") == 1


async def test_unknown_product_is_not_found(client):
    body = {"items": [{"productId": "nope", "quantity": 1}], "shippingAddress": {"city": "Jaipur"}}

    response = await _create(client, body)

    assert response.status_code == 404
    assert response.json()["message"] == "Product nope not found or not available"


async def test_invalid_body_is_bad_request(client):
    body = {"items": [{"productId": "P", "quantity": 0}], "shippingAddress": {"city": "Jaipur"}}

    response = await _create(client, body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"].startswith("Validation failed")


async def test_get_order_uses_camel_case(client):
    order_id = (await _create(client)).json()["data"]["orderId"]

    response = await client.get(f"/api/orders/{order_id}", headers=BUYER)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["orderId"] == order_id
    assert data["orderStatus"] == "pending"
    assert data["paymentStatus"] == "pending"
    assert data["subtotal"] == 250.0
    assert data["items"][0]["productId"] == "P"
    assert data["items"][0]["artisanId"] == "artisan-b"
    assert data["billingAddress"] == data["shippingAddress"]
    assert data["productDetails"][0]["artisanName"] == "Artisan artisan-b"
    assert data["productDetails"][1]["artisanId"] == "artisan-a"


async def test_foreign_order_is_forbidden(client):
    order_id = (await _create(client)).json()["data"]["orderId"]

    response = await client.get(f"/api/orders/{order_id}", headers=OTHER_BUYER)

    assert response.status_code == 403


async def test_missing_order_is_not_found(client):
    response = await client.get("/api/orders/ord_0_missing00", headers=ADMIN)

    assert response.status_code == 404
    assert response.json()["message"] == "Order ord_0_missing00 not found"


async def test_list_orders_pagination(client):
    body = {"items": [{"productId": "P", "quantity": 1}], "shippingAddress": {"city": "Jaipur"}}
    for _ in range(3):
        await _create(client, body)

    response = await client.get("/api/orders", params={"limit": 2}, headers=BUYER)

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"limit": 2, "offset": 0, "hasMore": True}


async def test_list_orders_rejects_oversized_page(client):
    response = await client.get("/api/orders", params={"limit": 500}, headers=BUYER)

    assert response.status_code == 400


async def test_cancel_twice(client, catalog):
    order_id = (await _create(client)).json()["data"]["orderId"]

    first = await client.put(f"/api/orders/{order_id}/cancel", headers=BUYER)
    second = await client.put(f"/api/orders/{order_id}/cancel", headers=BUYER)

    assert first.status_code == 200
    assert first.json() == {"success": True, "message": "Order cancelled successfully"}
    assert second.status_code == 409
    assert second.json()["message"] == "Order cannot be cancelled at this stage"
    assert await catalog.stock("P") == 5


async def test_artisan_updates_status(client):
    order_id = (await _create(client)).json()["data"]["orderId"]

    response = await client.put(
        f"/api/orders/{order_id}/status",
        json={"status": "confirmed", "trackingNumber": "TRK-1"},
        headers=ARTISAN_A
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Order status updated successfully"
    assert body["data"]["status"] == "confirmed"
    assert body["data"]["trackingNumber"] == "TRK-1"


async def test_illegal_transition_is_conflict(client):
    order_id = (await _create(client)).json()["data"]["orderId"]

    response = await client.put(f"/api/orders/{order_id}/status", json={"status": "delivered"}, headers=ARTISAN_A)

    assert response.status_code == 409


async def test_unknown_status_value_is_bad_request(client):
    order_id = (await _create(client)).json()["data"]["orderId"]

    response = await client.put(f"/api/orders/{order_id}/status", json={"status": "lost"}, headers=ADMIN)

    assert response.status_code == 400


async def test_payment_callback_requires_api_key(client, monkeypatch):
    monkeypatch.setattr(settings, "API_TOKEN", "secret")
    order_id = (await _create(client)).json()["data"]["orderId"]
    callback = {"paymentId": "pay_1", "orderId": order_id, "status": "succeeded", "paymentMethod": "card"}

    rejected = await client.post("/api/orders/payment-callback", json=callback)
    accepted = await client.post("/api/orders/payment-callback", json=callback, headers={"X-API-Key": "secret"})

    assert rejected.status_code == 403
    assert accepted.status_code == 200
    order = (await client.get(f"/api/orders/{order_id}", headers=BUYER)).json()["data"]
    assert order["paymentStatus"] == "paid"
    assert order["orderStatus"] == "confirmed"


async def test_reconcile_as_admin(client):
    await _create(client)

    response = await client.post("/api/admin/aggregates/reconcile", headers=ADMIN)
    forbidden = await client.post("/api/admin/aggregates/reconcile", headers=BUYER)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["drift"] == []
    assert data["applied"] is False
    assert data["netSalesCount"] == {"P": 2, "Q": 1}
    assert forbidden.status_code == 403


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_payment_after_failure_is_conflict(client, catalog):
    order_id = (await _create(client)).json()["data"]["orderId"]
    failed = {"paymentId": "pay_1", "orderId": order_id, "status": "failed"}
    succeeded = {"paymentId": "pay_2", "orderId": order_id, "status": "succeeded"}

    await client.post("/api/orders/payment-callback", json=failed)
    response = await client.post("/api/orders/payment-callback", json=succeeded)

    assert response.status_code == 409
    order = (await client.get(f"/api/orders/{order_id}", headers=BUYER)).json()["data"]
    assert order["orderStatus"] == "cancelled"
    assert order["paymentStatus"] == "failed"
    assert await catalog.stock("P") == 5
