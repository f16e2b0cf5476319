import json

from fastapi import status

from checkout.errors import GatewayUnavailable
from checkout.models import IdempotencyKey, Order


def test_create_order_prices_server_side(client, db, gateway, product_p1, create_order):
    response = create_order()

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == "order_abc"
    assert data["amount"] == 11000
    assert data["currency"] == "INR"
    assert data["calculatedTotals"] == {"subtotal": 100.0, "tax": 10.0, "shipping": 0.0, "total": 110.0}

    order = db.query(Order).filter(Order.id == data["firestoreOrderId"]).one()
    assert order.gateway_order_id == "order_abc"
    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert order.stock_reserved is True
    assert order.user_email == "buyer@example.com"
    assert order.items == [{"id": "p1", "quantity": 2, "price": "50.00", "name": "Ceramic Mug"}]

    db.refresh(product_p1)
    assert product_p1.stock == 8

    sent = gateway.created[0]
    assert sent["amount"] == 11000
    assert sent["notes"]["userId"] == "user_1"
    assert sent["notes"]["itemCount"] == 1
    assert sent["notes"]["requestHash"] == order.request_hash
    assert sent["receipt"].startswith("receipt_")


def test_create_order_guest_email_default(client, db, product_p1):
    response = client.post(
        "/create-order",
        json={"amount": 110, "items": [{"id": "p1", "quantity": 2}], "userId": "user_1"},
    )

    assert response.status_code == status.HTTP_200_OK
    order = db.query(Order).one()
    assert order.user_email == "guest@example.com"


def test_create_order_insufficient_stock(client, db, gateway, product_p1, create_order):
    product_p1.stock = 1
    db.commit()

    response = create_order()

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {
        "error": "Insufficient stock",
        "stockIssues": [{"productId": "p1", "name": "Ceramic Mug", "requested": 2, "available": 1}],
    }
    assert gateway.created == []
    assert db.query(Order).count() == 0


def test_create_order_amount_mismatch(client, db, gateway, product_p1, create_order):
    response = create_order(amount=109.0)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {
        "error": "Amount validation failed. Please refresh and try again.",
        "calculatedTotal": 110.0,
    }
    assert gateway.created == []
    db.refresh(product_p1)
    assert product_p1.stock == 10


def test_create_order_unknown_products(client, gateway, product_p1, create_order):
    response = create_order(items=[{"id": "p1", "quantity": 1}, {"id": "p9", "quantity": 1}, {"id": "p8", "quantity": 1}])

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Products not found: p8, p9", "missingProductIds": ["p8", "p9"]}
    assert gateway.created == []


def test_create_order_invalid_quantity(client, product_p1, create_order):
    response = create_order(items=[{"id": "p1", "quantity": 0}])

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid quantity for product p1"}


def test_create_order_rejects_malformed_body(client):
    response = client.post("/create-order", json={"amount": 10, "items": [], "userId": "user_1"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid request body"
    assert response.json()["details"]


def test_create_order_replays_stored_response(client, db, gateway, product_p1, create_order):
    first = create_order()
    second = create_order()

    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_200_OK
    assert second.text == first.text
    assert len(gateway.created) == 1
    assert db.query(Order).count() == 1
    assert db.query(IdempotencyKey).count() == 1
    db.refresh(product_p1)
    assert product_p1.stock == 8


def test_create_order_new_timestamp_is_new_order(client, db, gateway, product_p1, create_order):
    first = create_order(timestamp=1)
    second = create_order(timestamp=2)

    assert first.json()["id"] == "order_abc"
    assert second.json()["id"] == "order_abc2"
    assert db.query(Order).count() == 2
    db.refresh(product_p1)
    assert product_p1.stock == 6


def test_create_order_gateway_failure_reserves_nothing(client, db, gateway, product_p1, create_order):
    gateway.error = GatewayUnavailable("Razorpay order creation failed: timeout")

    response = create_order()

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"] == "Razorpay order creation failed: timeout"
    assert db.query(Order).count() == 0
    assert db.query(IdempotencyKey).count() == 0
    db.refresh(product_p1)
    assert product_p1.stock == 10


def test_create_order_unexpected_error(client, db, gateway, product_p1, create_order):
    gateway.error = RuntimeError("boom")

    response = create_order()

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to create order", "details": "boom"}


def test_server_errors_hide_details_in_production(client, gateway, product_p1, create_order, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    gateway.error = RuntimeError("boom")

    response = create_order()

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to create order"}


def test_get_order(client, product_p1, create_order):
    order_id = create_order().json()["firestoreOrderId"]

    response = client.get(f"/orders/{order_id}")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == order_id
    assert data["gateway_order_id"] == "order_abc"
    assert data["status"] == "pending"
    assert data["total"] == 110.0
    assert data["items"][0]["id"] == "p1"


def test_get_order_not_found(client):
    response = client.get("/orders/missing")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Order not found"}


def test_list_orders_for_user(client, product_p1, create_order):
    create_order(timestamp=1)
    create_order(timestamp=2)
    create_order(timestamp=3, user_id="user_2", items=[{"id": "p1", "quantity": 2}])

    response = client.get("/orders", params={"userId": "user_1"})

    assert response.status_code == status.HTTP_200_OK
    assert {order["gateway_order_id"] for order in response.json()} == {"order_abc", "order_abc2"}


def test_list_orders_requires_user(client):
    response = client.get("/orders")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_cancel_pending_order_releases_stock(client, db, product_p1, create_order):
    order_id = create_order().json()["firestoreOrderId"]

    response = client.post(f"/orders/{order_id}/cancel")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "cancelled"
    assert response.json()["stock_reserved"] is False
    db.refresh(product_p1)
    assert product_p1.stock == 10

    again = client.post(f"/orders/{order_id}/cancel")
    assert again.status_code == status.HTTP_200_OK
    db.refresh(product_p1)
    assert product_p1.stock == 10


def test_confirm_requires_payment(client, product_p1, create_order):
    order_id = create_order().json()["firestoreOrderId"]

    response = client.post(f"/orders/{order_id}/confirm")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json() == {"error": "Cannot move order from pending to confirmed"}


def test_confirm_paid_order_then_cancel_is_rejected(client, db, product_p1, create_order, payment_signature):
    order_id = create_order().json()["firestoreOrderId"]
    client.post(
        "/verify-payment",
        json={
            "razorpay_order_id": "order_abc",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": payment_signature("order_abc", "pay_1"),
        },
    )

    confirmed = client.post(f"/orders/{order_id}/confirm")
    assert confirmed.status_code == status.HTTP_200_OK
    assert confirmed.json()["status"] == "confirmed"

    cancelled = client.post(f"/orders/{order_id}/cancel")
    assert cancelled.status_code == status.HTTP_409_CONFLICT
    db.refresh(product_p1)
    assert product_p1.stock == 8


def test_create_order_response_is_json_text(client, product_p1, create_order):
    response = create_order()

    assert response.headers["content-type"] == "application/json"
    assert json.loads(response.text)["firestoreOrderId"]
