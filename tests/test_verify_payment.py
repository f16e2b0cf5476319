from fastapi import status

from checkout.models import Order


def _verify(client, order_id="order_abc", payment_id="pay_1", signature="forged"):
    return client.post(
        "/verify-payment",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        },
    )


def test_verify_payment_success(client, db, product_p1, create_order, payment_signature):
    create_order()

    response = _verify(client, signature=payment_signature("order_abc", "pay_1"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"verified": True, "orderId": "order_abc", "paymentId": "pay_1"}
    order = db.query(Order).one()
    assert order.status == "processing"
    assert order.payment_status == "completed"
    assert order.gateway_payment_id == "pay_1"
    assert order.verified_at is not None
    assert order.paid_at is not None
    db.refresh(product_p1)
    assert product_p1.stock == 8


def test_verify_payment_forged_signature_fails_order(client, db, product_p1, create_order):
    create_order()

    response = _verify(client, signature="forged")

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"verified": False, "error": "Payment verification failed"}
    order = db.query(Order).one()
    assert order.status == "failed"
    assert order.payment_status == "failed"
    assert order.failure_reason == "Signature verification failed"
    assert order.stock_reserved is False
    db.refresh(product_p1)
    assert product_p1.stock == 10


def test_verify_payment_repeated_forgery_releases_once(client, db, product_p1, create_order):
    create_order()

    _verify(client, signature="forged")
    _verify(client, signature="forged-again")

    db.refresh(product_p1)
    assert product_p1.stock == 10


def test_verify_payment_is_idempotent(client, db, product_p1, create_order, payment_signature):
    create_order()
    signature = payment_signature("order_abc", "pay_1")

    first = _verify(client, signature=signature)
    second = _verify(client, signature=signature)

    assert first.status_code == second.status_code == status.HTTP_200_OK
    order = db.query(Order).one()
    assert order.status == "processing"
    db.refresh(product_p1)
    assert product_p1.stock == 8


def test_forged_signature_cannot_undo_payment(client, db, product_p1, create_order, payment_signature):
    create_order()
    _verify(client, signature=payment_signature("order_abc", "pay_1"))

    response = _verify(client, signature="forged")

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    order = db.query(Order).one()
    assert order.status == "processing"
    assert order.payment_status == "completed"
    db.refresh(product_p1)
    assert product_p1.stock == 8


def test_verify_payment_unknown_order_still_verifies(client, db, payment_signature):
    response = _verify(client, order_id="order_missing", signature=payment_signature("order_missing", "pay_1"))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["verified"] is True
    assert db.query(Order).count() == 0


def test_verify_payment_missing_fields(client):
    response = client.post("/verify-payment", json={"razorpay_order_id": "order_abc"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing required payment verification fields"}


def test_verify_payment_without_key_secret(client, gateway):
    gateway.key_secret = ""

    response = _verify(client, signature="anything")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert "RAZORPAY_KEY_SECRET" in response.json()["error"]


def test_forged_signature_on_cancelled_order(client, db, product_p1, create_order):
    order_id = create_order().json()["firestoreOrderId"]
    client.post(f"/orders/{order_id}/cancel")

    response = _verify(client, signature="forged")

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"verified": False, "error": "Payment verification failed"}
    order = db.query(Order).one()
    assert order.status == "cancelled"
    assert order.payment_status == "pending"
    db.refresh(product_p1)
    assert product_p1.stock == 10
