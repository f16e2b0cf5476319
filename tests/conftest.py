import hashlib
import hmac
import json
import os
from decimal import Decimal
from typing import Callable, Generator

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ENVIRONMENT"] = "test"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_whsec_test"
os.environ["REQUEST_ID_SECRET"] = "test-request-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from checkout.config import settings
from checkout.dependencies import ServiceContext, get_gateway
from checkout.main import app
from checkout.models.database import Base, get_db
from checkout.models.product import Product
from checkout.services.razorpay_gateway import RazorpayGateway

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGateway(RazorpayGateway):
    """Razorpay boundary without the network: remote orders are fabricated,
    signature checks are the real ones."""

    def __init__(self):
        super().__init__(
            key_id=os.environ["RAZORPAY_KEY_ID"],
            key_secret=os.environ["RAZORPAY_KEY_SECRET"],
            webhook_secret=os.environ["RAZORPAY_WEBHOOK_SECRET"],
        )
        self.created: list[dict] = []
        self.error: Exception | None = None

    def create_remote_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> dict:
        if self.error is not None:
            raise self.error
        self.created.append(
            {"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes}
        )
        order_id = "order_abc" if len(self.created) == 1 else f"order_abc{len(self.created)}"
        return {
            "id": order_id,
            "entity": "order",
            "amount": amount_minor,
            "amount_paid": 0,
            "amount_due": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
            "attempts": 0,
            "notes": {key: str(value) for key, value in notes.items()},
            "created_at": 1760000000,
        }


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def ctx(db: Session, gateway: FakeGateway) -> ServiceContext:
    return ServiceContext(db=db, gateway=gateway, settings=settings)


@pytest.fixture(scope="function")
def client(db: Session, gateway: FakeGateway) -> Generator[TestClient, None, None]:
    """Create a test client with database and gateway overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def product_p1(db: Session) -> Product:
    """Priced so that two units reach the free-shipping threshold."""
    product = Product(id="p1", name="Ceramic Mug", price=Decimal("50.00"), stock=10)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def product_p2(db: Session) -> Product:
    product = Product(id="p2", name="Tea Towel", price=Decimal("20.00"), stock=5)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def create_order(client: TestClient) -> Callable:
    """POST /create-order for user_1 with a fixed request timestamp."""

    def _create(items=None, amount=110.0, timestamp=1760000000000, user_id="user_1"):
        body = {
            "amount": amount,
            "items": items if items is not None else [{"id": "p1", "quantity": 2}],
            "userId": user_id,
            "userEmail": "buyer@example.com",
        }
        if timestamp is not None:
            body["requestTimestamp"] = timestamp
        return client.post("/create-order", json=body)

    return _create


@pytest.fixture
def payment_signature() -> Callable[[str, str], str]:
    def _sign(order_id: str, payment_id: str) -> str:
        message = f"{order_id}|{payment_id}".encode("utf-8")
        return hmac.new(b"rzp_test_secret", message, hashlib.sha256).hexdigest()

    return _sign


@pytest.fixture
def send_webhook(client: TestClient) -> Callable:
    """Sign the exact bytes with the webhook secret and deliver them."""

    def _send(payload, signature: str | None = None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        if signature is None:
            signature = hmac.new(b"rzp_whsec_test", body, hashlib.sha256).hexdigest()
        return client.post(
            "/razorpay-webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Razorpay-Signature": signature},
        )

    return _send


def payment_event(event: str, order_id: str = "order_abc", payment_id: str = "pay_1", amount: int = 11000, **extra):
    entity = {
        "id": payment_id,
        "entity": "payment",
        "order_id": order_id,
        "amount": amount,
        "currency": "INR",
        "status": "captured" if event == "payment.captured" else "failed",
        **extra,
    }
    return {"entity": "event", "event": event, "payload": {"payment": {"entity": entity}}}


@pytest.fixture
def make_payment_event() -> Callable:
    return payment_event
