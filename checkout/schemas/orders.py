from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class CartItem(BaseModel):
    id: str = Field(min_length=1)
    quantity: int


class CreateOrderRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    items: list[CartItem] = Field(min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    user_email: str | None = Field(default=None, alias="userEmail")
    request_timestamp: int | str | None = Field(default=None, alias="requestTimestamp")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "amount": 110.0,
                    "items": [{"id": "p1", "quantity": 2}],
                    "userId": "user_123",
                    "userEmail": "buyer@example.com",
                    "requestTimestamp": 1760000000000,
                }
            ]
        },
    )


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None


class VerifyPaymentResponse(BaseModel):
    verified: bool
    orderId: str
    paymentId: str


class OrderItemResponse(BaseModel):
    id: str
    quantity: int
    price: Decimal
    name: str


class OrderResponse(BaseModel):
    id: str
    gateway_order_id: str | None
    user_id: str
    user_email: str
    items: list[OrderItemResponse]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    currency: str
    status: str
    payment_status: str
    stock_reserved: bool
    gateway_payment_id: str | None = None
    failure_reason: str | None = None
    failure_code: str | None = None
    created_at: str

    model_config = {"from_attributes": True}

    @field_serializer("subtotal", "tax", "shipping", "total")
    def serialize_amount(self, value: Decimal) -> float:
        return float(value)
