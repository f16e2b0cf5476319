import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse

from checkout.dependencies import ServiceContext, get_context
from checkout.errors import OrderServiceError, ValidationError
from checkout.models import Order
from checkout.schemas.orders import (
    CreateOrderRequest,
    OrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from checkout.services.orders import OrderService
from checkout.services.reconciliation import PaymentReconciler

router = APIRouter()
logger = logging.getLogger(__name__)


def _server_error(ctx: ServiceContext, message: str, exc: Exception) -> JSONResponse:
    content = {"error": message}
    if not ctx.settings.is_production:
        content["details"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        gateway_order_id=order.gateway_order_id,
        user_id=order.user_id,
        user_email=order.user_email,
        items=order.items,
        subtotal=order.subtotal,
        tax=order.tax,
        shipping=order.shipping,
        total=order.total,
        currency=order.currency,
        status=order.status,
        payment_status=order.payment_status,
        stock_reserved=order.stock_reserved,
        gateway_payment_id=order.gateway_payment_id,
        failure_reason=order.failure_reason,
        failure_code=order.failure_code,
        created_at=order.created_at.isoformat() if order.created_at else "",
    )


@router.post(
    "/create-order",
    summary="Create a priced, stock-reserved Razorpay order",
)
def create_order(
    body: CreateOrderRequest,
    ctx: Annotated[ServiceContext, Depends(get_context)],
):
    """
    Recomputes prices server-side, rejects tampered amounts, creates the Razorpay
    order and reserves stock. Retrying with the same userId, items and
    requestTimestamp returns the original response unchanged.
    """
    try:
        content = OrderService(ctx).create_order(body)
    except OrderServiceError:
        raise
    except Exception as exc:
        logger.exception("Error creating order for user %s", body.user_id)
        return _server_error(ctx, "Failed to create order", exc)
    return Response(content=content, media_type="application/json")


@router.post(
    "/verify-payment",
    response_model=VerifyPaymentResponse,
    summary="Verify the payment signature returned by checkout",
)
def verify_payment(
    body: VerifyPaymentRequest,
    ctx: Annotated[ServiceContext, Depends(get_context)],
):
    if not body.razorpay_order_id or not body.razorpay_payment_id or not body.razorpay_signature:
        raise ValidationError("Missing required payment verification fields")

    try:
        verified = PaymentReconciler(ctx).verify_client_payment(
            body.razorpay_order_id,
            body.razorpay_payment_id,
            body.razorpay_signature,
        )
    except OrderServiceError:
        raise
    except Exception as exc:
        logger.exception("Error verifying payment %s", body.razorpay_payment_id)
        return _server_error(ctx, "Failed to verify payment", exc)

    if not verified:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"verified": False, "error": "Payment verification failed"},
        )
    return VerifyPaymentResponse(
        verified=True,
        orderId=body.razorpay_order_id,
        paymentId=body.razorpay_payment_id,
    )


@router.get(
    "/orders",
    response_model=list[OrderResponse],
    summary="List a buyer's orders",
)
def list_orders(
    ctx: Annotated[ServiceContext, Depends(get_context)],
    user_id: Annotated[str, Query(alias="userId", min_length=1)],
):
    orders = OrderService(ctx).list_orders_for_user(user_id)
    return [order_to_response(order) for order in orders]


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
def get_order(
    order_id: str,
    ctx: Annotated[ServiceContext, Depends(get_context)],
):
    return order_to_response(OrderService(ctx).get_order(order_id))


@router.post(
    "/orders/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order before fulfilment",
)
def cancel_order(
    order_id: str,
    ctx: Annotated[ServiceContext, Depends(get_context)],
):
    """Moves a pending or processing order to cancelled and returns its reserved stock."""
    return order_to_response(OrderService(ctx).cancel_order(order_id))


@router.post(
    "/orders/{order_id}/confirm",
    response_model=OrderResponse,
    summary="Hand a paid order over to fulfilment",
)
def confirm_order(
    order_id: str,
    ctx: Annotated[ServiceContext, Depends(get_context)],
):
    return order_to_response(OrderService(ctx).confirm_order(order_id))
