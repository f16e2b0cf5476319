import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse

from checkout.dependencies import ServiceContext, get_context, get_raw_body
from checkout.errors import (
    OrderServiceError,
    SignatureInvalid,
    ValidationError,
    WebhookNotConfigured,
)
from checkout.schemas.webhooks import parse_webhook_event
from checkout.services.reconciliation import PaymentReconciler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/razorpay-webhook",
    summary="Razorpay webhook",
)
def razorpay_webhook(
    raw_body: Annotated[bytes, Depends(get_raw_body)],
    ctx: Annotated[ServiceContext, Depends(get_context)],
    x_razorpay_signature: Annotated[str | None, Header()] = None,
):
    """
    Razorpay sends payment.captured, payment.failed and order.paid here.
    The signature is checked against the raw request bytes before parsing.
    Delivery is at-least-once, so every handler is idempotent; unknown events
    and events for unknown orders are acknowledged with 200.
    """
    if not ctx.gateway.webhook_secret:
        logger.error("RAZORPAY_WEBHOOK_SECRET is not set, rejecting webhook")
        raise WebhookNotConfigured()

    if not ctx.gateway.verify_webhook_signature(raw_body, x_razorpay_signature):
        logger.error(
            "Webhook signature verification failed: expected=%s received=%s",
            ctx.gateway.webhook_signature(raw_body),
            x_razorpay_signature,
        )
        raise SignatureInvalid("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        logger.error("Invalid JSON in Razorpay webhook: %s", exc)
        raise ValidationError("Invalid JSON") from exc

    event = parse_webhook_event(payload)
    logger.info("Webhook received: %s for gateway order %s", event.name, event.gateway_order_id)

    try:
        PaymentReconciler(ctx).apply_webhook(event, payload)
    except OrderServiceError:
        ctx.db.rollback()
        raise
    except Exception as exc:
        ctx.db.rollback()
        logger.exception("Webhook processing error for %s", event.name)
        content = {"error": "Webhook processing failed"}
        if not ctx.settings.is_production:
            content["details"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return {"status": "ok"}
