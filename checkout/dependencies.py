from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from checkout.config import Settings, settings
from checkout.models import get_db
from checkout.services.razorpay_gateway import RazorpayGateway


@dataclass(frozen=True)
class ServiceContext:
    """Everything an order/payment handler needs, built once per request."""

    db: Session
    gateway: RazorpayGateway
    settings: Settings


def get_settings() -> Settings:
    return settings


def get_gateway(
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> RazorpayGateway:
    return RazorpayGateway(
        key_id=app_settings.RAZORPAY_KEY_ID,
        key_secret=app_settings.RAZORPAY_KEY_SECRET,
        webhook_secret=app_settings.RAZORPAY_WEBHOOK_SECRET,
    )


def get_context(
    db: Annotated[Session, Depends(get_db)],
    gateway: Annotated[RazorpayGateway, Depends(get_gateway)],
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> ServiceContext:
    return ServiceContext(db=db, gateway=gateway, settings=app_settings)


async def get_raw_body(request: Request) -> bytes:
    """Request body exactly as received, before any JSON decoding."""
    return await request.body()
