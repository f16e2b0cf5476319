import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError

from checkout.errors import GatewayUnavailable

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees) to the gateway's integer minor unit (paise)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, received: str | None) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


class RazorpayGateway:
    """Boundary to Razorpay: remote order creation and signature checks."""

    def __init__(self, key_id: str, key_secret: str, webhook_secret: str):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _client(self) -> razorpay.Client:
        return razorpay.Client(auth=(self.key_id, self.key_secret))

    def create_remote_order(self, amount_minor: int, currency: str, receipt: str, notes: dict) -> dict:
        """Create a Razorpay order and return the gateway's order object."""
        if not self.configured:
            raise GatewayUnavailable("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are not set")
        try:
            remote_order = self._client().order.create(
                data={
                    "amount": amount_minor,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": {key: str(value) for key, value in notes.items()},
                }
            )
        except (
            BadRequestError,
            ServerError,
            GatewayError,
            requests.RequestException,
        ) as exc:
            logger.error("Razorpay order creation failed for receipt %s: %s", receipt, exc)
            raise GatewayUnavailable(f"Razorpay order creation failed: {exc}") from exc

        if not remote_order or not remote_order.get("id"):
            raise GatewayUnavailable("Razorpay returned an order without id")
        return remote_order

    def payment_signature(self, order_id: str, payment_id: str) -> str:
        return _hmac_sha256_hex(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))

    def verify_signature(self, order_id: str, payment_id: str, signature: str | None) -> bool:
        """Exact match of HMAC-SHA256(key_secret, "order_id|payment_id")."""
        if not self.key_secret:
            logger.error("RAZORPAY_KEY_SECRET is not set, cannot verify payment %s", payment_id)
            return False
        return _matches(self.payment_signature(order_id, payment_id), signature)

    def webhook_signature(self, raw_body: bytes) -> str:
        return _hmac_sha256_hex(self.webhook_secret, raw_body)

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """HMAC over the bytes received on the wire, never a re-serialized payload."""
        if not self.webhook_secret:
            return False
        return _matches(self.webhook_signature(raw_body), signature)
