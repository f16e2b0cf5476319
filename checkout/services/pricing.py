from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Sequence

from checkout.errors import AmountMismatch, InvalidItemError
from checkout.schemas.orders import CartItem
from checkout.services.catalog import ProductQuote

TAX_RATE = Decimal("0.10")
FREE_SHIPPING_THRESHOLD = Decimal("100")
SHIPPING_COST = Decimal("10")
AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, float]:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "shipping": float(self.shipping),
            "total": float(self.total),
        }


def quantities_by_product(items: Sequence[CartItem]) -> dict[str, int]:
    quantities: dict[str, int] = {}
    for item in items:
        quantities[item.id] = quantities.get(item.id, 0) + item.quantity
    return quantities


def validate_items(items: Sequence[CartItem], prices: Mapping[str, ProductQuote] | None = None) -> None:
    """Each item needs an id and a positive integer quantity; with prices, a known id."""
    for item in items:
        if not item.id:
            raise InvalidItemError()
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
            raise InvalidItemError(f"Invalid quantity for product {item.id}")
        if prices is not None and item.id not in prices:
            raise InvalidItemError(f"Product with ID {item.id} not found")


def check_stock(items: Sequence[CartItem], prices: Mapping[str, ProductQuote]) -> list[dict]:
    """Shortages per product; repeated lines of one product are summed."""
    shortages = []
    for product_id, requested in quantities_by_product(items).items():
        quote = prices[product_id]
        if requested > quote.stock:
            shortages.append(
                {
                    "productId": product_id,
                    "name": quote.name,
                    "requested": requested,
                    "available": quote.stock,
                }
            )
    return shortages


def compute_totals(items: Sequence[CartItem], prices: Mapping[str, ProductQuote]) -> OrderTotals:
    validate_items(items, prices)
    subtotal = sum((prices[item.id].price * item.quantity for item in items), Decimal("0"))
    tax = subtotal * TAX_RATE
    shipping = Decimal("0") if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_COST
    return OrderTotals(subtotal=subtotal, tax=tax, shipping=shipping, total=subtotal + tax + shipping)


def check_amount(declared: Decimal, totals: OrderTotals) -> None:
    if abs(Decimal(str(declared)) - totals.total) > AMOUNT_TOLERANCE:
        raise AmountMismatch(calculated_total=totals.total, received=declared)
