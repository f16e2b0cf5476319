from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from checkout.errors import ProductsNotFound
from checkout.models import Product


@dataclass(frozen=True)
class ProductQuote:
    price: Decimal
    stock: int
    name: str


def fetch_prices(db: Session, product_ids: Iterable[str]) -> dict[str, ProductQuote]:
    """Authoritative price, stock and name for every requested product.

    Raises ProductsNotFound listing all missing ids; a partial result is never returned.
    """
    wanted = sorted(set(product_ids))
    products = db.query(Product).filter(Product.id.in_(wanted)).all()
    quotes = {
        product.id: ProductQuote(
            price=Decimal(str(product.price)),
            stock=product.stock or 0,
            name=product.name,
        )
        for product in products
    }
    missing = [product_id for product_id in wanted if product_id not in quotes]
    if missing:
        raise ProductsNotFound(missing)
    return quotes
