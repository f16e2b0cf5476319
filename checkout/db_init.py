import json
import logging
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from checkout.config import settings
from checkout.models.database import Base, _normalize_database_url, engine
from checkout.models import IdempotencyKey, Order, Product, WebhookDeadLetter  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def wait_for_db(retries: int, retry_delay_seconds: int) -> None:
    """Block until the order database answers ``SELECT 1``."""
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Order database reachable on attempt %s", attempt)
            return
        except OperationalError as exc:
            last_error = exc
            logger.warning("Order database not reachable (attempt %s/%s): %s", attempt, retries, exc)
            if attempt < retries:
                time.sleep(retry_delay_seconds)

    raise RuntimeError(
        f"Database is unreachable after {retries} attempts. "
        "Check DATABASE_URL and ensure the DB server is running."
    ) from last_error


def init_db():
    wait_for_db(
        retries=settings.DB_CONNECT_RETRIES,
        retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    )
    if settings.DATABASE_URL.startswith("sqlite://"):
        Base.metadata.create_all(bind=engine)
        return

    run_migrations()


def run_migrations() -> None:
    """Apply Alembic migrations to the latest revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not alembic_ini.exists() or not script_location.exists():
        raise RuntimeError("Alembic configuration is missing (alembic.ini or alembic/ directory not found).")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(script_location))
    config.set_main_option("sqlalchemy.url", _normalize_database_url(settings.DATABASE_URL))
    command.upgrade(config, "head")


def _catalog_entry(raw) -> Product:
    if not isinstance(raw, dict):
        raise RuntimeError(f"Catalog entry must be an object, got {raw!r}")
    product_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not product_id or not name:
        raise RuntimeError(f"Catalog entry needs id and name: {raw!r}")
    try:
        price = Decimal(str(raw.get("price")))
    except InvalidOperation as exc:
        raise RuntimeError(f"Catalog entry {product_id} has invalid price {raw.get('price')!r}") from exc
    stock = raw.get("stock", 0)
    if not price.is_finite() or price <= 0:
        raise RuntimeError(f"Catalog entry {product_id} needs a positive price")
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        raise RuntimeError(f"Catalog entry {product_id} needs a non-negative integer stock")
    return Product(id=product_id, name=name, price=price, stock=stock)


def seed_products(db_session: Session, seed_file: str | Path) -> int:
    """Insert catalog products from a JSON list; products that already exist are left alone.

    Existing rows, including their stock, are never overwritten.
    """
    path = Path(seed_file)
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"Catalog seed file {path} could not be read: {exc}") from exc
    if not isinstance(entries, list):
        raise RuntimeError(f"Catalog seed file {path} must contain a JSON list")

    products = [_catalog_entry(raw) for raw in entries]
    existing = {
        product_id
        for (product_id,) in db_session.query(Product.id).filter(
            Product.id.in_([product.id for product in products])
        )
    }
    inserted = 0
    for product in products:
        if product.id in existing:
            continue
        db_session.add(product)
        existing.add(product.id)
        inserted += 1
    db_session.commit()
    logger.info("Catalog seed %s: %s inserted, %s already present", path, inserted, len(products) - inserted)
    return inserted
