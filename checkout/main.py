import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from checkout.api import orders
from checkout.config import DEFAULT_REQUEST_ID_SECRET, settings
from checkout.db_init import init_db, seed_products
from checkout.errors import OrderServiceError
from checkout.models import get_db
from checkout.services import idempotency
from checkout.webhooks import razorpay_webhook

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("checkout.startup")

SERVICE_NAME = "Storefront Order Service"


def _is_localhost(host: str | None) -> bool:
    return host in {"localhost", "127.0.0.1"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_effective_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    host = parsed.hostname
    db_name = parsed.path.lstrip("/")
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not host:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not db_name:
        raise RuntimeError("DATABASE_URL is missing database name in path.")
    if settings.is_production and _is_localhost(host):
        raise RuntimeError(
            "Invalid DATABASE_URL for production: host is localhost/127.0.0.1 "
            f"(host={host}, database={db_name})."
        )


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"
    query = parsed.query or "<empty>"

    tips = []
    if _is_localhost(host):
        tips.append("Host points to localhost; a managed database needs its public or private host.")
    if scheme in {"postgres", "postgresql"}:
        tips.append("URL scheme is fine; app normalizes it to postgresql+psycopg internally.")
    if "sslmode" not in query:
        tips.append("No sslmode in URL query; external managed DBs often require sslmode=require.")
    if not tips:
        tips.append("URL structure looks valid; check network access, DB credentials, and DB service status.")

    return (
        f"scheme={scheme}, host={host}, port={port}, database={db_name}, query={query}; "
        f"tips={' | '.join(tips)}"
    )


def _validate_required_env_for_runtime() -> None:
    errors = []
    warnings = []
    is_production = settings.is_production

    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        message = "RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required for payment endpoints."
        (errors if is_production else warnings).append(message)

    if not settings.RAZORPAY_WEBHOOK_SECRET:
        message = "RAZORPAY_WEBHOOK_SECRET is required to accept Razorpay webhooks."
        (errors if is_production else warnings).append(message)

    request_secret = settings.REQUEST_ID_SECRET.strip()
    if not request_secret:
        errors.append("REQUEST_ID_SECRET must not be empty.")
    elif is_production and request_secret == DEFAULT_REQUEST_ID_SECRET:
        errors.append("REQUEST_ID_SECRET uses insecure default value in production.")

    origins = _get_effective_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


def _database_configured() -> bool:
    try:
        return bool(settings.DATABASE_URL)
    except ValueError:
        return False


def _seed_catalog(seed_file: str) -> None:
    db = next(get_db())
    try:
        seed_products(db, seed_file)
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


def _purge_idempotency_keys() -> None:
    db = next(get_db())
    try:
        idempotency.purge_expired(db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Could not purge expired idempotency keys: %s", exc)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated (environment=%s).", settings.ENVIRONMENT)
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
        if settings.CATALOG_SEED_FILE:
            _seed_catalog(settings.CATALOG_SEED_FILE)
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception(
            "Database initialization failed: %s. DATABASE_URL diagnostics: %s",
            str(exc),
            diagnostics,
        )
        raise
    _purge_idempotency_keys()
    logger.info(
        "Application startup completed: razorpay=%s webhook=%s",
        bool(settings.RAZORPAY_KEY_ID),
        bool(settings.RAZORPAY_WEBHOOK_SECRET),
    )
    yield
    logger.info("Application shutting down.")


app = FastAPI(
    title="Storefront Order API",
    description=(
        "Order, payment and inventory reconciliation for the storefront: "
        "server-priced Razorpay orders, payment verification and webhooks."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Orders", "description": "Create orders, verify payments, read and transition orders."},
        {"name": "Webhooks", "description": "Called by Razorpay."},
    ],
)


async def order_service_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    content = exc.to_response()
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        if settings.is_production:
            content = {"error": content["error"]}
        elif exc.__cause__ is not None:
            content["details"] = str(exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})


app.add_exception_handler(OrderServiceError, order_service_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_effective_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(orders.router, tags=["Orders"])
app.include_router(razorpay_webhook.router, tags=["Webhooks"])


@app.get("/")
def root():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
        "services": {
            "razorpay": bool(settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET),
            "database": _database_configured(),
            "webhook": bool(settings.RAZORPAY_WEBHOOK_SECRET),
            "requestSigning": settings.REQUEST_ID_SECRET not in {"", DEFAULT_REQUEST_ID_SECRET},
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("checkout.main:app", host="0.0.0.0", port=settings.PORT)
