import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_REQUEST_ID_SECRET = "change-me-in-production"


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def ENVIRONMENT(self) -> str:
        return os.getenv("ENVIRONMENT", "development").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def PORT(self) -> int:
        return self._get_int("PORT", 8000)

    @property
    def RAZORPAY_KEY_ID(self) -> str:
        return os.getenv("RAZORPAY_KEY_ID", "")

    @property
    def RAZORPAY_KEY_SECRET(self) -> str:
        return os.getenv("RAZORPAY_KEY_SECRET", "")

    @property
    def RAZORPAY_WEBHOOK_SECRET(self) -> str:
        return os.getenv("RAZORPAY_WEBHOOK_SECRET", "")

    @property
    def REQUEST_ID_SECRET(self) -> str:
        return os.getenv("REQUEST_ID_SECRET", DEFAULT_REQUEST_ID_SECRET)

    @property
    def CURRENCY(self) -> str:
        return os.getenv("CURRENCY", "INR").upper()

    @property
    def IDEMPOTENCY_TTL_HOURS(self) -> int:
        return self._get_int("IDEMPOTENCY_TTL_HOURS", 24)

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 5)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def CATALOG_SEED_FILE(self) -> str:
        return os.getenv("CATALOG_SEED_FILE", "").strip()

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")


settings = Settings()

# Validate critical settings
if settings.REQUEST_ID_SECRET == DEFAULT_REQUEST_ID_SECRET:
    import warnings
    warnings.warn("REQUEST_ID_SECRET is using default value. Change it in production!", UserWarning)
