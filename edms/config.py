import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/edms"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))
    # Upper bound for a single statement; lock waits past this surface as "busy"
    db_statement_timeout_ms: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    permission_expiry_scan_minutes: int = int(
        os.getenv("PERMISSION_EXPIRY_SCAN_MINUTES", "15")
    )
    review_due_scan_minutes: int = int(os.getenv("REVIEW_DUE_SCAN_MINUTES", "60"))

    # Document defaults (days)
    default_review_cycle_days: int = int(os.getenv("DEFAULT_REVIEW_CYCLE_DAYS", "365"))
    default_retention_period_days: int = int(
        os.getenv("DEFAULT_RETENTION_PERIOD_DAYS", "2555")
    )

    # Branding
    brand_name: str = os.getenv("BRAND_NAME", "EDMS")


settings = Settings()
