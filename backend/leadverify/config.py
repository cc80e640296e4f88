# backend/leadverify/config.py
from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    APP_NAME: str = "leadverify"

    POSTGRES_USER: str = os.environ.get("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: str = os.environ.get("POSTGRES_PASSWORD", "postgres")
    POSTGRES_DB: str = os.environ.get("POSTGRES_DB", "leadverify")
    POSTGRES_HOST: str = os.environ.get("POSTGRES_HOST", "db")
    POSTGRES_PORT: str = os.environ.get("POSTGRES_PORT", "5432")

    DATABASE_URL: str = os.environ.get(
        "DATABASE_URL",
        f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
    )
    DB_POOL_SIZE: int = int(os.environ.get("DB_POOL_SIZE", 10))
    DB_MAX_OVERFLOW: int = int(os.environ.get("DB_MAX_OVERFLOW", 20))

    # Redis & queue
    REDIS_URL: str = os.environ.get("REDIS_URL", "redis://redis:6379/0")

    QUEUE_KEY: str = "leadverify:validation-jobs"

    # email validation job runner
    VALIDATION_BATCH_SIZE: int = int(os.environ.get("VALIDATION_BATCH_SIZE", 500))
    CACHE_QUERY_CHUNK_SIZE: int = int(os.environ.get("CACHE_QUERY_CHUNK_SIZE", 100))
    VALIDATION_CACHE_TTL_DAYS: int = int(os.environ.get("VALIDATION_CACHE_TTL_DAYS", 60))
    STUCK_JOB_MINUTES: int = int(os.environ.get("STUCK_JOB_MINUTES", 5))

    # EmailListVerify provider
    ELV_API_KEY: str = os.environ.get("ELV_API_KEY", "")
    ELV_API_URL: str = os.environ.get("ELV_API_URL", "https://apps.emaillistverify.com/api")
    PROVIDER_DELAY_MS: int = int(os.environ.get("PROVIDER_DELAY_MS", 200))
    PROVIDER_TIMEOUT_SECONDS: float = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", 10))
    PROVIDER_MAX_RETRIES: int = int(os.environ.get("PROVIDER_MAX_RETRIES", 3))

    # suppression / caps
    SUPPRESSION_BATCH_SIZE: int = int(os.environ.get("SUPPRESSION_BATCH_SIZE", 500))
    DEFAULT_LEAD_CAP: int = int(os.environ.get("DEFAULT_LEAD_CAP", 10))
    QUEUE_DEFAULT_LIMIT: int = int(os.environ.get("QUEUE_DEFAULT_LIMIT", 50))
    # contacts submitted within this window are not eligible again
    SUBMISSION_EXCLUSION_DAYS: int = int(os.environ.get("SUBMISSION_EXCLUSION_DAYS", 730))

    # background sweep across active campaigns
    SCHEDULER_INTERVAL_SECONDS: int = int(os.environ.get("SCHEDULER_INTERVAL_SECONDS", 300))

    # other useful defaults
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.environ.get("LOG_FORMAT", "text")

    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # File upload limits
    MAX_UPLOAD_SIZE_MB: int = int(os.environ.get("MAX_UPLOAD_SIZE_MB", 64))

    DEBUG: bool = os.environ.get("DEBUG", "False").lower() in ("1", "true", "yes")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()
