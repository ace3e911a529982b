"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.keap_sync.crm.field_mapping import CustomFieldMap


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS (admin dashboard and storefront call these handlers cross-origin)
    CORS_ALLOWED_ORIGINS: str = "*"

    # Admin endpoints: Authorization: Bearer <ADMIN_API_KEY>
    ADMIN_API_KEY: str = ""

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Keap (Infusionsoft REST v1)
    KEAP_ACCESS_TOKEN: str = ""
    KEAP_BASE_URL: str = "https://api.infusionsoft.com/crm/rest/v1"
    KEAP_TIMEOUT: float = 30.0
    KEAP_MAX_ATTEMPTS: int = 5
    KEAP_BACKOFF_INITIAL: float = 1.0
    KEAP_BACKOFF_MAX: float = 10.0
    KEAP_TAG_RATE_PER_SECOND: float = 10.0  # 100ms between tag calls

    # Custom field IDs, JSON-encoded in the environment, e.g.
    # KEAP_CUSTOM_FIELDS='{"payment_id": 411, "total_spent": 427}'
    KEAP_CUSTOM_FIELDS: CustomFieldMap = CustomFieldMap()

    # Batch sizes
    BACKFILL_DEFAULT_LIMIT: int = 100
    ORDERS_LIST_LIMIT: int = 100

    # Monitoring
    SENTRY_DSN: str = ""


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
