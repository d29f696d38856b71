# watchsync/core/config.py

import os
from functools import lru_cache
from typing import List, Optional, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings, NoDecode


def _parse_csv_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Feed
    FEED_URL: str = ""
    FEED_READINESS_URL: str = ""
    CHECK_FEED_READINESS: bool = False
    FEED_SKU_FIELD: str = "web_tag_number"
    FEED_STATUS_FIELD: str = "web_status"
    FEED_TIMEOUT_SECONDS: float = 300.0
    FEED_PAGE_SIZE: int = 2000  # 0 reads the feed in one request

    # Safety thresholds
    MAX_DESTRUCTIVE_PER_CYCLE: int = 20
    MAX_REMOTE_DIVERGENCE: Optional[int] = None  # falls back to MAX_DESTRUCTIVE_PER_CYCLE

    # Retry / pacing defaults, used by every channel without an override
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_MIN_DELAY_SECONDS: float = 2.0
    RETRY_MAX_DELAY_SECONDS: float = 10.0
    PACING_MIN_DELAY_SECONDS: float = 0.5
    PACING_MAX_DELAY_SECONDS: float = 1.5

    # eBay (auction / marketplace)
    EBAY_API_BASE_URL: str = ""
    EBAY_ACCESS_TOKEN: str = ""
    EBAY_RETENTION: str = "delete"

    # B2B catalog
    CATALOG_API_BASE_URL: str = ""
    CATALOG_API_KEY: str = ""
    CATALOG_RETENTION: str = "archive"

    # WhatsApp broadcast (Wassenger)
    WHATSAPP_API_BASE_URL: str = "https://api.wassenger.com/v1"
    WHATSAPP_API_TOKEN: str = ""
    WHATSAPP_GROUP_ID: str = ""
    WHATSAPP_RETRY_MAX_ATTEMPTS: int = 5
    WHATSAPP_RETRY_MIN_DELAY_SECONDS: float = 15.0
    WHATSAPP_RETRY_MAX_DELAY_SECONDS: float = 40.0
    WHATSAPP_PACING_MIN_DELAY_SECONDS: float = 2.0
    WHATSAPP_PACING_MAX_DELAY_SECONDS: float = 6.0

    # Scheduling
    SYNC_ENABLED_CHANNELS: Annotated[List[str], NoDecode, BeforeValidator(lambda v: _parse_csv_list(v))] = []
    SYNC_RUNS_PER_HOUR: int = 4

    # Basic Auth for the trigger API
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # Email notifications
    NOTIFICATION_EMAILS: Annotated[List[str], NoDecode, BeforeValidator(lambda v: _parse_csv_list(v))] = []

    # SMTP / Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def divergence_threshold(self) -> int:
        if self.MAX_REMOTE_DIVERGENCE is None:
            return self.MAX_DESTRUCTIVE_PER_CYCLE
        return self.MAX_REMOTE_DIVERGENCE


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file on every call"""
    return Settings()

