# app/core/config.py - Consolidated

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront_inventory.db"

    # Amazon SP-API
    AMAZON_CLIENT_ID: str = ""
    AMAZON_CLIENT_SECRET: str = ""
    AMAZON_REFRESH_TOKEN: str = ""
    AMAZON_SELLER_ID: str = ""
    AMAZON_MARKETPLACE_ID: str = "ATVPDKIKX0DER"  # US marketplace
    AMAZON_ENDPOINT: str = "https://sellingpartnerapi-na.amazon.com"

    # Etsy Open API v3
    ETSY_API_KEY: str = ""
    ETSY_ACCESS_TOKEN: str = ""
    ETSY_SHOP_ID: str = ""

    # Reconciliation
    SYNC_HISTORY_LIMIT: int = 100
    CHANNEL_TIMEOUT_SECONDS: float = 30.0
    CHANNEL_PUSH_CONCURRENCY: int = 1  # 1 = pushes on a channel run one after another
    ORDER_LOOKBACK_HOURS: int = 24
    AUTO_SYNC_INTERVAL_MINUTES: int = 0  # 0 = don't schedule at start-up
    LOW_STOCK_THRESHOLD: int = 10

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists(os.environ.get('ENV_FILE', '.env')) else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        # Convert postgresql:// to postgresql+asyncpg:// for async support
        if self.DATABASE_URL.startswith('postgresql://'):
            return self.DATABASE_URL.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return self.DATABASE_URL

    @property
    def amazon_configured(self) -> bool:
        return bool(self.AMAZON_CLIENT_ID and self.AMAZON_CLIENT_SECRET and self.AMAZON_REFRESH_TOKEN)

    @property
    def etsy_configured(self) -> bool:
        return bool(self.ETSY_API_KEY and self.ETSY_ACCESS_TOKEN and self.ETSY_SHOP_ID)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def get_settings_no_cache(**overrides) -> Settings:
    """Get settings without caching - useful for testing different environments"""
    return Settings(**overrides)


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
