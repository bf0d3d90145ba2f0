"""Application configuration via environment variables (pydantic-settings)."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # Cache freshness windows (milliseconds)
    PRODUCTS_CACHE_TTL_MS: int = 5 * 60 * 1000
    CATEGORIES_CACHE_TTL_MS: int = 10 * 60 * 1000
    ORDERS_CACHE_TTL_MS: int = 2 * 60 * 1000

    ORDERS_PAGE_SIZE: int = 10

    # Query performance monitor
    PERF_MONITORING_ENABLED: bool = False
    SLOW_QUERY_MS: float = 1000.0
    NOTICE_QUERY_MS: float = 500.0

    LOG_LEVEL: str = "INFO"

    # Defaults
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Storefront Data API"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

@lru_cache
def get_settings():
    return Settings()

settings = get_settings()
