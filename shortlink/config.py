"""Configuration management for the shortlink service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Access values**::
    print(f"Guest TTL: {settings.GUEST_LINK_TTL_SECONDS}")
    print(f"Production: {settings.is_production}")

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- Internal error detail is only exposed when APP_ENV is not "production".

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    # Short codes
    SHORT_CODE_LENGTH: int = 8
    CODE_GENERATION_ATTEMPTS: int = 10
    MAX_URL_LENGTH: int = 2048

    # Cache lifetimes
    LINK_CACHE_TTL_SECONDS: int = 3600
    GUEST_LINK_TTL_SECONDS: int = 86400
    CLICK_COUNTER_TTL_SECONDS: int = 86400 * 30

    # Owner listing
    LIST_DEFAULT_LIMIT: int = 10
    LIST_MAX_LIMIT: int = 50

    # Click accounting
    CLICK_DRAIN_TIMEOUT_SECONDS: float = 5.0
    CLICK_RECONCILE_INTERVAL_SECONDS: int = 300
    CLICK_RECONCILE_BATCH_SIZE: int = 500

    # Authentication
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    SESSION_TTL_SECONDS: int = 7200
    AUTH_COOKIE_NAME: str = "authToken"
    BCRYPT_ROUNDS: int = 12

    # Rate limiting (requests per window, per client IP)
    RATE_LIMIT_AUTH_MAX: int = 1000
    RATE_LIMIT_AUTH_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_URL_MAX: int = 500
    RATE_LIMIT_URL_WINDOW_SECONDS: int = 3600
    RATE_LIMIT_GENERAL_MAX: int = 1000
    RATE_LIMIT_GENERAL_WINDOW_SECONDS: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
