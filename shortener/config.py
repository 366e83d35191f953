"""Configuration management for the short link service.

This module provides centralized configuration using Pydantic BaseSettings
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
    from shortener.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

Key Behaviours
===============
- Settings are cached after first access.
- Environment variables override defaults automatically.
- Validation tables (reserved aliases, blocked hosts) live here as plain data
  and are frozen into ``ValidationRules`` once at startup.

Classes:
    Settings:  Pydantic model for all configuration values.
"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from shortener.enums import ExistenceDisclosure


class Settings(BaseSettings):
    APP_NAME: str = "gated-links"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:8080"
    SHORT_URL_PATH_PREFIX: str = "/r/"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortener:shortener@db:5432/shortener"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT_SECONDS: float = 10.0
    LINK_CODE_SEQUENCE: str = "link_code_seq"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 1.0

    # Cache policy
    CACHE_DEFAULT_TTL_SECONDS: int = 86400
    CACHE_MAX_TTL_SECONDS: int = 86400
    CACHE_NEGATIVE_TTL_SECONDS: int = 300
    CLICK_COUNTER_TTL_SECONDS: int = 30 * 86400
    CLICK_SYNC_INTERVAL: int = 10

    # Every service call is bounded by this, on top of the caller's own cancellation
    OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Credential verifier
    BCRYPT_ROUNDS: int = 12

    # Link validation tables
    RESERVED_ALIASES: list[str] = ["api", "admin", "r", "v1"]
    ALIAS_PATTERN: str = r"^[A-Za-z0-9_-]{1,50}$"
    ALLOWED_URL_SCHEMES: list[str] = ["http", "https"]
    BLOCKED_HOST_MARKERS: list[str] = ["localhost", "127.0.0.1", "0.0.0.0"]
    BLOCKED_URL_MARKERS: list[str] = ["file://", "javascript:"]

    # Whether non-owners learn that a code exists (403) or not (404)
    EXISTENCE_DISCLOSURE: ExistenceDisclosure = ExistenceDisclosure.REVEAL

    # Bearer token verification
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "url-shortener"
    JWT_ISSUER: str | None = None

    VERIFIED_COOKIE_MAX_AGE_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @property
    def short_url_base(self) -> str:
        return self.BASE_URL.rstrip("/") + self.SHORT_URL_PATH_PREFIX


@lru_cache()
def get_settings() -> Settings:
    return Settings()
