"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup. A malformed setting makes the app fail fast with a clear
error message.

Usage:
    from opportunity_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the opportunity escrow core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://portal:portal_dev"
        "@localhost:5432/opportunity_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Escrow Ledger ---
    ledger_conflict_retries: int = 3
    escrow_fee_percentage: Decimal = Decimal("0.01")
    escrow_fee_minimum: Decimal = Decimal("10")
    escrow_fee_maximum: Decimal = Decimal("500")
    default_currency: str = "USD"
    supported_currencies: str = "USD,EUR,GBP,ZWL,ZAR,KES,NGN,GHS"

    # --- Auto Release ---
    auto_release_enabled: bool = True
    auto_release_interval_seconds: int = 300

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def supported_currency_list(self) -> list[str]:
        """Parse comma-separated currency codes into a list."""
        return [c.strip().upper() for c in self.supported_currencies.split(",") if c.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
