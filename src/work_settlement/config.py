"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup - if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from work_settlement.config import get_settings
    settings = get_settings()
    print(settings.platform_fee_rate)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the settlement service."""

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
        "postgresql+asyncpg://settlement:settlement_dev"
        "@localhost:5432/work_settlement"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_lock_timeout_seconds: int = 120

    # --- Settlement ---
    # Share of the final price kept by the platform (0.10 == 10%)
    platform_fee_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)
    charge_expiry_hours: int = Field(default=24, gt=0)
    expiry_sweep_interval_seconds: int = Field(default=300, gt=0)
    expiry_sweep_enabled: bool = True

    # --- Platform identity (receiver of the platform fee) ---
    platform_receiver_id: str = "platform"
    platform_name: str = "Empleitapp"
    platform_pix_key: str = ""

    # --- Payment rail (PIX via OpenPix) ---
    payment_rail_simulate: bool = True
    openpix_app_id: str = ""
    openpix_api_url: str = "https://api.openpix.com.br/api/v1"
    openpix_timeout_seconds: float = 30.0

    # --- Identity / profile directory ---
    user_directory_url: str = "http://localhost:8001/api/users"
    user_directory_timeout_seconds: float = 10.0

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
