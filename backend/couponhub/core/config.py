from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "CouponHub API"
    app_version: str = "0.1.0"
    environment: str = "local"

    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./couponhub.db"
    seed_preset_coupons: bool = True

    coupon_rate_limit_enabled: bool = True
    coupon_rate_limit: int = 10
    coupon_rate_limit_window_seconds: int = 60
    redis_url: str | None = None

    upload_max_bytes: int = 5 * 1024 * 1024

    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["GET", "POST", "OPTIONS"]
    cors_allow_headers: list[str] = ["*"]

    log_json: bool = False

    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
