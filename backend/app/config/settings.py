from __future__ import annotations

from typing import Dict, Literal

from pydantic import BaseModel, Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketSettings(BaseModel):
    cache_duration_seconds: float = 300.0
    request_timeout_seconds: float = 8.0
    cache_backend: Literal["memory", "redis"] = "memory"
    redis_key: str = "briefdesk:market:snapshot"
    symbols: Dict[str, str] = Field(
        default_factory=lambda: {
            # SPY tracks the S&P 500 at roughly 1/10 of the index level.
            "sp500": "SPY",
            "btc": "BINANCE:BTCUSDT",
            "vix": "VIX",
        }
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRIEFDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    finnhub_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("FINNHUB_API_KEY", "BRIEFDESK_FINNHUB_API_KEY"),
    )
    finnhub_base_url: str = "https://finnhub.io/api/v1"
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "BRIEFDESK_REDIS_URL"),
    )
    log_level: str = "INFO"

    market: MarketSettings = Field(default_factory=MarketSettings)


settings = Settings()
