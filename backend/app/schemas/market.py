from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field


class IndicatorQuote(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    value: float
    change_percent: float = Field(default=0.0, alias="changePercent")


class MarketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sp500: IndicatorQuote
    btc: IndicatorQuote
    vix: IndicatorQuote
    is_market_open: bool = Field(alias="isMarketOpen")
    last_updated: datetime.datetime = Field(alias="lastUpdated")
    # Only set on synthesized snapshots; omitted from payloads otherwise.
    is_fallback: bool | None = Field(default=None, alias="isFallback")


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    snapshot: MarketSnapshot
    fetched_at: datetime.datetime


class MarketDataResponse(BaseModel):
    success: bool = True
    data: MarketSnapshot


class MarketHealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    finnhub_configured: bool = Field(alias="finnhubConfigured")
    cached: bool
    cache_age_seconds: float | None = Field(default=None, alias="cacheAgeSeconds")
    cache_backend: str = Field(alias="cacheBackend")
