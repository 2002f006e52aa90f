from __future__ import annotations

import datetime
import logging
import math
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Mapping

from app.cache import MemorySnapshotCache, SnapshotCache, build_cache
from app.config.settings import Settings, settings
from app.providers import finnhub
from app.schemas.market import CacheEntry, IndicatorQuote, MarketSnapshot
from app.services.market_hours import is_market_hours

logger = logging.getLogger(__name__)

INDICATORS = ("sp500", "btc", "vix")

# SPY trades at roughly a tenth of the S&P 500 level.
SP500_PROXY_MULTIPLIER = 10

QuoteFetcher = Callable[..., "dict | None"]
Clock = Callable[[], datetime.datetime]


@dataclass(frozen=True)
class FallbackBand:
    base: float
    value_jitter: float
    change_jitter: float


FALLBACK_BANDS: dict[str, FallbackBand] = {
    "sp500": FallbackBand(base=4520.0, value_jitter=25.0, change_jitter=1.0),
    "btc": FallbackBand(base=43000.0, value_jitter=500.0, change_jitter=2.0),
    "vix": FallbackBand(base=15.5, value_jitter=1.0, change_jitter=0.5),
}


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _round(value: float) -> float:
    return round(float(value), 2)


def _number(payload: Mapping, field: str) -> float:
    value = payload.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(value)


def build_fallback_snapshot(
    rng: random.Random | None = None, now: datetime.datetime | None = None
) -> MarketSnapshot:
    """Synthesize a plausible snapshot around fixed baselines.

    The values are bounded jitter for keeping the dashboard populated, not a
    model of anything.
    """
    rng = rng or random.Random()
    now = now or utc_now()
    quotes: dict[str, IndicatorQuote] = {}
    for name in INDICATORS:
        band = FALLBACK_BANDS[name]
        quotes[name] = IndicatorQuote(
            value=_round(band.base + rng.uniform(-band.value_jitter, band.value_jitter)),
            change_percent=_round(rng.uniform(-band.change_jitter, band.change_jitter)),
        )
    return MarketSnapshot(
        **quotes,
        is_market_open=is_market_hours(now),
        last_updated=now,
        is_fallback=True,
    )


def build_live_snapshot(
    quotes: Mapping[str, Mapping], now: datetime.datetime | None = None
) -> MarketSnapshot:
    """Turn three raw Finnhub quotes (keyed by indicator) into a snapshot."""
    now = now or utc_now()
    sp500 = quotes["sp500"]
    btc = quotes["btc"]
    vix = quotes["vix"]
    return MarketSnapshot(
        sp500=IndicatorQuote(
            value=_round(_number(sp500, "c") * SP500_PROXY_MULTIPLIER),
            change_percent=_round(_number(sp500, "dp")),
        ),
        btc=IndicatorQuote(
            value=_round(_number(btc, "c")),
            change_percent=_round(_number(btc, "dp")),
        ),
        vix=IndicatorQuote(
            value=_round(_number(vix, "c")),
            change_percent=_round(_number(vix, "dp")),
        ),
        is_market_open=is_market_hours(now),
        last_updated=now,
    )


class MarketSnapshotProvider:
    """Serves S&P 500 / BTC / VIX snapshots with a short-lived cache.

    ``get_snapshot`` never raises. Without a Finnhub key, or when any of the
    three quotes cannot be fetched, it returns a synthetic snapshot
    (``is_fallback=True``) which is not cached. Real snapshots are cached for
    ``cache_duration``; concurrent callers hitting an expired cache share a
    single upstream round.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        cache: SnapshotCache | None = None,
        quote_fetcher: QuoteFetcher | None = None,
        symbols: Mapping[str, str] | None = None,
        cache_duration: datetime.timedelta | float = 300.0,
        request_timeout: float = 8.0,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ) -> None:
        symbols = dict(symbols or {"sp500": "SPY", "btc": "BINANCE:BTCUSDT", "vix": "VIX"})
        missing = [name for name in INDICATORS if name not in symbols]
        if missing:
            raise ValueError(f"No symbol configured for indicators: {', '.join(missing)}")
        if not isinstance(cache_duration, datetime.timedelta):
            cache_duration = datetime.timedelta(seconds=cache_duration)

        self.api_key = api_key or None
        self.cache = cache if cache is not None else MemorySnapshotCache()
        self.symbols = {name: symbols[name] for name in INDICATORS}
        self.cache_duration = cache_duration
        self.request_timeout = request_timeout
        self._quote_fetcher = quote_fetcher or finnhub.fetch_quote
        self._rng = rng or random.Random()
        self._clock = clock or utc_now
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, config: Settings) -> "MarketSnapshotProvider":
        return cls(
            config.finnhub_api_key,
            cache=build_cache(config),
            quote_fetcher=partial(finnhub.fetch_quote, base_url=config.finnhub_base_url),
            symbols=config.market.symbols,
            cache_duration=config.market.cache_duration_seconds,
            request_timeout=config.market.request_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self.api_key is not None

    def now(self) -> datetime.datetime:
        return self._clock()

    def _fresh_snapshot(self, now: datetime.datetime) -> MarketSnapshot | None:
        entry = self.cache.get()
        if entry is None:
            return None
        if now - entry.fetched_at < self.cache_duration:
            return entry.snapshot
        return None

    def get_snapshot(self) -> MarketSnapshot:
        cached = self._fresh_snapshot(self.now())
        if cached is not None:
            logger.debug("Returning cached market data")
            return cached

        with self._lock:
            # Another caller may have refreshed while we waited.
            now = self.now()
            cached = self._fresh_snapshot(now)
            if cached is not None:
                logger.debug("Returning market data refreshed by a concurrent caller")
                return cached

            if not self.is_configured:
                logger.warning("FINNHUB_API_KEY not configured, using fallback market data")
                return build_fallback_snapshot(self._rng, now)

            try:
                return self._refresh(now)
            except Exception:
                logger.exception("Market data fetch failed, using fallback market data")
                return build_fallback_snapshot(self._rng, now)

    def _refresh(self, now: datetime.datetime) -> MarketSnapshot:
        logger.info("Fetching market data from Finnhub")
        quotes = self._fetch_quotes()
        failed = [name for name, quote in quotes.items() if quote is None]
        if failed:
            logger.warning(
                "Missing market data for %s, using fallback market data",
                ", ".join(failed),
            )
            return build_fallback_snapshot(self._rng, now)

        snapshot = build_live_snapshot(quotes, now)
        self.cache.set(CacheEntry(snapshot=snapshot, fetched_at=now))
        logger.info("Market data fetched successfully")
        return snapshot

    def _fetch_quotes(self) -> dict[str, dict | None]:
        # Every lookup runs to completion before the all-or-nothing decision.
        with ThreadPoolExecutor(
            max_workers=len(self.symbols), thread_name_prefix="finnhub-quote"
        ) as pool:
            futures = {
                name: pool.submit(self._fetch_one, symbol)
                for name, symbol in self.symbols.items()
            }
            return {name: future.result() for name, future in futures.items()}

    def _fetch_one(self, symbol: str) -> dict | None:
        try:
            quote = self._quote_fetcher(symbol, self.api_key, timeout=self.request_timeout)
        except Exception:
            logger.warning("Error fetching %s", symbol, exc_info=True)
            return None
        if not isinstance(quote, Mapping) or not finnhub.has_usable_price(quote):
            if quote is not None:
                logger.warning("Quote for %s has no usable price", symbol)
            return None
        return quote

    def peek(self) -> CacheEntry | None:
        return self.cache.get()

    def clear_cache(self) -> None:
        with self._lock:
            self.cache.clear()
        logger.info("Market data cache cleared")

    def refresh(self) -> MarketSnapshot:
        self.clear_cache()
        return self.get_snapshot()


_default_provider: MarketSnapshotProvider | None = None
_default_provider_lock = threading.Lock()


def get_provider() -> MarketSnapshotProvider:
    global _default_provider
    with _default_provider_lock:
        if _default_provider is None:
            _default_provider = MarketSnapshotProvider.from_settings(settings)
        return _default_provider


def reset_provider() -> None:
    global _default_provider
    with _default_provider_lock:
        _default_provider = None


def get_snapshot() -> MarketSnapshot:
    return get_provider().get_snapshot()


def clear_cache() -> None:
    get_provider().clear_cache()
