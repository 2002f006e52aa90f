from __future__ import annotations

import json
import logging
import math
from typing import Protocol

from pydantic import ValidationError
from redis import Redis

from app.config.settings import Settings
from app.schemas.market import CacheEntry

logger = logging.getLogger(__name__)


class SnapshotCache(Protocol):
    name: str

    def get(self) -> CacheEntry | None: ...

    def set(self, entry: CacheEntry) -> None: ...

    def clear(self) -> None: ...


class MemorySnapshotCache:
    """Process-local cache holding a single entry."""

    name = "memory"

    def __init__(self) -> None:
        self._entry: CacheEntry | None = None

    def get(self) -> CacheEntry | None:
        return self._entry

    def set(self, entry: CacheEntry) -> None:
        self._entry = entry

    def clear(self) -> None:
        self._entry = None


class RedisSnapshotCache:
    """Single-entry cache shared between worker processes through Redis.

    Redis errors are never surfaced: reads fall back to a miss and writes are
    dropped, so an outage only costs extra upstream calls.
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str,
        key: str,
        ttl_seconds: float,
        client: Redis | None = None,
    ) -> None:
        self.redis_url = redis_url
        self.key = key
        self.ttl_seconds = max(1, math.ceil(ttl_seconds))
        self._client = client

    def _get_client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self.redis_url)
        return self._client

    def get(self) -> CacheEntry | None:
        try:
            client = self._get_client()
            raw = client.get(self.key)
        except Exception:
            logger.warning("Redis read for %s failed", self.key, exc_info=True)
            return None

        if not raw:
            return None

        try:
            payload = json.loads(raw)
            return CacheEntry.model_validate(payload)
        except (json.JSONDecodeError, TypeError, ValueError, ValidationError):
            logger.warning("Discarding unreadable cache entry at %s", self.key)
            return None

    def set(self, entry: CacheEntry) -> None:
        try:
            client = self._get_client()
            client.setex(
                self.key,
                self.ttl_seconds,
                entry.model_dump_json(by_alias=True),
            )
        except Exception:
            logger.warning("Redis write for %s failed", self.key, exc_info=True)

    def clear(self) -> None:
        try:
            client = self._get_client()
            client.delete(self.key)
        except Exception:
            logger.warning("Redis delete for %s failed", self.key, exc_info=True)


def build_cache(config: Settings) -> SnapshotCache:
    if config.market.cache_backend == "redis":
        return RedisSnapshotCache(
            redis_url=config.redis_url,
            key=config.market.redis_key,
            ttl_seconds=config.market.cache_duration_seconds,
        )
    return MemorySnapshotCache()
