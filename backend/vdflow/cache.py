"""
VDFlow — Redis Caching Layer

Finished analyses are stored as JSON for the rest of their trading date.
When Redis is unreachable every lookup is a miss and every store is a
no-op, so the API keeps serving (slower) instead of failing.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import redis
import structlog

from vdflow.config import get_settings

log = structlog.get_logger(__name__)

KEY_PREFIX = "vdf"


def analysis_key(ticker: str, mode: str, trade_date: str) -> str:
    """Cache key for one analysis; results are valid for one trading date."""
    return f"{KEY_PREFIX}:{ticker}:{mode}:{trade_date}"


def analysis_pattern(ticker: str, mode: str = "*") -> str:
    """Match every cached trading date of ``ticker`` (optionally one mode)."""
    return f"{KEY_PREFIX}:{ticker}:{mode}:*"


# ──────────────────────────────────────────────
# Redis Cache Client
# ──────────────────────────────────────────────


class RedisCache:
    """JSON-over-Redis store with graceful degradation.

    ``client`` may be any object exposing ``get``/``setex``/``delete``/
    ``scan_iter``; when omitted a connection is opened to ``url``.
    """

    def __init__(self, url: Optional[str] = None, client: Any = None):
        self._url = url or get_settings().redis_url
        self._client = client
        self._available = client is not None
        if client is None:
            self._connect()

    def _connect(self):
        try:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
            self._client.ping()
            self._available = True
            log.info("cache.connected", url=self._url)
        except (redis.RedisError, OSError, ValueError) as exc:
            log.warning("cache.unavailable", url=self._url, error=str(exc))
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def get(self, key: str) -> Optional[Any]:
        """Decoded value, or None on miss, Redis error or corrupt entry."""
        if not self._available:
            return None
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            log.warning("cache.get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("cache.corrupt_entry", key=key)
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        if not self._available:
            return False
        try:
            self._client.setex(key, ttl, json.dumps(value, default=str))
        except redis.RedisError as exc:
            log.warning("cache.set_failed", key=key, error=str(exc))
            return False
        return True

    def invalidate(self, pattern: str) -> int:
        """Drop every key matching ``pattern``; returns how many were removed."""
        if not self._available:
            return 0
        try:
            keys = list(self._client.scan_iter(match=pattern))
            removed = self._client.delete(*keys) if keys else 0
        except redis.RedisError as exc:
            log.warning("cache.invalidate_failed", pattern=pattern, error=str(exc))
            return 0
        log.debug("cache.invalidated", pattern=pattern, removed=removed)
        return removed


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_cache: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get or create the Redis cache singleton."""
    global _cache
    if _cache is None:
        _cache = RedisCache()
    return _cache
