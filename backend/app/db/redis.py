"""Redis-backed ephemeral store: cart sessions, checkout snapshots, rate limits, caches"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing fakes to be injected first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Key prefixes
CART_PREFIX = "cart:"
CHECKOUT_PREFIX = "checkout:"
RATE_LIMIT_PREFIX = "ratelimit:"
SHIPPING_PREFIX = "shipping:"


# Increment a counter; set its TTL only when the key is new (fixed window)
INCREMENT_WITH_TTL_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""


class KVStore(Protocol):
    """Minimal TTL key-value interface the pipeline depends on"""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def increment_with_ttl(self, key: str, ttl: int) -> int: ...

    def ttl(self, key: str) -> int: ...


class RedisKVStore:
    """KVStore over a redis-py client (or a fakeredis one in tests)"""

    def __init__(self, client):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self.client.setex(key, ttl, value)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def increment_with_ttl(self, key: str, ttl: int) -> int:
        """Increment a counter, starting its fixed window on the first hit.

        INCR and EXPIRE run in one Lua script so a counter can never be left without a TTL.
        """
        count = self.client.eval(INCREMENT_WITH_TTL_SCRIPT, 1, key, ttl)
        return int(count)

    def ttl(self, key: str) -> int:
        return int(self.client.ttl(key))


def get_kv_store() -> KVStore:
    """FastAPI dependency for the shared ephemeral store"""
    return RedisKVStore(get_redis_client())


def get_json(store: KVStore, key: str) -> Optional[Any]:
    """Read a JSON value; returns None when absent or expired"""
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Discarding undecodable value at {key}")
        return None


def set_json(store: KVStore, key: str, value: Any, ttl: int) -> None:
    store.set(key, json.dumps(value), ttl)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int


def check_rate_limit(store: KVStore, identity: str, endpoint: str, limit: int, window: int) -> RateLimitResult:
    """Fixed-window rate limit per (identity, endpoint). The counter's TTL is the window."""
    key = f"{RATE_LIMIT_PREFIX}{identity}:{endpoint}"
    current_count = store.increment_with_ttl(key, window)

    if current_count > limit:
        return RateLimitResult(allowed=False, remaining=0, limit=limit)

    return RateLimitResult(allowed=True, remaining=limit - current_count, limit=limit)


def invalidate_cache(store: KVStore, key: str) -> None:
    """Drop a cache entry. Best-effort: cache invalidation never fails the caller."""
    try:
        store.delete(key)
    except Exception as e:
        logger.warning(f"Failed to invalidate cache key {key}: {e}")
