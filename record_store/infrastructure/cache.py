"""
Read-through cache for catalog and order queries.

Redis is the shared store when ``REDIS_URL`` is configured; a
``cachetools.TLRUCache`` keeps the service working when Redis is absent or
failing. Values are JSON-serialisable payloads, keys are built with
``generate_key`` and evicted with glob patterns after every mutation.
Every eviction also bumps a per-prefix generation counter so a read that
loaded its value before the eviction does not cache it afterwards.
"""

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Callable, Dict, Optional, Tuple
import json
import time

import redis
from cachetools import TLRUCache

from shared.core import get_logger

logger = get_logger(__name__)

RECORDS_LIST = "records:list"
RECORDS_DETAIL = "records:detail"
ORDERS_LIST = "orders:list"
ORDERS_DETAIL = "orders:detail"


def generate_key(prefix: str, params: Dict[str, Any]) -> str:
    """Deterministic key: ``None`` values dropped, parameters sorted by name."""
    filtered = {k: v for k, v in params.items() if v is not None}
    return f"{prefix}:{json.dumps(filtered, sort_keys=True, default=str)}"


def list_pattern(prefix: str) -> str:
    return f"{prefix}:*"


def detail_key(prefix: str, entity_id: Any) -> str:
    return generate_key(prefix, {"id": entity_id})


def key_prefix(pattern: str) -> str:
    """``orders:list:*`` and ``orders:detail:{"id": 1}`` map to ``orders:list`` and ``orders:detail``."""
    head = pattern.split(":{", 1)[0]
    return head[:-2] if head.endswith(":*") else head


def _generation_key(prefix: str) -> str:
    # outside every eviction pattern
    return f"generation:{prefix}"


@dataclass(frozen=True)
class CacheOptions:
    key_prefix: str
    ttl: int = 300


@dataclass(frozen=True)
class _Entry:
    value: Any
    ttl: float


def _expires_at(_key, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class CacheStore:
    def __init__(self, redis_client: Optional[redis.Redis] = None, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        self.redis_client = redis_client
        self.local_cache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self.local_generations: Dict[str, int] = {}

    @classmethod
    def from_url(cls, redis_url: Optional[str], maxsize: int = 1024) -> "CacheStore":
        client = None
        if redis_url:
            try:
                client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=1)
                client.ping()
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable at startup, using in-process cache: {e}")
                client = None
        return cls(client, maxsize=maxsize)

    def get(self, key: str) -> Optional[Any]:
        if self.redis_client:
            try:
                val = self.redis_client.get(key)
                return json.loads(val) if val is not None else None
            except redis.RedisError as e:
                logger.warning(f"Redis GET failed for {key}: {e}")
        entry = self.local_cache.get(key)
        return entry.value if entry is not None else None

    def put(self, key: str, value: Any, ttl: int) -> None:
        if self.redis_client:
            try:
                self.redis_client.setex(key, ttl, json.dumps(value, default=str))
                return
            except redis.RedisError as e:
                logger.warning(f"Redis SETEX failed for {key}, caching locally: {e}")
        self.local_cache[key] = _Entry(value, ttl)

    def discard(self, key: str) -> None:
        self.local_cache.pop(key, None)
        if self.redis_client:
            try:
                self.redis_client.delete(key)
            except redis.RedisError as e:
                logger.warning(f"Redis DEL failed for {key}: {e}")

    def generation(self, prefix: str) -> Tuple[int, Optional[int]]:
        """Eviction counter of ``prefix``; changes whenever a matching pattern is evicted."""
        remote = None
        if self.redis_client:
            try:
                remote = int(self.redis_client.get(_generation_key(prefix)) or 0)
            except redis.RedisError as e:
                logger.warning(f"Redis GET failed for generation of {prefix}: {e}")
        return self.local_generations.get(prefix, 0), remote

    def delete_by_pattern(self, pattern: str) -> int:
        """Evict every key matching the glob ``pattern``; returns how many went.

        The generation of the pattern's prefix moves before any key is
        removed, in each store.
        """
        prefix = key_prefix(pattern)
        self.local_generations[prefix] = self.local_generations.get(prefix, 0) + 1
        removed = 0
        for key in tuple(self.local_cache.keys()):
            if fnmatchcase(key, pattern):
                self.local_cache.pop(key, None)
                removed += 1
        if self.redis_client:
            self.redis_client.incr(_generation_key(prefix))
            for key in self.redis_client.scan_iter(match=pattern):
                removed += self.redis_client.delete(key)
        return removed

    def ping(self) -> bool:
        if self.redis_client:
            return bool(self.redis_client.ping())
        return True


def read_through(cache: CacheStore, options: CacheOptions, params: Dict[str, Any], loader: Callable[[], Any]) -> Any:
    """Cached ``loader()`` result; a load overlapped by an eviction is returned but not kept."""
    key = generate_key(options.key_prefix, params)
    cached = cache.get(key)
    if cached is not None:
        return cached
    generation = cache.generation(options.key_prefix)
    value = loader()
    if cache.generation(options.key_prefix) != generation:
        return value
    cache.put(key, value, options.ttl)
    # an eviction may have landed between the check and the put
    if cache.generation(options.key_prefix) != generation:
        cache.discard(key)
    return value


class CacheInvalidator:
    """Evicts stale entries after a committed mutation.

    Failures are logged and never raised; an entry that survives a failed
    eviction expires with its TTL.
    """

    def __init__(self, cache: CacheStore):
        self.cache = cache

    def invalidate(self, *patterns: str) -> None:
        for pattern in patterns:
            try:
                removed = self.cache.delete_by_pattern(pattern)
            except redis.RedisError as e:
                logger.error(f"Cache invalidation failed for {pattern}: {e}")
                continue
            logger.debug(f"Invalidated {removed} cache entries for {pattern}")
