"""
Caching layer for resolved rate sets.

Two levels, as in most of our services:
1. In-memory dict (process level)
2. Redis (shared across processes), when a URL or client is configured

Entries live in three namespaces (route, zone, service_type), each with its
own TTL. Every rate write clears the whole cache. Keys embed a generation
number that ``clear()`` bumps, so a reader that started computing before a
write can never publish its stale result where later readers will find it.
A failing cache backend is logged and bypassed, never surfaced. If Redis
cannot be cleared after a write, this process stops reading it until the
shared generation can be advanced.
"""

from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable
import json
import logging
import threading
import time

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "rates"
GENERATION_KEY = f"{KEY_PREFIX}:generation"
NAMESPACES = ("route", "zone", "service_type")
DEFAULT_TTLS = {"route": 1800, "zone": 1800, "service_type": 3600}
MAX_MEMORY_ENTRIES = 1000
SWEEP_INTERVAL = 60.0

# ("redis", shared generation) or ("local", in-process generation)
Generation = Tuple[str, int]


@runtime_checkable
class RateCache(Protocol):
    """Contract the resolver depends on."""

    def init(self, ttls: Dict[str, int]) -> None:
        ...

    def get_or_compute(self, namespace: str, key: str, compute: Callable[[], Any]) -> Any:
        ...

    def clear(self, namespace: Optional[str] = None) -> None:
        ...

    def teardown(self) -> None:
        ...


class JsonCodec:
    """Default codec for Redis values; objects must be JSON-serializable."""

    def dumps(self, value: Any) -> str:
        return json.dumps(value)

    def loads(self, raw) -> Any:
        return json.loads(raw)


class PriceCache:
    """
    Generation-stamped, namespaced cache with optional Redis backing.

    Args:
        redis_url: Redis connection URL (e.g., redis://localhost:6379/0)
        redis_client: an already constructed client; wins over redis_url
        codec: object with dumps/loads used for values stored in Redis
        ttls: seconds per namespace
        max_entries: bound on the in-memory level
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client=None,
        codec=None,
        ttls: Optional[Dict[str, int]] = None,
        max_entries: int = MAX_MEMORY_ENTRIES,
    ):
        self.codec = codec or JsonCodec()
        self.redis_client = redis_client
        self.ttls: Dict[str, int] = dict(DEFAULT_TTLS)
        self.max_entries = max_entries

        self._lock = threading.Lock()
        self._generation = 0
        # Set when a Redis clear failed: Redis may still hold pre-write entries
        self._redis_degraded = False
        self._next_sweep = 0.0
        self._memory_cache: Dict[Tuple[Generation, str, str], Tuple[float, Any]] = {}

        if self.redis_client is None and redis_url:
            try:
                self.redis_client = redis.from_url(redis_url)
                self.redis_client.ping()
                logger.info("Redis cache initialized at %s", redis_url)
            except Exception as e:
                logger.warning("Redis connection failed: %s. Using in-memory cache only.", e)
                self.redis_client = None

        self.init(ttls or {})

    def init(self, ttls: Dict[str, int]) -> None:
        for namespace, ttl in ttls.items():
            if namespace not in NAMESPACES:
                raise ValueError(f"Unknown cache namespace: {namespace}")
            self.ttls[namespace] = int(ttl)

    def _redis_active(self) -> bool:
        return self.redis_client is not None and not self._redis_degraded

    def _current_generation(self) -> Generation:
        """("redis", n) while Redis is trusted, else ("local", n)."""
        if self._redis_active():
            raw = self.redis_client.get(GENERATION_KEY)
            return ("redis", int(raw) if raw is not None else 0)
        with self._lock:
            return ("local", self._generation)

    @staticmethod
    def _redis_key(generation: Generation, namespace: str, key: str) -> str:
        return f"{KEY_PREFIX}:{generation[1]}:{namespace}:{key}"

    def _try_recover(self) -> None:
        """Bump the shared generation so nothing written before the failed clear is read again."""
        try:
            self.redis_client.incr(GENERATION_KEY)
        except Exception as e:
            logger.debug("Redis still unavailable: %s", e)
            return
        with self._lock:
            self._redis_degraded = False
        logger.info("Redis cache recovered; shared generation advanced")

    def get_or_compute(self, namespace: str, key: str, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for (namespace, key) or compute and store it.

        Any cache backend error degrades to calling ``compute()`` directly.
        """
        if namespace not in NAMESPACES:
            raise ValueError(f"Unknown cache namespace: {namespace}")

        if self._redis_degraded:
            self._try_recover()

        try:
            generation = self._current_generation()
            hit, value = self._lookup(generation, namespace, key)
        except Exception as e:
            logger.warning("Rate cache unavailable (%s); computing %s:%s directly", e, namespace, key)
            return compute()

        if hit:
            logger.debug("Rate cache hit %s:%s", namespace, key)
            return value

        logger.debug("Rate cache miss %s:%s", namespace, key)
        value = compute()

        try:
            self._store(generation, namespace, key, value)
        except Exception as e:
            logger.warning("Rate cache write failed for %s:%s: %s", namespace, key, e)
        return value

    def _lookup(self, generation: Generation, namespace: str, key: str) -> Tuple[bool, Any]:
        memory_key = (generation, namespace, key)
        now = time.monotonic()

        # Level 1: in-memory
        with self._lock:
            entry = self._memory_cache.get(memory_key)
            if entry is not None:
                expires_at, value = entry
                if expires_at > now:
                    return True, value
                del self._memory_cache[memory_key]

        # Level 2: Redis
        if generation[0] == "redis":
            redis_key = self._redis_key(generation, namespace, key)
            raw = self.redis_client.get(redis_key)
            if raw is not None:
                value = self.codec.loads(raw)
                # Local copy never outlives the Redis entry (-1: no expiry, -2: gone)
                remaining_ms = self.redis_client.pttl(redis_key)
                if remaining_ms != -2:
                    ttl = self.ttls[namespace]
                    if remaining_ms is not None and remaining_ms >= 0:
                        ttl = min(ttl, remaining_ms / 1000.0)
                    with self._lock:
                        self._remember(memory_key, now + ttl, value, now)
                return True, value

        return False, None

    def _store(self, generation: Generation, namespace: str, key: str, value: Any) -> None:
        ttl = self.ttls[namespace]

        if generation[0] == "redis":
            if not self._redis_active() or self._current_generation() != generation:
                return
            self.redis_client.setex(self._redis_key(generation, namespace, key), ttl, self.codec.dumps(value))

        now = time.monotonic()
        with self._lock:
            # A clear() ran while we were computing; drop the result
            if generation[0] == "local" and generation[1] != self._generation:
                return
            self._remember((generation, namespace, key), now + ttl, value, now)

    def _remember(self, memory_key, expires_at: float, value: Any, now: float) -> None:
        """Insert into the memory level; caller holds the lock."""
        if now >= self._next_sweep or len(self._memory_cache) >= self.max_entries:
            for stale in [k for k, (expiry, _) in self._memory_cache.items() if expiry <= now]:
                del self._memory_cache[stale]
            self._next_sweep = now + SWEEP_INTERVAL
        # Oldest insertions go first once the bound is reached
        while len(self._memory_cache) >= self.max_entries:
            del self._memory_cache[next(iter(self._memory_cache))]
        self._memory_cache[memory_key] = (expires_at, value)

    def clear(self, namespace: Optional[str] = None) -> None:
        """
        Invalidate cached entries.

        With no namespace, every namespace is dropped and the generation
        advances. A namespace only drops that namespace's entries. When Redis
        cannot be cleared it is bypassed until its generation can be advanced.
        """
        with self._lock:
            if namespace is None:
                self._generation += 1
                self._memory_cache.clear()
            else:
                for memory_key in [k for k in self._memory_cache if k[1] == namespace]:
                    del self._memory_cache[memory_key]

        if self.redis_client is None:
            return

        try:
            if namespace is None:
                self.redis_client.incr(GENERATION_KEY)
                pattern = f"{KEY_PREFIX}:*"
            else:
                pattern = f"{KEY_PREFIX}:*:{namespace}:*"
            for key in self.redis_client.scan_iter(pattern):
                if key in (GENERATION_KEY, GENERATION_KEY.encode()):
                    continue
                self.redis_client.delete(key)
        except Exception as e:
            logger.warning("Redis clear error: %s. Bypassing Redis until it recovers.", e)
            with self._lock:
                self._redis_degraded = True
            return

        if namespace is None and self._redis_degraded:
            with self._lock:
                self._redis_degraded = False
            logger.info("Redis cache recovered; shared generation advanced")

    def teardown(self) -> None:
        self.clear()
        if self.redis_client is not None:
            try:
                self.redis_client.close()
            except Exception as e:
                logger.warning("Redis close error: %s", e)
            self.redis_client = None
        self._redis_degraded = False

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = len(self._memory_cache)
            generation = self._generation
        return {
            "backend": "redis" if self.redis_client is not None else "memory",
            "redis_degraded": self._redis_degraded,
            "memory_entries": entries,
            "max_entries": self.max_entries,
            "local_generation": generation,
            "ttls": dict(self.ttls),
        }
