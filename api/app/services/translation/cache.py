"""Two-tier caching for translation and language-detection results.

Remote: shared Redis store, authoritative when reachable (TTL enforced by Redis)
Local: bounded in-process map used only when the remote tier is unavailable

A cache failure never surfaces to the pipeline: the cache degrades to
local-only, and finally to a pure pass-through (every lookup is a miss).
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

import redis.asyncio as aioredis

from app.metrics.translation_metrics import translation_cache_lookups_total
from app.models.normalize import LanguageDetectionResult

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "translation"
DETECTION_NAMESPACE = "langdetect"
KEY_HASH_LENGTH = 32


def make_cache_key(
    text: str,
    source_lang: str,
    target_lang: str,
    provider: str,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    """Generate the fingerprint of a translation request.

    Args:
        text: Text sent to the provider.
        source_lang: Source language code.
        target_lang: Target language code.
        provider: Provider name.
        namespace: Key namespace (prefix).

    Returns:
        ``<namespace>:<32 hex chars of sha256>``
    """
    content = f"{text}:{source_lang}:{target_lang}:{provider}"
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()[:KEY_HASH_LENGTH]
    return f"{namespace}:{digest}"


def make_detection_key(text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:KEY_HASH_LENGTH]
    return f"{DETECTION_NAMESPACE}:{digest}"


class RemoteStore(Protocol):
    """Shared key-value store consumed by the cache (and the rate limiter)."""

    @property
    def available(self) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def list_keys(self, prefix: str) -> List[str]: ...

    async def delete(self, keys: List[str]) -> int: ...


class RedisStore:
    """Redis implementation of RemoteStore.

    Keys are stored under ``key_prefix`` (default ``tl:``); callers always
    work with unprefixed keys.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        key_prefix: str = "tl:",
        client: Optional[aioredis.Redis] = None,
    ):
        self.url = url
        self.key_prefix = key_prefix
        self._client = client
        self._available = client is not None

    @property
    def available(self) -> bool:
        return self._available and self._client is not None

    @property
    def client(self) -> Optional[aioredis.Redis]:
        return self._client

    async def connect(self) -> bool:
        """Create the client and ping the server.

        Returns:
            True if Redis is reachable. Failures are logged, never raised.
        """
        try:
            if self._client is None:
                self._client = aioredis.from_url(self.url, decode_responses=True)
            await self._client.ping()
            self._available = True
            logger.info(f"Connected to Redis at {self.url}")
        except Exception as e:
            self._available = False
            logger.warning(
                f"Redis unavailable at {self.url}, using in-process cache only: {e}"
            )
        return self._available

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._available = False

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(self._full_key(key))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.setex(self._full_key(key), ttl_seconds, value)

    async def list_keys(self, prefix: str) -> List[str]:
        # SCAN instead of KEYS so invalidation never blocks the server
        keys = []
        async for full_key in self._client.scan_iter(match=f"{self._full_key(prefix)}*"):
            keys.append(full_key[len(self.key_prefix) :])
        return keys

    async def delete(self, keys: List[str]) -> int:
        if not keys:
            return 0
        return await self._client.delete(*(self._full_key(k) for k in keys))


@dataclass
class _LocalEntry:
    value: str
    expires_at: float


class LocalCache:
    """Bounded in-process cache with per-entry expiry.

    When full, expired entries are dropped first; if that is not enough the
    oldest-inserted ``eviction_batch`` entries are evicted before inserting.
    """

    def __init__(
        self,
        max_size: int = 10000,
        eviction_batch: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the local cache.

        Args:
            max_size: Maximum number of entries to store.
            eviction_batch: Entries evicted at once under capacity pressure.
            clock: Time source in seconds (injectable for tests).
        """
        self._entries: "OrderedDict[str, _LocalEntry]" = OrderedDict()
        self.max_size = max_size
        self.eviction_batch = eviction_batch
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[str]:
        """Return the live value for key, dropping it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        with self._lock:
            # Re-inserting moves the key to the newest position
            self._entries.pop(key, None)
            if len(self._entries) >= self.max_size:
                self._cleanup_expired_locked()
                if len(self._entries) >= self.max_size:
                    for _ in range(min(self.eviction_batch, len(self._entries))):
                        self._entries.popitem(last=False)
                    logger.debug(
                        f"Local cache full, evicted oldest {self.eviction_batch} entries"
                    )
            self._entries[key] = _LocalEntry(
                value=value, expires_at=self._clock() + ttl_seconds
            )

    def _cleanup_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._cleanup_expired_locked()

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            matching = [k for k in self._entries if k.startswith(prefix)]
            for key in matching:
                del self._entries[key]
            return len(matching)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class TranslationCache:
    """Two-tier cache combining a shared remote store and a LocalCache.

    Reads try remote first and fall through to local on miss or error.
    Writes go to remote; only when that fails do they land in local, so an
    entry is never double-written.
    """

    def __init__(
        self,
        remote: Optional[RemoteStore] = None,
        local: Optional[LocalCache] = None,
        enabled: bool = True,
        ttl_seconds: int = 3600,
        detection_ttl_seconds: int = 86400,
    ):
        """Initialize the two-tier cache.

        Args:
            remote: Shared store (e.g. RedisStore); None means local only.
            local: In-process fallback store.
            enabled: When False every lookup misses and writes are dropped.
            ttl_seconds: Default TTL for translation results.
            detection_ttl_seconds: TTL for language detection results.
        """
        self.remote = remote
        self.local = local or LocalCache()
        self.enabled = enabled
        self.ttl_seconds = ttl_seconds
        self.detection_ttl_seconds = detection_ttl_seconds
        self.hits = 0
        self.misses = 0

    def _remote_ready(self) -> bool:
        return self.remote is not None and self.remote.available

    async def get(self, key: str) -> Optional[str]:
        """Get a value from the cache.

        Args:
            key: Cache key to look up.

        Returns:
            Cached value if a live entry exists in either tier, None otherwise.
        """
        if not self.enabled:
            return None

        if self._remote_ready():
            try:
                value = await self.remote.get(key)
                if value is not None:
                    self.hits += 1
                    translation_cache_lookups_total.labels(tier="remote", result="hit").inc()
                    logger.debug(f"Cache hit (remote): {key}")
                    return value
            except Exception as e:
                logger.warning(f"Remote cache get failed, falling back to local: {e}")

        value = self.local.get(key)
        if value is not None:
            self.hits += 1
            translation_cache_lookups_total.labels(tier="local", result="hit").inc()
            logger.debug(f"Cache hit (local): {key}")
            return value

        self.misses += 1
        translation_cache_lookups_total.labels(tier="all", result="miss").inc()
        logger.debug(f"Cache miss: {key}")
        return None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store a value with a time-to-live.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time-to-live in seconds (defaults to ttl_seconds). A ttl of
                zero or less stores nothing.
        """
        if not self.enabled:
            return
        ttl = self.ttl_seconds if ttl is None else ttl
        if ttl <= 0:
            logger.debug(f"Skipping cache write with non-positive ttl for {key}")
            return

        if self._remote_ready():
            try:
                await self.remote.set_with_ttl(key, value, ttl)
                logger.debug(f"Cached (remote): {key} ttl={ttl}")
                return
            except Exception as e:
                logger.warning(f"Remote cache set failed, falling back to local: {e}")

        self.local.set(key, value, ttl)
        logger.debug(f"Cached (local): {key} ttl={ttl}")

    async def invalidate(self, pattern: str) -> int:
        """Remove all keys starting with pattern from both tiers.

        Returns:
            Total number of removed entries. Remote errors count as zero.
        """
        count = 0
        if self._remote_ready():
            try:
                keys = await self.remote.list_keys(pattern)
                if keys:
                    # Keys expiring between SCAN and DEL are not counted
                    count += await self.remote.delete(keys)
            except Exception as e:
                logger.warning(f"Remote cache invalidation failed: {e}")

        count += self.local.delete_prefix(pattern)
        logger.info(f"Cache invalidated: pattern={pattern!r} count={count}")
        return count

    async def get_translation(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        provider: str,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> Optional[str]:
        key = make_cache_key(text, source_lang, target_lang, provider, namespace)
        return await self.get(key)

    async def set_translation(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        provider: str,
        translated_text: str,
        ttl: Optional[int] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        key = make_cache_key(text, source_lang, target_lang, provider, namespace)
        await self.set(key, translated_text, ttl)

    async def get_detection(self, text: str) -> Optional[LanguageDetectionResult]:
        raw = await self.get(make_detection_key(text))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return LanguageDetectionResult(
                lang=data["lang"],
                confidence=float(data["confidence"]),
                is_reliable=bool(data.get("is_reliable", False)),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed detection cache entry: {e}")
            return None

    async def set_detection(self, text: str, result: LanguageDetectionResult) -> None:
        value = json.dumps(
            {
                "lang": result.lang,
                "confidence": result.confidence,
                "is_reliable": result.is_reliable,
            }
        )
        await self.set(make_detection_key(text), value, self.detection_ttl_seconds)

    def get_stats(self) -> Dict[str, object]:
        """Get cache statistics.

        Returns:
            Dict with hits, misses, hit ratio, local size and remote status.
        """
        total = self.hits + self.misses
        return {
            "enabled": self.enabled,
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": self.hits / total if total > 0 else 0,
            "memory_size": len(self.local),
            "max_size": self.local.max_size,
            "remote_available": self._remote_ready(),
        }
