"""Tests for the two-tier translation cache."""

from unittest.mock import AsyncMock

import pytest
from app.models.normalize import LanguageDetectionResult
from app.services.translation.cache import (
    LocalCache,
    TranslationCache,
    make_cache_key,
    make_detection_key,
)
from conftest import FakeClock, FakeRemoteStore

# =============================================================================
# KEY DERIVATION
# =============================================================================


class TestCacheKeys:
    def test_key_is_deterministic_and_namespaced(self):
        key = make_cache_key("Hola mundo", "es", "en", "deepl")

        assert key == make_cache_key("Hola mundo", "es", "en", "deepl")
        assert key.startswith("translation:")
        assert len(key.split(":", 1)[1]) == 32

    def test_key_depends_on_every_component(self):
        base = make_cache_key("Hola", "es", "en", "deepl")

        assert base != make_cache_key("Hola!", "es", "en", "deepl")
        assert base != make_cache_key("Hola", "pt", "en", "deepl")
        assert base != make_cache_key("Hola", "es", "de", "deepl")
        assert base != make_cache_key("Hola", "es", "en", "google")
        assert make_cache_key("Hola", "es", "en", "deepl", namespace="custom").startswith(
            "custom:"
        )

    def test_detection_key_uses_own_namespace(self):
        assert make_detection_key("Hola mundo").startswith("langdetect:")


# =============================================================================
# LOCAL TIER
# =============================================================================


class TestLocalCache:
    def test_expired_entries_are_misses(self):
        clock = FakeClock()
        cache = LocalCache(clock=clock)
        cache.set("k", "v", ttl_seconds=10)

        clock.advance(9)
        assert cache.get("k") == "v"

        clock.advance(1)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_full_cache_drops_expired_entries_first(self):
        clock = FakeClock()
        cache = LocalCache(max_size=3, eviction_batch=2, clock=clock)
        cache.set("old", "v", ttl_seconds=1)
        cache.set("a", "v", ttl_seconds=100)
        cache.set("b", "v", ttl_seconds=100)
        clock.advance(5)

        cache.set("c", "v", ttl_seconds=100)

        assert "old" not in cache
        assert all(key in cache for key in ("a", "b", "c"))

    def test_full_cache_evicts_oldest_batch(self):
        """Test that the oldest inserted batch is evicted when nothing expired."""
        cache = LocalCache(max_size=4, eviction_batch=2, clock=FakeClock())
        for key in ("k1", "k2", "k3", "k4"):
            cache.set(key, "v", ttl_seconds=100)

        cache.set("k5", "v", ttl_seconds=100)

        assert "k1" not in cache and "k2" not in cache
        assert all(key in cache for key in ("k3", "k4", "k5"))
        assert len(cache) == 3

    def test_delete_prefix(self):
        cache = LocalCache(clock=FakeClock())
        cache.set("translation:a", "v", 100)
        cache.set("translation:b", "v", 100)
        cache.set("langdetect:c", "v", 100)

        assert cache.delete_prefix("translation:") == 2
        assert len(cache) == 1

    def test_cleanup_expired_and_clear(self):
        clock = FakeClock()
        cache = LocalCache(clock=clock)
        cache.set("short", "v", 5)
        cache.set("long", "v", 500)
        clock.advance(10)

        assert cache.cleanup_expired() == 1
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0


# =============================================================================
# TWO-TIER CACHE
# =============================================================================


class TestTranslationCache:
    @pytest.mark.asyncio
    async def test_round_trip_with_remote_available(self):
        remote = FakeRemoteStore()
        cache = TranslationCache(remote=remote, local=LocalCache(clock=FakeClock()))

        await cache.set("k", "v", ttl=60)

        assert await cache.get("k") == "v"
        assert remote.data == {"k": "v"}
        assert remote.ttls["k"] == 60
        # Remote success means nothing is written locally
        assert len(cache.local) == 0

    @pytest.mark.asyncio
    async def test_round_trip_local_only(self):
        cache = TranslationCache(local=LocalCache(clock=FakeClock()))

        await cache.set("k", "v")

        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_to_local(self):
        remote = FakeRemoteStore(fail=True)
        cache = TranslationCache(remote=remote, local=LocalCache(clock=FakeClock()))

        await cache.set("k", "v")

        assert "k" in cache.local
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_unavailable_remote_is_skipped(self):
        remote = FakeRemoteStore(available=False)
        cache = TranslationCache(remote=remote, local=LocalCache(clock=FakeClock()))

        await cache.set("k", "v")

        assert remote.data == {}
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_non_positive_ttl_is_never_returned(self, ttl):
        remote = FakeRemoteStore()
        cache = TranslationCache(remote=remote, local=LocalCache(clock=FakeClock()))

        await cache.set("k", "v", ttl=ttl)

        assert await cache.get("k") is None
        assert remote.data == {}

    @pytest.mark.asyncio
    async def test_disabled_cache_always_misses(self):
        cache = TranslationCache(enabled=False)

        await cache.set("k", "v")

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_removes_from_both_tiers(self):
        remote = FakeRemoteStore()
        local = LocalCache(clock=FakeClock())
        cache = TranslationCache(remote=remote, local=local)
        remote.data.update({"translation:a": "1", "translation:b": "2", "other:c": "3"})
        local.set("translation:z", "4", 100)

        removed = await cache.invalidate("translation:")

        assert removed == 3
        assert list(remote.data) == ["other:c"]
        assert len(local) == 0

    @pytest.mark.asyncio
    async def test_invalidate_counts_only_keys_actually_deleted(self, monkeypatch):
        """Test that keys expiring between listing and deletion are not counted."""
        remote = FakeRemoteStore()
        remote.data["translation:a"] = "1"
        monkeypatch.setattr(
            remote,
            "list_keys",
            AsyncMock(return_value=["translation:a", "translation:expired"]),
        )
        cache = TranslationCache(remote=remote, local=LocalCache(clock=FakeClock()))

        assert await cache.invalidate("translation:") == 1
        assert remote.data == {}

    @pytest.mark.asyncio
    async def test_invalidate_counts_remote_errors_as_zero(self):
        remote = FakeRemoteStore(fail=True)
        local = LocalCache(clock=FakeClock())
        local.set("translation:z", "4", 100)
        cache = TranslationCache(remote=remote, local=local)

        assert await cache.invalidate("translation:") == 1

    @pytest.mark.asyncio
    async def test_translation_helpers_use_fingerprint(self):
        remote = FakeRemoteStore()
        cache = TranslationCache(remote=remote)

        await cache.set_translation("Hola", "es", "en", "deepl", "Hello")

        assert await cache.get_translation("Hola", "es", "en", "deepl") == "Hello"
        assert await cache.get_translation("Hola", "es", "en", "google") is None
        assert make_cache_key("Hola", "es", "en", "deepl") in remote.data

    @pytest.mark.asyncio
    async def test_translation_helpers_honor_namespace(self):
        remote = FakeRemoteStore()
        cache = TranslationCache(remote=remote)

        await cache.set_translation(
            "Hola", "es", "en", "deepl", "Hello", namespace="glossary-v2"
        )

        assert (
            await cache.get_translation("Hola", "es", "en", "deepl", namespace="glossary-v2")
            == "Hello"
        )
        assert await cache.get_translation("Hola", "es", "en", "deepl") is None
        assert make_cache_key("Hola", "es", "en", "deepl", "glossary-v2") in remote.data

    @pytest.mark.asyncio
    async def test_detection_round_trip_uses_day_long_ttl(self):
        remote = FakeRemoteStore()
        cache = TranslationCache(remote=remote)
        detection = LanguageDetectionResult(lang="es", confidence=0.95, is_reliable=True)

        await cache.set_detection("Hola mundo", detection)

        assert await cache.get_detection("Hola mundo") == detection
        assert remote.ttls[make_detection_key("Hola mundo")] == 86400

    @pytest.mark.asyncio
    async def test_malformed_detection_entry_is_a_miss(self):
        remote = FakeRemoteStore()
        remote.data[make_detection_key("Hola mundo")] = "not json"
        cache = TranslationCache(remote=remote)

        assert await cache.get_detection("Hola mundo") is None

    @pytest.mark.asyncio
    async def test_stats_track_hits_and_misses(self):
        cache = TranslationCache(local=LocalCache(clock=FakeClock()))
        await cache.set("k", "v")
        await cache.get("k")
        await cache.get("missing")

        stats = cache.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_ratio"] == 0.5
        assert stats["remote_available"] is False
