"""
Pytest configuration and fixtures for the text normalization gateway.

This module provides:
- Test settings with no external services configured
- Fake clock, remote store and translators for deterministic pipeline tests
- A fully wired TranslationService with fresh registries per test
"""

from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from app.core.config import Settings
from app.models.normalize import LanguageDetectionResult, TranslationResult
from app.services.translation.cache import LocalCache, TranslationCache
from app.services.translation.circuit_breaker import (
    BreakerOptions,
    CircuitBreakerRegistry,
)
from app.services.translation.providers import (
    ProviderName,
    RetryPolicy,
    Translator,
    TranslatorRegistry,
)
from app.services.translation.translation_service import TranslationService
from app.services.translation.usage_tracker import UsageTracker


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteStore:
    """In-memory RemoteStore that can be switched off or made to fail."""

    def __init__(self, available: bool = True, fail: bool = False):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self._available = available
        self.fail = fail

    @property
    def available(self) -> bool:
        return self._available

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("remote store down")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    async def list_keys(self, prefix: str) -> List[str]:
        self._check()
        return [k for k in self.data if k.startswith(prefix)]

    async def delete(self, keys: List[str]) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed


class FakeTranslator(Translator):
    """Translator returning canned translations without any HTTP."""

    def __init__(
        self,
        name: str = "deepl",
        translations: Optional[Dict[str, str]] = None,
        available: bool = True,
        error: Optional[Exception] = None,
        detected_source_lang: Optional[str] = None,
    ):
        self.name = name
        super().__init__(api_key="", retry_policy=RetryPolicy(base_delay=0))
        self._available = available
        self.translations = translations or {}
        self.error = error
        self.detected_source_lang = detected_source_lang
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return self._available

    def map_source_lang(self, lang: str) -> Optional[str]:
        return None if lang in ("und", "auto") else lang

    def map_target_lang(self, lang: str) -> str:
        return lang

    async def _translate_texts(self, texts, source_lang, target_lang):
        self.calls.append((tuple(texts), source_lang, target_lang))
        if self.error is not None:
            raise self.error
        return [
            TranslationResult(
                text=self.translations.get(t, f"[{target_lang}] {t}"),
                detected_source_lang=self.detected_source_lang,
            )
            for t in texts
        ]

    async def _fetch_supported_languages(self) -> List[str]:
        return ["en", "es", "de"]


def make_detector(lang: str = "es", confidence: float = 0.95) -> AsyncMock:
    """Detector double whose detect() returns a fixed result."""
    detector = AsyncMock()
    detector.name = "langdetect"
    detector.is_available = lambda: True
    detector.detect = AsyncMock(
        return_value=LanguageDetectionResult(
            lang=lang, confidence=confidence, is_reliable=lang != "und"
        )
    )
    return detector


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no providers, Redis or .env file involved."""
    return Settings(
        _env_file=None,
        DEEPL_API_KEY="",
        GOOGLE_TRANSLATE_API_KEY="",
        REDIS_ENABLED=False,
    )


@pytest.fixture
def deepl_translator() -> FakeTranslator:
    return FakeTranslator(
        name=ProviderName.DEEPL.value, translations={"Hola mundo": "Hello world"}
    )


@pytest.fixture
def google_translator() -> FakeTranslator:
    return FakeTranslator(name=ProviderName.GOOGLE.value)


@pytest.fixture
def usage_sink() -> AsyncMock:
    sink = AsyncMock()
    sink.record = AsyncMock(return_value=None)
    return sink


@pytest.fixture
def service(deepl_translator, google_translator, usage_sink, fake_clock):
    """TranslationService wired with fakes and fresh registries."""
    translators = TranslatorRegistry(default_provider=ProviderName.DEEPL)
    translators.register(deepl_translator)
    translators.register(google_translator)
    return TranslationService(
        translators=translators,
        breakers=CircuitBreakerRegistry(
            BreakerOptions(volume_threshold=2, reset_timeout=30.0), clock=fake_clock
        ),
        cache=TranslationCache(local=LocalCache(clock=fake_clock)),
        detector=make_detector(),
        usage_tracker=UsageTracker(usage_sink),
    )
