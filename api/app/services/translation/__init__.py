"""Translation package for tenant text normalization.

This package provides:
- GlossaryManager: Preserves tenant terminology during translation
- LanguageDetector: Detects input language with a local langdetect model
- TranslationCache: Two-tier caching (Redis + bounded in-process map)
- CircuitBreakerRegistry: Per-provider failure isolation
- TranslatorRegistry: DeepL and Google provider adapters
- TranslationService: Main orchestrator for single and batch normalization
"""

from app.services.translation.cache import LocalCache, RedisStore, TranslationCache
from app.services.translation.circuit_breaker import (
    BreakerOptions,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from app.services.translation.glossary_manager import GlossaryManager
from app.services.translation.language_detector import LanguageDetector
from app.services.translation.translation_service import TranslationService

__all__ = [
    "BreakerOptions",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "GlossaryManager",
    "LanguageDetector",
    "LocalCache",
    "RedisStore",
    "TranslationCache",
    "TranslationService",
]
