"""Translation Service: the text normalization pipeline.

Orchestrates language detection, glossary preservation, caching, circuit
breaker guarded provider calls and usage accounting for tenant text records.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.core.exceptions import TranslationError, ValidationError
from app.metrics.translation_metrics import (
    normalization_decisions_total,
    translation_errors_total,
    translation_operation_duration_seconds,
    translation_requests_total,
)
from app.models.normalize import (
    MAX_BATCH_ITEMS,
    BatchMeta,
    BatchMode,
    BatchNormalizeRequest,
    BatchNormalizeResponse,
    CircuitBreakerSnapshot,
    LanguageDetectionResult,
    NormalizeMeta,
    NormalizeRequest,
    NormalizeResponse,
    TenantContext,
    TranslationResult,
    UsageRecord,
)
from app.services.translation.cache import LocalCache, RedisStore, TranslationCache
from app.services.translation.circuit_breaker import (
    BreakerOptions,
    CircuitBreakerRegistry,
)
from app.services.translation.glossary_manager import GlossaryManager
from app.services.translation.language_detector import UNDETERMINED, LanguageDetector
from app.services.translation.providers import Translator, TranslatorRegistry
from app.services.translation.usage_tracker import (
    DEFAULT_PROVIDER_RATES,
    NO_TRANSLATOR,
    UsageTracker,
    estimate_cost,
    sum_costs,
)
from app.utils.helpers import count_chars, generate_request_id
from app.utils.logging import preview

logger = logging.getLogger(__name__)


def _to_validation_error(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    loc = [str(part) for part in error.get("loc", ())]
    field = loc[0] if loc else None
    where = ".".join(loc) or "request"
    return ValidationError(f"Invalid {where}: {error.get('msg')}", field=field)


class TranslationService:
    """Main orchestrator for tenant text normalization.

    Flow per record:
    1. Resolve the source language (request value or detection)
    2. Skip translation when source equals target or is undetermined
    3. Wrap tenant glossary terms in preservation markers
    4. Translate through the provider's circuit breaker (with caching)
    5. Strip preservation markers
    6. Track usage (best-effort)
    7. Assemble the response

    All collaborators are injected, so each instance owns its own breaker
    registry, translator registry and cache.
    """

    def __init__(
        self,
        translators: TranslatorRegistry,
        breakers: Optional[CircuitBreakerRegistry] = None,
        cache: Optional[TranslationCache] = None,
        detector: Optional[LanguageDetector] = None,
        usage_tracker: Optional[UsageTracker] = None,
        redis_store: Optional[RedisStore] = None,
        default_target_lang: str = "en",
        provider_rates: Optional[Mapping[str, float]] = None,
        enable_provider_fallback: bool = False,
        batch_concurrency: int = 5,
    ):
        """Initialize the TranslationService.

        Args:
            translators: Registry of provider adapters.
            breakers: Circuit breaker registry (fresh one when omitted).
            cache: Two-tier translation cache (local-only when omitted).
            detector: Language detector (langdetect backend when omitted).
            usage_tracker: Best-effort usage tracker (logging sink when omitted).
            redis_store: Remote store whose lifecycle follows startup/shutdown.
            default_target_lang: Target language used when a request has none.
            provider_rates: USD per 1M characters by provider name.
            enable_provider_fallback: Swap an unconfigured preferred provider
                for any available one instead of failing.
            batch_concurrency: Default window size for concurrent batches.
        """
        self.translators = translators
        self.breakers = breakers or CircuitBreakerRegistry()
        self.cache = cache or TranslationCache()
        self.detector = detector or LanguageDetector()
        self.usage_tracker = usage_tracker or UsageTracker()
        self.redis_store = redis_store
        self.default_target_lang = default_target_lang
        self.provider_rates = dict(provider_rates or DEFAULT_PROVIDER_RATES)
        self.enable_provider_fallback = enable_provider_fallback
        self.batch_concurrency = batch_concurrency

        # One breaker per registered provider so listings and resets know them
        for name in self.translators.available():
            self.breakers.get_or_create(name)

        # Statistics
        self.stats = {
            "records_processed": 0,
            "skipped": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "translations_performed": 0,
            "translation_errors": 0,
            "provider_fallbacks": 0,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranslationService":
        """Build a service and all its collaborators from configuration."""
        redis_store = (
            RedisStore(settings.REDIS_URL, key_prefix=settings.REDIS_KEY_PREFIX)
            if settings.REDIS_ENABLED
            else None
        )
        cache = TranslationCache(
            remote=redis_store,
            local=LocalCache(
                max_size=settings.CACHE_MAX_SIZE,
                eviction_batch=settings.CACHE_EVICTION_BATCH_SIZE,
            ),
            enabled=settings.CACHE_ENABLED,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            detection_ttl_seconds=settings.LANGUAGE_DETECTION_CACHE_TTL_SECONDS,
        )
        breakers = CircuitBreakerRegistry(
            BreakerOptions(
                timeout=settings.CIRCUIT_BREAKER_TIMEOUT_SECONDS,
                error_threshold_percentage=settings.CIRCUIT_BREAKER_ERROR_THRESHOLD,
                reset_timeout=settings.CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS,
                volume_threshold=settings.CIRCUIT_BREAKER_VOLUME_THRESHOLD,
                rolling_window=settings.CIRCUIT_BREAKER_ROLLING_WINDOW_SECONDS,
                enabled=settings.CIRCUIT_BREAKER_ENABLED,
            )
        )
        detector = LanguageDetector(
            backend=settings.LANG_DETECT_BACKEND,
            min_chars=settings.LANG_DETECT_MIN_CHARS,
            confidence_threshold=settings.LANG_DETECT_CONFIDENCE_THRESHOLD,
        )
        return cls(
            translators=TranslatorRegistry.from_settings(settings),
            breakers=breakers,
            cache=cache,
            detector=detector,
            redis_store=redis_store,
            default_target_lang=settings.DEFAULT_TARGET_LANG,
            provider_rates=settings.PROVIDER_COST_PER_MILLION_CHARS,
            enable_provider_fallback=settings.ENABLE_PROVIDER_FALLBACK,
            batch_concurrency=settings.BATCH_CONCURRENCY,
        )

    async def startup(self) -> None:
        if self.redis_store is not None:
            await self.redis_store.connect()
        logger.info(
            f"Translation service started: providers={self.translators.available()} "
            f"detector={self.detector.name} available={self.detector.is_available()}"
        )

    async def shutdown(self) -> None:
        await self.translators.aclose()
        if self.redis_store is not None:
            try:
                await self.redis_store.aclose()
            except Exception as e:
                logger.warning(f"Failed to close Redis connection: {e}")
        logger.info("Translation service stopped")

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    @staticmethod
    def _record_decision(decision: str, source_lang: str) -> None:
        normalization_decisions_total.labels(
            decision=decision, source_lang=source_lang or UNDETERMINED
        ).inc()

    async def _detect_language(self, text: str) -> LanguageDetectionResult:
        cached = await self.cache.get_detection(text)
        if cached is not None:
            return cached
        detection = await self.detector.detect(text)
        # Undetermined results are not cached so a recovered backend is used at once
        if detection.lang != UNDETERMINED:
            await self.cache.set_detection(text, detection)
        return detection

    async def _resolve_source_lang(
        self, request: NormalizeRequest
    ) -> Tuple[str, Optional[float]]:
        """Stage 1: requested source language, else detection.

        Returns:
            (source language, detection confidence or None if detection did not run)
        """
        if request.source_lang:
            return request.source_lang.strip().lower(), None
        detection = await self._detect_language(request.text)
        return detection.lang, detection.confidence

    def _select_translator(self, tenant: TenantContext) -> Translator:
        translator = self.translators.for_tenant(tenant.translator_provider)
        if translator.is_available():
            return translator
        if self.enable_provider_fallback:
            fallback = self.translators.any_available(translator.name)
            if fallback is not None:
                self.stats["provider_fallbacks"] += 1
                logger.warning(
                    f"Provider {translator.name} unavailable for tenant {tenant.id}, "
                    f"falling back to {fallback.name}"
                )
                return fallback
        raise TranslationError(
            f"Translation provider {translator.name} is not configured",
            provider=translator.name,
        )

    async def _translate(
        self, translator: Translator, text: str, source_lang: str, target_lang: str
    ) -> Tuple[TranslationResult, bool]:
        """Stage 4: cache lookup, then breaker-guarded provider call.

        Returns:
            (translation result, whether it came from the cache)
        """
        cached = await self.cache.get_translation(
            text, source_lang, target_lang, translator.name
        )
        if cached is not None:
            self.stats["cache_hits"] += 1
            return TranslationResult(text=cached), True
        self.stats["cache_misses"] += 1

        breaker = self.breakers.get_or_create(translator.name)
        try:
            result = await breaker.call(
                translator.translate, text, source_lang, target_lang
            )
        except TranslationError as e:
            self.stats["translation_errors"] += 1
            translation_requests_total.labels(
                provider=translator.name, outcome="error"
            ).inc()
            translation_errors_total.labels(
                provider=translator.name, error_code=e.error_code
            ).inc()
            raise
        except Exception as e:
            self.stats["translation_errors"] += 1
            translation_requests_total.labels(
                provider=translator.name, outcome="error"
            ).inc()
            translation_errors_total.labels(
                provider=translator.name, error_code="UNEXPECTED"
            ).inc()
            logger.error(f"Unexpected {translator.name} translation failure: {e}")
            raise TranslationError(
                f"Translation provider {translator.name} failed: {e}",
                provider=translator.name,
            ) from e

        self.stats["translations_performed"] += 1
        translation_requests_total.labels(
            provider=translator.name, outcome="success"
        ).inc()
        await self.cache.set_translation(
            text, source_lang, target_lang, translator.name, result.text
        )
        return result, False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce_tenant(tenant: Union[TenantContext, Mapping[str, Any], None]) -> TenantContext:
        if isinstance(tenant, Mapping):
            try:
                tenant = TenantContext.model_validate(tenant)
            except PydanticValidationError as e:
                raise _to_validation_error(e) from e
        if tenant is None or not tenant.id:
            raise ValidationError("Tenant id is required", field="tenant_id")
        return tenant

    async def normalize_one(
        self,
        request: Union[NormalizeRequest, Mapping[str, Any]],
        tenant: Union[TenantContext, Mapping[str, Any]],
        request_id: Optional[str] = None,
    ) -> NormalizeResponse:
        """Normalize a single text record.

        Args:
            request: Record to normalize (model or plain mapping)
            tenant: Authenticated tenant context
            request_id: Shared id when called from a batch

        Returns:
            NormalizeResponse with the normalized text and metadata

        Raises:
            ValidationError: If the request or tenant is malformed
            TranslationError: If the provider is unavailable or failed
        """
        if isinstance(request, Mapping):
            try:
                request = NormalizeRequest.model_validate(request)
            except PydanticValidationError as e:
                raise _to_validation_error(e) from e
        if not request.text:
            raise ValidationError("Text must not be empty", field="text")
        tenant = self._coerce_tenant(tenant)

        request_id = request_id or generate_request_id()
        start_time = time.perf_counter()
        self.stats["records_processed"] += 1
        target_lang = (request.target_lang or self.default_target_lang).strip().lower()
        chars = count_chars(request.text)

        try:
            source_lang, confidence = await self._resolve_source_lang(request)

            if source_lang == target_lang or source_lang == UNDETERMINED:
                self.stats["skipped"] += 1
                self._record_decision(
                    "skip_undetermined" if source_lang == UNDETERMINED else "skip_same_lang",
                    source_lang,
                )
                translator_name = NO_TRANSLATOR
                normalized_text = request.text
                response_source_lang = source_lang
                cached = False
            else:
                glossary = GlossaryManager(tenant.glossary_preserve)
                text_to_translate = glossary.protect_terms(request.text)

                translator = self._select_translator(tenant)
                try:
                    result, cached = await self._translate(
                        translator, text_to_translate, source_lang, target_lang
                    )
                except TranslationError:
                    self._record_decision("translate_error", source_lang)
                    raise
                self._record_decision(
                    "translate_cache_hit" if cached else "translate_performed",
                    source_lang,
                )

                normalized_text = result.text
                if glossary:
                    normalized_text = glossary.restore_terms(normalized_text)
                translator_name = translator.name
                response_source_lang = result.detected_source_lang or source_lang

            await self.usage_tracker.track(
                UsageRecord(
                    tenant_id=tenant.id,
                    request_id=request_id,
                    record_id=request.record_id,
                    type=request.type,
                    source_lang=source_lang,
                    target_lang=target_lang,
                    chars_count=chars,
                    provider=translator_name,
                )
            )

            logger.info(
                f"[{request_id}] Normalized {chars} chars: {source_lang} -> {target_lang} "
                f"via {translator_name} ({(time.perf_counter() - start_time) * 1000:.0f}ms)"
            )
            logger.debug(f"[{request_id}] Record text: {preview(request.text)}")

            return NormalizeResponse(
                tenant_id=request.tenant_id,
                record_id=request.record_id,
                type=request.type,
                source_lang=response_source_lang,
                target_lang=target_lang,
                text_original=request.text,
                text_normalized=normalized_text,
                meta=NormalizeMeta(
                    detected_confidence=confidence,
                    translator=translator_name,
                    detector=self.detector.name,
                    chars=chars,
                    estimated_cost_usd=estimate_cost(
                        chars, translator_name, self.provider_rates
                    ),
                    request_id=request_id,
                    cached=cached,
                ),
            )
        except (ValidationError, TranslationError):
            raise
        except Exception as e:
            logger.error(f"[{request_id}] Normalization failed unexpectedly: {e}")
            raise TranslationError(f"Normalization failed: {e}") from e
        finally:
            translation_operation_duration_seconds.labels(
                operation="normalize_one"
            ).observe(max(0.0, time.perf_counter() - start_time))

    async def normalize_batch(
        self,
        request: Union[BatchNormalizeRequest, Mapping[str, Any]],
        tenant: Union[TenantContext, Mapping[str, Any]],
        mode: Union[BatchMode, str] = BatchMode.SEQUENTIAL,
        concurrency: Optional[int] = None,
    ) -> BatchNormalizeResponse:
        """Normalize up to MAX_BATCH_ITEMS records sharing one request id.

        Args:
            request: Batch of records (model or plain mapping)
            tenant: Authenticated tenant context
            mode: "sequential" processes items one by one; "concurrent" runs
                windows of ``concurrency`` items at a time
            concurrency: Window size for concurrent mode

        Returns:
            BatchNormalizeResponse with results in input order

        Raises:
            ValidationError: If the batch is empty, too large or malformed
            TranslationError: If any item fails to translate
        """
        if isinstance(request, Mapping):
            try:
                request = BatchNormalizeRequest.model_validate(request)
            except PydanticValidationError as e:
                raise _to_validation_error(e) from e
        if not 1 <= len(request.items) <= MAX_BATCH_ITEMS:
            raise ValidationError(
                f"Batch must contain between 1 and {MAX_BATCH_ITEMS} items, "
                f"got {len(request.items)}",
                field="items",
            )
        tenant = self._coerce_tenant(tenant)
        try:
            mode = BatchMode(mode)
        except ValueError:
            raise ValidationError(f"Unknown batch mode: {mode}", field="mode")
        window = concurrency or self.batch_concurrency
        if window < 1:
            raise ValidationError("Concurrency must be at least 1", field="concurrency")

        request_id = generate_request_id()
        start_time = time.perf_counter()
        target_lang = request.target_lang or self.default_target_lang
        item_requests = [
            NormalizeRequest(
                tenant_id=request.tenant_id,
                record_id=item.record_id,
                type=item.type,
                text=item.text,
                source_lang=item.source_lang,
                target_lang=target_lang,
            )
            for item in request.items
        ]

        results: List[NormalizeResponse] = []
        try:
            if mode is BatchMode.SEQUENTIAL:
                for item_request in item_requests:
                    results.append(
                        await self.normalize_one(item_request, tenant, request_id)
                    )
            else:
                for i in range(0, len(item_requests), window):
                    # gather keeps the input order within each window
                    results.extend(
                        await asyncio.gather(
                            *(
                                self.normalize_one(item_request, tenant, request_id)
                                for item_request in item_requests[i : i + window]
                            )
                        )
                    )
        finally:
            translation_operation_duration_seconds.labels(
                operation=f"normalize_batch_{mode.value}"
            ).observe(max(0.0, time.perf_counter() - start_time))

        total_chars = sum(count_chars(item.text) for item in request.items)
        logger.info(
            f"[{request_id}] Batch normalized {len(results)} items ({mode.value}), "
            f"{total_chars} chars ({(time.perf_counter() - start_time) * 1000:.0f}ms)"
        )
        return BatchNormalizeResponse(
            tenant_id=request.tenant_id,
            results=results,
            meta=BatchMeta(
                total_items=len(results),
                total_chars=total_chars,
                estimated_total_cost_usd=sum_costs(
                    r.meta.estimated_cost_usd for r in results
                ),
                request_id=request_id,
            ),
        )

    def get_available_providers(self) -> Dict[str, bool]:
        return self.translators.available()

    def get_circuit_breaker_snapshot(
        self, name: Optional[str] = None
    ) -> Union[CircuitBreakerSnapshot, List[CircuitBreakerSnapshot], None]:
        """Snapshot of one breaker (None if unknown) or of all breakers."""
        if name is None:
            return self.breakers.snapshots()
        return self.breakers.snapshot(name)

    def reset_circuit_breaker(self, name: str) -> bool:
        return self.breakers.reset(name)

    async def invalidate_cache(self, pattern: str) -> int:
        return await self.cache.invalidate(pattern)

    async def get_supported_languages(self, provider: Optional[str] = None) -> List[str]:
        translator = self.translators.get(provider) if provider else self.translators.default()
        return await translator.get_supported_languages()

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics.

        Returns:
            Dict with pipeline counters, cache stats, usage failures and
            breaker states.
        """
        return {
            **self.stats,
            "usage_tracking_failures": self.usage_tracker.failures,
            "cache": self.cache.get_stats(),
            "circuit_breakers": {
                snapshot.name: snapshot.state for snapshot in self.breakers.snapshots()
            },
            "providers": self.translators.available(),
            "detector_available": self.detector.is_available(),
        }
