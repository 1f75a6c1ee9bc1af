"""Prometheus metrics for the detection, caching and translation pipeline."""

from prometheus_client import Counter, Gauge, Histogram

language_detection_total = Counter(
    "translation_language_detection_total",
    "Total language detection outcomes by backend/result",
    ["backend", "result"],
)

language_detection_confidence = Histogram(
    "translation_language_detection_confidence",
    "Confidence of language detection outcomes",
    ["backend"],
    buckets=(0.0, 0.3, 0.5, 0.7, 0.8, 0.9, 0.95, 1.0),
)

normalization_decisions_total = Counter(
    "translation_normalization_decisions_total",
    "Pipeline decision outcomes for incoming records",
    ["decision", "source_lang"],
)

translation_requests_total = Counter(
    "translation_requests_total",
    "Provider translation calls by provider and outcome",
    ["provider", "outcome"],
)

translation_characters_total = Counter(
    "translation_characters_total",
    "Characters processed per provider (none = skipped)",
    ["provider"],
)

translation_operation_duration_seconds = Histogram(
    "translation_operation_duration_seconds",
    "Duration of normalization operations",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

translation_errors_total = Counter(
    "translation_errors_total",
    "Translation errors by provider and error code",
    ["provider", "error_code"],
)

translation_cache_lookups_total = Counter(
    "translation_cache_lookups_total",
    "Cache lookups by tier and result",
    ["tier", "result"],
)

circuit_breaker_state = Gauge(
    "translation_circuit_breaker_state",
    "Circuit breaker state per provider (0=closed, 1=open, 2=half-open)",
    ["provider"],
)

circuit_breaker_events_total = Counter(
    "translation_circuit_breaker_events_total",
    "Circuit breaker events per provider",
    ["provider", "event"],
)

rate_limit_rejections_total = Counter(
    "translation_rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    ["scope"],
)
