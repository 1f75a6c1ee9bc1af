"""Centralized metrics module for Prometheus instrumentation.

This package consolidates all Prometheus metrics definitions:
- translation_metrics: Detection, cache, circuit breaker, rate limit and
  translation pipeline metrics

Usage:
    from app.metrics.translation_metrics import translation_requests_total
"""

from app.metrics import translation_metrics

__all__ = [
    "translation_metrics",
]
