"""
Custom exception hierarchy for the text normalization gateway.

Only ValidationError and TranslationError (including CircuitOpenError) cross
the translation core boundary; every other failure mode is absorbed and
logged where it happens.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BaseAppException(HTTPException):
    """Base exception for all application errors."""

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__

    def __str__(self) -> str:
        return str(self.detail)


# Data Validation Exceptions


class ValidationError(BaseAppException):
    """Raised when a request is malformed (empty text, bad batch size, no tenant)."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = (
            f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        )
        super().__init__(detail, status.HTTP_400_BAD_REQUEST, error_code=error_code)
        self.field = field


# Translation Exceptions


class TranslationError(BaseAppException):
    """Raised when a provider is unconfigured or its call failed after retries."""

    retryable = False

    def __init__(self, detail: str, provider: Optional[str] = None):
        super().__init__(
            detail, status.HTTP_502_BAD_GATEWAY, error_code="TRANSLATION_ERROR"
        )
        self.provider = provider


class CircuitOpenError(TranslationError):
    """Raised without calling the provider while its circuit breaker is open.

    Callers may treat this as retryable later, unlike a genuine provider error.
    """

    retryable = True

    def __init__(self, provider: str):
        super().__init__(
            f"Translation provider {provider} unavailable (circuit open), "
            "please try again later",
            provider=provider,
        )
        self.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        self.error_code = "CIRCUIT_OPEN"


# Rate Limiting Exceptions


class RateLimitExceededError(BaseAppException):
    """Raised when a tenant or client IP exceeded its request window."""

    def __init__(self, key: str, limit: int, retry_after_seconds: int):
        super().__init__(
            "Too many requests, please try again later",
            status.HTTP_429_TOO_MANY_REQUESTS,
            headers={"Retry-After": str(retry_after_seconds)},
            error_code="RATE_LIMIT_EXCEEDED",
        )
        self.key = key
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
