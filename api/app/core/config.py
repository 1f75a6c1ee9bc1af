import logging
from functools import lru_cache
from typing import Dict, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Environment settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings (remote cache tier and distributed rate limiting)
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_ENABLED: bool = False
    REDIS_KEY_PREFIX: str = "tl:"

    # Translation cache settings
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 3600
    CACHE_MAX_SIZE: int = 10000  # Max entries in the in-process fallback cache
    CACHE_EVICTION_BATCH_SIZE: int = 100  # Entries evicted at once when full
    LANGUAGE_DETECTION_CACHE_TTL_SECONDS: int = 86400  # 24 hours

    # Rate limiting settings
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_MAX_REQUESTS_HOUR: int = 1000
    RATE_LIMIT_BATCH_DIVISOR: int = 5  # Batch endpoints are 5x stricter

    # Circuit breaker settings
    CIRCUIT_BREAKER_ENABLED: bool = True
    CIRCUIT_BREAKER_TIMEOUT_SECONDS: float = 10.0
    CIRCUIT_BREAKER_ERROR_THRESHOLD: float = 50.0  # Percentage
    CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS: float = 30.0
    CIRCUIT_BREAKER_VOLUME_THRESHOLD: int = 5
    CIRCUIT_BREAKER_ROLLING_WINDOW_SECONDS: float = 10.0

    # Translation provider settings
    DEEPL_API_KEY: str = ""
    DEEPL_API_URL: str = ""  # Derived from the key type when empty
    GOOGLE_TRANSLATE_API_KEY: str = ""
    GOOGLE_TRANSLATE_API_URL: str = (
        "https://translation.googleapis.com/language/translate/v2"
    )
    DEFAULT_TRANSLATOR: str = "deepl"
    DEFAULT_TARGET_LANG: str = "en"
    TRANSLATION_TIMEOUT_SECONDS: float = 15.0  # HTTP timeout per provider request
    TRANSLATION_MAX_RETRIES: int = 3
    TRANSLATION_RETRY_DELAY_SECONDS: float = 1.0
    ENABLE_PROVIDER_FALLBACK: bool = False
    BATCH_CONCURRENCY: int = 5

    # Rough pricing per 1M characters (USD), used for cost estimates only
    PROVIDER_COST_PER_MILLION_CHARS: Dict[str, float] = {
        "deepl": 20.0,
        "google": 20.0,
    }

    # Language detection settings
    LANG_DETECT_BACKEND: str = "langdetect"
    LANG_DETECT_MIN_CHARS: int = 10
    LANG_DETECT_CONFIDENCE_THRESHOLD: float = 0.7

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("DEFAULT_TRANSLATOR", "DEFAULT_TARGET_LANG", "LANG_DETECT_BACKEND")
    @classmethod
    def normalize_lowercase(cls, v: str) -> str:
        """Normalize identifiers to lowercase without surrounding whitespace."""
        return v.strip().lower()

    @field_validator("LANG_DETECT_CONFIDENCE_THRESHOLD")
    @classmethod
    def validate_confidence_threshold(cls, v: float) -> float:
        """Validate detection confidence threshold is within valid range.

        Args:
            v: Threshold value

        Returns:
            Validated threshold value

        Raises:
            ValueError: If threshold is outside valid range
        """
        if not 0.0 <= v <= 1.0:
            raise ValueError(
                f"LANG_DETECT_CONFIDENCE_THRESHOLD must be between 0.0 and 1.0, got {v}"
            )
        return v

    @field_validator("CIRCUIT_BREAKER_ERROR_THRESHOLD")
    @classmethod
    def validate_error_threshold(cls, v: float) -> float:
        """Validate circuit breaker error percentage.

        Raises:
            ValueError: If the percentage is outside 0-100
        """
        if not 0.0 <= v <= 100.0:
            raise ValueError(
                f"CIRCUIT_BREAKER_ERROR_THRESHOLD must be between 0 and 100, got {v}"
            )
        return v

    @field_validator(
        "CACHE_MAX_SIZE",
        "CACHE_EVICTION_BATCH_SIZE",
        "BATCH_CONCURRENCY",
        "TRANSLATION_MAX_RETRIES",
        "CIRCUIT_BREAKER_VOLUME_THRESHOLD",
        "RATE_LIMIT_BATCH_DIVISOR",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Reject zero or negative sizes and counts."""
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}")
        return v

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Normalize Redis URL, adding the redis:// scheme when missing."""
        v = v.strip()
        if v and "://" not in v:
            v = "redis://" + v
        return v

    @property
    def DEEPL_BASE_URL(self) -> str:
        """DeepL endpoint; keys ending in ':fx' belong to the free API."""
        if self.DEEPL_API_URL:
            return self.DEEPL_API_URL.rstrip("/")
        if self.DEEPL_API_KEY.endswith(":fx"):
            return "https://api-free.deepl.com"
        return "https://api.deepl.com"

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def validate_translation_config(self) -> List[str]:
        """Check configuration needed by the translation core.

        Returns:
            List of human-readable problems (empty when configuration is usable)
        """
        errors: List[str] = []
        if not self.DEEPL_API_KEY and not self.GOOGLE_TRANSLATE_API_KEY:
            errors.append(
                "At least one translation provider must be configured "
                "(DEEPL_API_KEY or GOOGLE_TRANSLATE_API_KEY)"
            )
        if self.REDIS_ENABLED and not self.REDIS_URL:
            errors.append("REDIS_URL is required when REDIS_ENABLED is true")
        for error in errors:
            logger.warning(f"Configuration problem: {error}")
        return errors


# Thread-safe lazy initialization using lru_cache
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.
    This prevents module-level side effects and allows testing without environment variables.

    Returns:
        Settings: Application settings object
    """
    return Settings()
