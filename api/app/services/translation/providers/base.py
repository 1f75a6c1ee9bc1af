"""Provider abstraction shared by all translation backends."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.core.exceptions import TranslationError
from app.models.normalize import TranslationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTO_DETECT_CODES = frozenset({"und", "auto"})
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class ProviderName(str, Enum):
    """Known translation providers."""

    DEEPL = "deepl"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: str) -> "ProviderName":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise TranslationError(f"Unknown translation provider: {value}", provider=value)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return False


@dataclass
class RetryPolicy:
    """Exponential backoff for provider HTTP calls.

    Delays are ``base_delay * multiplier ** (attempt - 1)``: 1s, 2s, 4s...
    No sleep happens after the final attempt; its error is re-raised.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Provider call failed (attempt {retry_state.attempt_number}), "
            f"retrying in {retry_state.next_action.sleep:.1f}s: {exc}"
        )


class Translator(ABC):
    """Capability interface every translation backend implements.

    Subclasses implement the HTTP calls (``_translate_texts`` and
    ``_fetch_supported_languages``) and the language-code dialect mapping;
    availability checks, retries, error wrapping and the supported-language
    cache live here.
    """

    name: str = "base"

    def __init__(
        self,
        api_key: str = "",
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = client is None
        self._client: Optional[httpx.AsyncClient] = None
        self._supported_languages: Optional[List[str]] = None
        if not api_key:
            logger.info(f"{self.name} translator not configured (missing API key)")
            return
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    def is_available(self) -> bool:
        return bool(self.api_key) and self._client is not None

    @abstractmethod
    def map_source_lang(self, lang: str) -> Optional[str]:
        """Map a generic source code to the provider dialect (None = auto-detect)."""

    @abstractmethod
    def map_target_lang(self, lang: str) -> str:
        """Map a generic target code to the provider dialect."""

    @abstractmethod
    async def _translate_texts(
        self, texts: List[str], source_lang: Optional[str], target_lang: str
    ) -> List[TranslationResult]:
        """Send one request translating all texts (already dialect-mapped)."""

    @abstractmethod
    async def _fetch_supported_languages(self) -> List[str]:
        pass

    def _require_available(self) -> None:
        if not self.is_available():
            raise TranslationError(
                f"Translation provider {self.name} is not configured", provider=self.name
            )

    async def translate(
        self, text: str, source_lang: str, target_lang: str
    ) -> TranslationResult:
        """Translate a single text.

        Args:
            text: Text to translate (may contain glossary markers)
            source_lang: Source code, or "und"/"auto" to let the provider detect
            target_lang: Target language code

        Returns:
            TranslationResult with the translated text

        Raises:
            TranslationError: If unconfigured or the call failed after retries
        """
        results = await self.translate_batch([text], source_lang, target_lang)
        return results[0]

    async def translate_batch(
        self, texts: List[str], source_lang: str, target_lang: str
    ) -> List[TranslationResult]:
        """Translate several texts in one provider call, keeping input order."""
        self._require_available()
        if not texts:
            return []

        source = self.map_source_lang(source_lang)
        target = self.map_target_lang(target_lang)
        try:
            results = await self.retry_policy.run(
                self._translate_texts, texts, source, target
            )
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.name} translation failed with HTTP {e.response.status_code}"
            )
            raise TranslationError(
                f"Translation provider {self.name} failed: HTTP {e.response.status_code}",
                provider=self.name,
            ) from e
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"{self.name} translation failed: {e}")
            raise TranslationError(
                f"Translation provider {self.name} failed: {e}", provider=self.name
            ) from e

        if len(results) != len(texts):
            raise TranslationError(
                f"Translation provider {self.name} returned {len(results)} results "
                f"for {len(texts)} texts",
                provider=self.name,
            )
        return results

    async def get_supported_languages(self) -> List[str]:
        """Return the provider's supported language codes.

        The list is cached after the first successful fetch. An empty list is
        returned (never an error) when the capability check fails.
        """
        if self._supported_languages is not None:
            return self._supported_languages
        if not self.is_available():
            return []
        try:
            languages = await self.retry_policy.run(self._fetch_supported_languages)
        except Exception as e:
            logger.warning(f"Failed to fetch {self.name} supported languages: {e}")
            return []
        self._supported_languages = languages
        return languages

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def base_code(lang: str) -> str:
    return lang.split("-")[0].split("_")[0].lower()
