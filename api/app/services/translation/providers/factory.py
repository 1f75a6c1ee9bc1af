"""Registry of translation providers built once at startup."""

import logging
from typing import Dict, Optional

from app.core.config import Settings
from app.core.exceptions import TranslationError
from app.services.translation.providers.base import ProviderName, RetryPolicy, Translator
from app.services.translation.providers.deepl import DeepLTranslator
from app.services.translation.providers.google import GoogleTranslator

logger = logging.getLogger(__name__)


class TranslatorRegistry:
    """Maps ProviderName to a Translator instance.

    Attributes:
        default_provider: Provider used when a tenant has no preference
    """

    def __init__(
        self,
        translators: Optional[Dict[ProviderName, Translator]] = None,
        default_provider: ProviderName = ProviderName.DEEPL,
    ):
        self._translators: Dict[ProviderName, Translator] = dict(translators or {})
        self.default_provider = default_provider

    @classmethod
    def from_settings(cls, settings: Settings) -> "TranslatorRegistry":
        """Build both adapters from configuration (unconfigured ones stay unavailable)."""
        retry_policy = RetryPolicy(
            max_attempts=settings.TRANSLATION_MAX_RETRIES,
            base_delay=settings.TRANSLATION_RETRY_DELAY_SECONDS,
        )
        registry = cls(default_provider=ProviderName.parse(settings.DEFAULT_TRANSLATOR))
        registry.register(
            DeepLTranslator(
                api_key=settings.DEEPL_API_KEY,
                base_url=settings.DEEPL_BASE_URL,
                timeout=settings.TRANSLATION_TIMEOUT_SECONDS,
                retry_policy=retry_policy,
            )
        )
        registry.register(
            GoogleTranslator(
                api_key=settings.GOOGLE_TRANSLATE_API_KEY,
                api_url=settings.GOOGLE_TRANSLATE_API_URL,
                timeout=settings.TRANSLATION_TIMEOUT_SECONDS,
                retry_policy=retry_policy,
            )
        )
        logger.info(
            f"Translators registered: {registry.available()} "
            f"(default: {registry.default_provider.value})"
        )
        return registry

    def register(self, translator: Translator) -> None:
        self._translators[ProviderName.parse(translator.name)] = translator

    def get(self, name: str) -> Translator:
        """Get a translator by provider name.

        Raises:
            TranslationError: If the name is unknown or was never registered
        """
        provider = ProviderName.parse(name)
        translator = self._translators.get(provider)
        if translator is None:
            raise TranslationError(
                f"Translation provider {provider.value} is not registered",
                provider=provider.value,
            )
        return translator

    def default(self) -> Translator:
        return self.get(self.default_provider.value)

    def for_tenant(self, preference: Optional[str] = None) -> Translator:
        """Tenant's preferred provider, falling back to the default when unset."""
        if preference:
            return self.get(preference)
        return self.default()

    def available(self) -> Dict[str, bool]:
        return {
            provider.value: translator.is_available()
            for provider, translator in self._translators.items()
        }

    def any_available(self, preferred: Optional[str] = None) -> Optional[Translator]:
        """First available translator, trying preferred then default then the rest."""
        candidates = []
        if preferred:
            candidates.append(self.get(preferred))
        if self.default_provider in self._translators:
            candidates.append(self._translators[self.default_provider])
        candidates.extend(self._translators.values())
        for translator in candidates:
            if translator.is_available():
                return translator
        return None

    async def aclose(self) -> None:
        for translator in self._translators.values():
            try:
                await translator.aclose()
            except Exception as e:
                logger.warning(f"Failed to close {translator.name} translator: {e}")
