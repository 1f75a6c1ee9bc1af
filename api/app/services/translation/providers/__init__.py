"""Translation provider adapters."""

from app.services.translation.providers.base import (
    ProviderName,
    RetryPolicy,
    Translator,
)
from app.services.translation.providers.deepl import DeepLTranslator
from app.services.translation.providers.factory import TranslatorRegistry
from app.services.translation.providers.google import GoogleTranslator

__all__ = [
    "DeepLTranslator",
    "GoogleTranslator",
    "ProviderName",
    "RetryPolicy",
    "Translator",
    "TranslatorRegistry",
]
