"""DeepL translation adapter (REST API v2)."""

import logging
from typing import Dict, List, Optional

import httpx

from app.models.normalize import TranslationResult
from app.services.translation.glossary_manager import KEEP_TAG
from app.services.translation.providers.base import (
    AUTO_DETECT_CODES,
    RetryPolicy,
    Translator,
    base_code,
)

logger = logging.getLogger(__name__)

FREE_API_URL = "https://api-free.deepl.com"
PRO_API_URL = "https://api.deepl.com"

# DeepL distinguishes regional variants for a few target languages only
TARGET_LANG_MAP: Dict[str, str] = {
    "en": "EN-US",
    "en-us": "EN-US",
    "en-gb": "EN-GB",
    "pt": "PT-PT",
    "pt-pt": "PT-PT",
    "pt-br": "PT-BR",
    "zh": "ZH-HANS",
    "zh-cn": "ZH-HANS",
    "zh-hans": "ZH-HANS",
    "zh-tw": "ZH-HANT",
    "zh-hant": "ZH-HANT",
}


def default_base_url(api_key: str) -> str:
    """Keys ending in ':fx' belong to the free API."""
    return FREE_API_URL if api_key.endswith(":fx") else PRO_API_URL


class DeepLTranslator(Translator):
    """Translator backed by DeepL.

    Glossary markers are sent with XML tag handling so DeepL leaves the
    content of ``<keep>`` elements untouched.
    """

    name = "deepl"

    def __init__(
        self,
        api_key: str = "",
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key, timeout, retry_policy, client)
        self.base_url = (base_url or default_base_url(api_key)).rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"DeepL-Auth-Key {self.api_key}"}

    def map_source_lang(self, lang: str) -> Optional[str]:
        if not lang or lang.lower() in AUTO_DETECT_CODES:
            return None  # Let DeepL auto-detect
        # Source languages are never regional (ZH, PT, EN)
        return base_code(lang).upper()

    def map_target_lang(self, lang: str) -> str:
        lower = lang.lower()
        return TARGET_LANG_MAP.get(lower, lower.upper())

    async def _translate_texts(
        self, texts: List[str], source_lang: Optional[str], target_lang: str
    ) -> List[TranslationResult]:
        payload = {
            "text": texts,
            "target_lang": target_lang,
            "preserve_formatting": True,
            "tag_handling": "xml",
            "ignore_tags": [KEEP_TAG],
        }
        if source_lang:
            payload["source_lang"] = source_lang

        response = await self._client.post(
            f"{self.base_url}/v2/translate", json=payload, headers=self._headers
        )
        response.raise_for_status()
        translations = response.json()["translations"]
        logger.debug(f"DeepL translated {len(texts)} text(s) to {target_lang}")
        return [
            TranslationResult(
                text=t["text"],
                detected_source_lang=(t.get("detected_source_language") or "").lower()
                or None,
            )
            for t in translations
        ]

    async def _fetch_supported_languages(self) -> List[str]:
        languages = set()
        for kind in ("source", "target"):
            response = await self._client.get(
                f"{self.base_url}/v2/languages",
                params={"type": kind},
                headers=self._headers,
            )
            response.raise_for_status()
            languages.update(item["language"].lower() for item in response.json())
        return sorted(languages)
