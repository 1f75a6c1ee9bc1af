"""Google Cloud Translation adapter (Basic edition, REST API v2)."""

import html
import logging
import re
from typing import Dict, List, Optional

import httpx

from app.models.normalize import TranslationResult
from app.services.translation.glossary_manager import KEEP_CLOSE, KEEP_OPEN
from app.services.translation.providers.base import (
    AUTO_DETECT_CODES,
    RetryPolicy,
    Translator,
    base_code,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://translation.googleapis.com/language/translate/v2"

# Google keeps the Chinese script variants but has a single Portuguese
LANG_CODE_MAP: Dict[str, str] = {
    "zh-cn": "zh-CN",
    "zh-tw": "zh-TW",
    "pt-br": "pt",
    "pt-pt": "pt",
}

# Glossary markers travel as HTML spans Google leaves untranslated
NO_TRANSLATE_OPEN = '<span translate="no">'
NO_TRANSLATE_CLOSE = "</span>"
_NO_TRANSLATE_RE = re.compile(
    r'<span[^>]*translate\s*=\s*"no"[^>]*>(.*?)</span>', re.IGNORECASE | re.DOTALL
)


def to_html(text: str) -> str:
    """Escape text for ``format=html`` and turn keep markers into no-translate spans."""
    escaped = html.escape(text, quote=False)
    return escaped.replace(html.escape(KEEP_OPEN), NO_TRANSLATE_OPEN).replace(
        html.escape(KEEP_CLOSE), NO_TRANSLATE_CLOSE
    )


def from_html(text: str) -> str:
    restored = _NO_TRANSLATE_RE.sub(lambda m: f"{KEEP_OPEN}{m.group(1)}{KEEP_CLOSE}", text)
    return html.unescape(restored)


class GoogleTranslator(Translator):
    """Translator backed by the Google Cloud Translation v2 API (API key auth)."""

    name = "google"

    def __init__(
        self,
        api_key: str = "",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(api_key, timeout, retry_policy, client)
        self.api_url = api_url.rstrip("/")

    @staticmethod
    def map_lang_code(lang: str) -> str:
        lower = lang.lower()
        return LANG_CODE_MAP.get(lower, base_code(lower))

    def map_source_lang(self, lang: str) -> Optional[str]:
        if not lang or lang.lower() in AUTO_DETECT_CODES:
            return None
        return self.map_lang_code(lang)

    def map_target_lang(self, lang: str) -> str:
        return self.map_lang_code(lang)

    async def _translate_texts(
        self, texts: List[str], source_lang: Optional[str], target_lang: str
    ) -> List[TranslationResult]:
        # Plain text unless glossary markers need protecting
        use_html = any(KEEP_OPEN in t for t in texts)
        payload = {
            "q": [to_html(t) for t in texts] if use_html else texts,
            "target": target_lang,
            "format": "html" if use_html else "text",
        }
        if source_lang:
            payload["source"] = source_lang

        response = await self._client.post(
            self.api_url, params={"key": self.api_key}, json=payload
        )
        response.raise_for_status()
        translations = response.json()["data"]["translations"]
        logger.debug(f"Google translated {len(texts)} text(s) to {target_lang}")
        return [
            TranslationResult(
                text=from_html(t["translatedText"]) if use_html else t["translatedText"],
                detected_source_lang=t.get("detectedSourceLanguage") or source_lang,
            )
            for t in translations
        ]

    async def _fetch_supported_languages(self) -> List[str]:
        response = await self._client.get(
            f"{self.api_url}/languages", params={"key": self.api_key}
        )
        response.raise_for_status()
        return [item["language"].lower() for item in response.json()["data"]["languages"]]
