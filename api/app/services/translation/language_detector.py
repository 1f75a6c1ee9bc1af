"""Language detector backed by a local langdetect model."""

import asyncio
import logging
from typing import Any, Callable, Optional

from app.metrics.translation_metrics import (
    language_detection_confidence,
    language_detection_total,
)
from app.models.normalize import LanguageDetectionResult
from app.utils.helpers import is_mostly_symbols_or_numbers, normalize_whitespace

logger = logging.getLogger(__name__)

UNDETERMINED = "und"
MAX_DETECTION_CHARS = 1000

# langdetect reports Chinese by script; the pipeline works with base codes
_CODE_ALIASES = {"zh-cn": "zh", "zh-tw": "zh"}


def _undetermined() -> LanguageDetectionResult:
    return LanguageDetectionResult(lang=UNDETERMINED, confidence=0.0, is_reliable=False)


class LanguageDetector:
    """Detect the language of a text record.

    Short, symbol-heavy or low-confidence input is not an error: it yields
    ``"und"`` with confidence 0 and the pipeline echoes the text unchanged.
    """

    def __init__(
        self,
        backend: str = "langdetect",
        min_chars: int = 10,
        confidence_threshold: float = 0.7,
        detect_fn: Optional[Callable[[str], Any]] = None,
    ):
        """Initialize the detector.

        Args:
            backend: Local backend name (only "langdetect" is supported)
            min_chars: Minimum normalized length worth detecting
            confidence_threshold: Results below this collapse to "und"
            detect_fn: Optional replacement for ``langdetect.detect_langs``
                returning objects with ``lang`` and ``prob`` attributes
        """
        self.name = backend
        self.min_chars = min_chars
        self.confidence_threshold = confidence_threshold
        self._detect_langs = detect_fn
        self._last_error: Optional[Exception] = None
        if self._detect_langs is None:
            self._init_backend()

    def _init_backend(self) -> None:
        if self.name != "langdetect":
            self._last_error = ValueError(f"Unsupported detection backend: {self.name}")
            logger.error(str(self._last_error))
            return
        try:
            from langdetect import DetectorFactory, detect_langs

            # Deterministic results for identical input
            DetectorFactory.seed = 0
            self._detect_langs = detect_langs
            logger.info("Language detector backend initialized: langdetect")
        except Exception as e:
            self._last_error = e
            logger.warning(
                f"Language detector backend 'langdetect' unavailable, "
                f"every record will be treated as undetermined: {e}"
            )

    def is_available(self) -> bool:
        return self._detect_langs is not None

    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @staticmethod
    def _normalize_lang_code(code: str) -> str:
        lower = code.strip().lower()
        return _CODE_ALIASES.get(lower, lower)

    def _record(self, result: LanguageDetectionResult, outcome: str) -> LanguageDetectionResult:
        language_detection_total.labels(backend=self.name, result=outcome).inc()
        if outcome == "detected":
            language_detection_confidence.labels(backend=self.name).observe(
                result.confidence
            )
        return result

    async def detect(self, text: str) -> LanguageDetectionResult:
        """Detect the language of text.

        Returns:
            LanguageDetectionResult; ``lang == "und"`` with confidence 0 when
            the input is unusable or detection is not confident enough.
        """
        if not text or not text.strip():
            return self._record(_undetermined(), "empty")

        normalized = normalize_whitespace(text)
        if len(normalized) < self.min_chars:
            return self._record(_undetermined(), "too_short")
        if is_mostly_symbols_or_numbers(normalized):
            return self._record(_undetermined(), "symbols")
        if self._detect_langs is None:
            logger.warning("Language detection backend not available")
            return self._record(_undetermined(), "unavailable")

        try:
            candidates = await asyncio.to_thread(
                self._detect_langs, normalized[:MAX_DETECTION_CHARS]
            )
        except Exception as e:
            self._last_error = e
            logger.warning(f"Language detection failed: {e}")
            return self._record(_undetermined(), "error")

        if not candidates:
            return self._record(_undetermined(), "no_result")

        best = candidates[0]
        confidence = float(best.prob)
        if confidence < self.confidence_threshold:
            logger.debug(
                f"Language detection below threshold: {best.lang} "
                f"({confidence:.2f} < {self.confidence_threshold})"
            )
            return self._record(_undetermined(), "low_confidence")

        return self._record(
            LanguageDetectionResult(
                lang=self._normalize_lang_code(best.lang),
                confidence=confidence,
                is_reliable=True,
            ),
            "detected",
        )
