"""Tests for LanguageDetector - local language identification."""

from types import SimpleNamespace

import pytest
from app.services.translation.language_detector import LanguageDetector


def candidates(*pairs):
    """Build langdetect-style results from (lang, prob) pairs."""
    return [SimpleNamespace(lang=lang, prob=prob) for lang, prob in pairs]


@pytest.fixture
def detect_calls():
    return []


@pytest.fixture
def make_detector(detect_calls):
    def _make(result=None, error=None, **kwargs):
        def detect_fn(text):
            detect_calls.append(text)
            if error is not None:
                raise error
            return result

        return LanguageDetector(detect_fn=detect_fn, **kwargs)

    return _make


class TestLanguageDetector:
    @pytest.mark.asyncio
    async def test_confident_detection(self, make_detector):
        detector = make_detector(candidates(("es", 0.95), ("pt", 0.04)))

        result = await detector.detect("Hola mundo, ¿cómo estás hoy?")

        assert result.lang == "es"
        assert result.confidence == pytest.approx(0.95)
        assert result.is_reliable is True

    @pytest.mark.asyncio
    async def test_chinese_variants_collapse_to_base_code(self, make_detector):
        detector = make_detector(candidates(("zh-cn", 0.99)))

        result = await detector.detect("这是一个用于检测语言的测试句子")

        assert result.lang == "zh"

    @pytest.mark.asyncio
    async def test_low_confidence_is_undetermined(self, make_detector):
        detector = make_detector(candidates(("es", 0.55)))

        result = await detector.detect("Hola mundo, ¿cómo estás hoy?")

        assert result.lang == "und"
        assert result.confidence == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "Hola", "  hi   there "])
    async def test_short_input_is_undetermined_without_detection(
        self, make_detector, detect_calls, text
    ):
        detector = make_detector(candidates(("en", 0.99)))

        result = await detector.detect(text)

        assert (result.lang, result.confidence) == ("und", 0.0)
        assert detect_calls == []

    @pytest.mark.asyncio
    async def test_mostly_numbers_is_undetermined(self, make_detector, detect_calls):
        detector = make_detector(candidates(("en", 0.99)))

        result = await detector.detect("1234-5678-9012 #42 $$$")

        assert result.lang == "und"
        assert detect_calls == []

    @pytest.mark.asyncio
    async def test_backend_errors_degrade_to_undetermined(self, make_detector):
        error = RuntimeError("No features in text.")
        detector = make_detector(error=error)

        result = await detector.detect("Hola mundo, ¿cómo estás hoy?")

        assert result.lang == "und"
        assert detector.last_error() is error

    @pytest.mark.asyncio
    async def test_long_input_is_truncated(self, make_detector, detect_calls):
        detector = make_detector(candidates(("en", 0.99)))

        await detector.detect("word " * 1000)

        assert len(detect_calls[0]) == 1000

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, make_detector):
        detector = make_detector(candidates(("es", 0.55)), confidence_threshold=0.5)

        result = await detector.detect("Hola mundo, ¿cómo estás hoy?")

        assert result.lang == "es"

    @pytest.mark.asyncio
    async def test_unsupported_backend_is_unavailable(self):
        detector = LanguageDetector(backend="fasttext")

        result = await detector.detect("Hola mundo, ¿cómo estás hoy?")

        assert detector.is_available() is False
        assert isinstance(detector.last_error(), ValueError)
        assert result.lang == "und"

    @pytest.mark.asyncio
    async def test_langdetect_backend_detects_spanish(self):
        """Test the real langdetect backend on a clearly Spanish sentence."""
        detector = LanguageDetector()

        result = await detector.detect(
            "Buenos días, quisiera confirmar la reunión de mañana con el equipo de ventas."
        )

        assert detector.is_available() is True
        assert result.lang == "es"
