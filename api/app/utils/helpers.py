"""Small text and identifier helpers shared by the normalization pipeline."""

import re
import uuid

_WHITESPACE_RE = re.compile(r"\s+")
# Latin (incl. Latin-1/Extended-A), Cyrillic and CJK letters count as "alpha"
_NON_ALPHA_RE = re.compile(r"[^a-zA-Z\u00C0-\u017F\u0400-\u04FF\u4E00-\u9FFF]")


def generate_request_id() -> str:
    """Generate a unique request ID like ``req_3f2a9c0d1b7e4a56``."""
    return f"req_{uuid.uuid4().hex[:16]}"


def count_chars(text: str) -> int:
    """Count characters for usage and cost (whitespace included)."""
    return len(text)


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_mostly_symbols_or_numbers(text: str) -> bool:
    """True when fewer than 30% of the characters are letters."""
    alpha_chars = _NON_ALPHA_RE.sub("", text)
    return len(alpha_chars) < len(text) * 0.3
