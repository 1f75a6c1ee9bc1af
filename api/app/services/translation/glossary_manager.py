"""Glossary Manager for preserving tenant terminology during translation.

Tenants configure a preserve-list (product names, methodologies such as
"MEDDIC", company names). Each occurrence is wrapped in ``<keep>`` markers
before the text goes to a provider and the markers are stripped afterwards.
"""

import re
from typing import Iterable, List, Optional, Pattern

KEEP_OPEN = "<keep>"
KEEP_CLOSE = "</keep>"
KEEP_TAG = "keep"

# Providers occasionally add whitespace or change case inside tags
_MARKER_RE = re.compile(r"<\s*/?\s*keep\s*>", re.IGNORECASE)


class GlossaryManager:
    """Wraps preserve-list terms in markers and removes them again.

    Matching is case-insensitive and bounded on both sides by non-word
    characters. Terms are tried longest first so "Acme Cloud" wins over
    "Acme" and no occurrence is wrapped twice.
    """

    def __init__(self, preserve_terms: Optional[Iterable[str]] = None):
        """Initialize the GlossaryManager.

        Args:
            preserve_terms: Terms that must survive translation verbatim.
        """
        self.terms: List[str] = []
        self.pattern: Optional[Pattern[str]] = None
        for term in preserve_terms or []:
            self.add_term(term)

    def _rebuild_pattern(self) -> None:
        if not self.terms:
            self.pattern = None
            return
        # Sort by length (longest first) so overlapping terms match the longest
        escaped_terms = [
            re.escape(t) for t in sorted(self.terms, key=len, reverse=True)
        ]
        self.pattern = re.compile(
            r"(?<!\w)(" + "|".join(escaped_terms) + r")(?!\w)", re.IGNORECASE
        )

    def add_term(self, term: str) -> None:
        """Add a new preserved term (blank and duplicate terms are ignored)."""
        term = (term or "").strip()
        if not term or term.lower() in (t.lower() for t in self.terms):
            return
        self.terms.append(term)
        self._rebuild_pattern()

    def protect_terms(self, text: str) -> str:
        """Wrap every preserved term occurrence in ``<keep>`` markers.

        This should be called BEFORE sending text to a translation provider.
        The original casing of each occurrence is kept inside the marker.
        """
        if self.pattern is None:
            return text
        return self.pattern.sub(lambda m: f"{KEEP_OPEN}{m.group(1)}{KEEP_CLOSE}", text)

    @staticmethod
    def restore_terms(text: str) -> str:
        """Strip preservation markers from translated text."""
        return _MARKER_RE.sub("", text)

    def __bool__(self) -> bool:
        return bool(self.terms)


def apply_glossary(text: str, preserve_terms: Iterable[str]) -> str:
    """Wrap preserve-list terms in markers (see GlossaryManager.protect_terms)."""
    return GlossaryManager(preserve_terms).protect_terms(text)


def remove_glossary_markers(text: str) -> str:
    return GlossaryManager.restore_terms(text)
