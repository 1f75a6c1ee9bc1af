import logging
import re
import sys


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the gateway process.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def redact_pii(text: str) -> str:
    """
    Redact potential Personally Identifiable Information (PII) from text.

    CRM notes, email bodies and call notes routinely carry contact details,
    so any text preview written to logs goes through this first. Redacts:
    - Email addresses
    - IP addresses
    - API keys and passwords
    - Phone numbers
    - Long numeric sequences
    """
    # Email addresses
    text = re.sub(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "[EMAIL]", text)

    # IP addresses
    text = re.sub(r"\b(?:\d{1,3}\.){3}\d{1,3}\b", "[IP]", text)

    # Alphanumeric strings that look like API keys or passwords
    text = re.sub(r"\b[a-zA-Z0-9]{32,}\b", "[KEY]", text)

    # Phone numbers in various formats
    text = re.sub(
        r"(?<!\w)(?:\+\d{1,3}[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{4}\b",
        "[PHONE]",
        text,
    )

    # Long numeric sequences that might be IDs
    text = re.sub(r"\b\d{8,}\b", "[ID]", text)

    return text


def preview(text: str, limit: int = 80) -> str:
    """Short, redacted preview of a text record for log lines."""
    redacted = redact_pii(text)
    if len(redacted) <= limit:
        return redacted
    return redacted[:limit] + "..."
