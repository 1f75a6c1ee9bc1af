"""Request, response and internal value types for text normalization."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

MAX_BATCH_ITEMS = 100


class RecordType(str, Enum):
    """Record types produced by revenue-intelligence sources."""

    EMAIL_SUBJECT = "email_subject"
    EMAIL_BODY = "email_body"
    MEETING_TITLE = "meeting_title"
    MEETING_DESCRIPTION = "meeting_description"
    CALL_NOTE = "call_note"
    CRM_NOTE = "crm_note"
    DEAL_UPDATE = "deal_update"
    CUSTOM = "custom"


class BatchMode(str, Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


class NormalizeRequest(BaseModel):
    """Single text record to normalize."""

    tenant_id: str = Field(min_length=1)
    record_id: str = Field(min_length=1)
    type: RecordType = RecordType.CUSTOM
    text: str = Field(min_length=1)
    source_lang: Optional[str] = Field(default=None, min_length=2, max_length=5)
    # None resolves to the service default target language
    target_lang: Optional[str] = Field(default=None, min_length=2, max_length=5)


class BatchItem(BaseModel):
    record_id: str = Field(min_length=1)
    type: RecordType = RecordType.CUSTOM
    text: str = Field(min_length=1)
    source_lang: Optional[str] = Field(default=None, min_length=2, max_length=5)


class BatchNormalizeRequest(BaseModel):
    """Up to MAX_BATCH_ITEMS records sharing one tenant and target language."""

    tenant_id: str = Field(min_length=1)
    # None resolves to the service default target language
    target_lang: Optional[str] = Field(default=None, min_length=2, max_length=5)
    items: List[BatchItem] = Field(min_length=1, max_length=MAX_BATCH_ITEMS)


class NormalizeMeta(BaseModel):
    detected_confidence: Optional[float] = None
    translator: str
    detector: str
    chars: int
    estimated_cost_usd: float
    request_id: str
    cached: bool = False


class NormalizeResponse(BaseModel):
    tenant_id: str
    record_id: str
    type: RecordType
    source_lang: str
    target_lang: str
    text_original: str
    text_normalized: str
    meta: NormalizeMeta


class BatchMeta(BaseModel):
    total_items: int
    total_chars: int
    estimated_total_cost_usd: float
    request_id: str


class BatchNormalizeResponse(BaseModel):
    tenant_id: str
    results: List[NormalizeResponse]
    meta: BatchMeta


class TenantContext(BaseModel):
    """Already-authenticated tenant configuration, read-only to the core."""

    id: str
    translator_provider: Optional[str] = None
    glossary_preserve: List[str] = Field(default_factory=list)


class UsageRecord(BaseModel):
    tenant_id: str
    request_id: str
    record_id: str
    type: RecordType
    source_lang: str
    target_lang: str
    chars_count: int
    provider: str


class CircuitBreakerStats(BaseModel):
    fires: int = 0
    successes: int = 0
    failures: int = 0
    rejects: int = 0
    timeouts: int = 0
    latency_mean: float = 0.0
    latency_p99: Optional[float] = None


class CircuitBreakerSnapshot(BaseModel):
    name: str
    state: str
    enabled: bool
    stats: CircuitBreakerStats


@dataclass
class TranslationResult:
    """Output of one provider call; never persisted beyond the pipeline."""

    text: str
    detected_source_lang: Optional[str] = None


@dataclass
class LanguageDetectionResult:
    lang: str
    confidence: float
    is_reliable: bool = False
