"""Best-effort usage accounting and cost estimation."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Mapping, Optional, Protocol

from app.metrics.translation_metrics import translation_characters_total
from app.models.normalize import UsageRecord

logger = logging.getLogger(__name__)

NO_TRANSLATOR = "none"
DEFAULT_COST_PER_MILLION_CHARS = 20.0
DEFAULT_PROVIDER_RATES: Dict[str, float] = {"deepl": 20.0, "google": 20.0}


def estimate_cost(
    chars: int, provider: str, rates: Optional[Mapping[str, float]] = None
) -> float:
    """Estimate the USD cost of translating chars with provider.

    Providers without a configured rate, including "none" for skipped
    records, use the default rate of $20 per 1M characters. Rounded half-up
    to 4 decimals.
    """
    rates = DEFAULT_PROVIDER_RATES if rates is None else rates
    rate = rates.get(provider, DEFAULT_COST_PER_MILLION_CHARS)
    cost = Decimal(chars) / Decimal(1_000_000) * Decimal(str(rate))
    return float(cost.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))


class UsageSink(Protocol):
    """Destination for usage records (usage log table, queue, ...)."""

    async def record(self, record: UsageRecord) -> None: ...


class LoggingUsageSink:
    """Default sink writing one structured log line per record."""

    async def record(self, record: UsageRecord) -> None:
        logger.info(
            f"Usage: tenant={record.tenant_id} request={record.request_id} "
            f"record={record.record_id} type={record.type.value} "
            f"{record.source_lang}->{record.target_lang} "
            f"chars={record.chars_count} provider={record.provider}"
        )


class UsageTracker:
    """Records usage without ever failing the calling request.

    ``track`` is best-effort: sink errors are logged here and the method
    returns False instead of raising.
    """

    def __init__(self, sink: Optional[UsageSink] = None):
        self.sink = sink or LoggingUsageSink()
        self.failures = 0

    async def track(self, record: UsageRecord) -> bool:
        translation_characters_total.labels(provider=record.provider).inc(
            record.chars_count
        )
        try:
            await self.sink.record(record)
            return True
        except Exception as e:
            self.failures += 1
            logger.error(
                f"Failed to track usage for request {record.request_id} "
                f"(tenant {record.tenant_id}): {e}"
            )
            return False


def sum_costs(costs: Iterable[float]) -> float:
    """Sum per-item cost estimates, rounded half-up to 4 decimals."""
    total = sum((Decimal(str(c)) for c in costs), Decimal(0))
    return float(total.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))
