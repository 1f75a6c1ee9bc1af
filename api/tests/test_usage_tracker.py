"""Tests for cost estimation and best-effort usage tracking."""

from unittest.mock import AsyncMock

import pytest
from app.models.normalize import RecordType, UsageRecord
from app.services.translation.usage_tracker import (
    LoggingUsageSink,
    UsageTracker,
    estimate_cost,
    sum_costs,
)


def usage_record(**overrides) -> UsageRecord:
    data = {
        "tenant_id": "t1",
        "request_id": "req_1",
        "record_id": "r1",
        "type": RecordType.EMAIL_SUBJECT,
        "source_lang": "es",
        "target_lang": "en",
        "chars_count": 10,
        "provider": "deepl",
    }
    data.update(overrides)
    return UsageRecord(**data)


class TestEstimateCost:
    @pytest.mark.parametrize(
        "chars,expected",
        [(1_000_000, 20.0), (5000, 0.1), (10, 0.0002), (3, 0.0001), (2, 0.0)],
    )
    def test_default_rate(self, chars, expected):
        assert estimate_cost(chars, "deepl") == expected

    def test_rounds_half_up(self):
        # 5 chars at $10/1M = 0.00005
        assert estimate_cost(5, "deepl", {"deepl": 10.0}) == 0.0001

    def test_skipped_records_use_default_rate(self):
        assert estimate_cost(5000, "none") == 0.1
        assert estimate_cost(5000, "none", {"deepl": 25.0}) == 0.1

    def test_unknown_provider_uses_default_rate(self):
        assert estimate_cost(1_000_000, "babelfish", {"deepl": 25.0}) == 20.0

    def test_custom_rates(self):
        assert estimate_cost(1_000_000, "google", {"google": 25.0}) == 25.0


class TestSumCosts:
    def test_sum_is_exact(self):
        assert sum_costs([0.1, 0.2]) == 0.3

    def test_empty(self):
        assert sum_costs([]) == 0.0


class TestUsageTracker:
    @pytest.mark.asyncio
    async def test_records_to_sink(self):
        sink = AsyncMock()
        tracker = UsageTracker(sink)
        record = usage_record()

        assert await tracker.track(record) is True
        sink.record.assert_awaited_once_with(record)

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self):
        sink = AsyncMock()
        sink.record.side_effect = RuntimeError("insert failed")
        tracker = UsageTracker(sink)

        assert await tracker.track(usage_record()) is False
        assert tracker.failures == 1

    @pytest.mark.asyncio
    async def test_default_sink_logs(self, caplog):
        tracker = UsageTracker()

        with caplog.at_level("INFO"):
            assert await tracker.track(usage_record(provider="none")) is True

        assert isinstance(tracker.sink, LoggingUsageSink)
        assert "tenant=t1" in caplog.text
        assert "provider=none" in caplog.text
