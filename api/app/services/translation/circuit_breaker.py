"""Per-provider circuit breakers for translation calls.

States:
- CLOSED: Normal operation, calls pass through and outcomes are counted
- OPEN: Failure rate too high, calls are rejected without reaching the provider
- HALF_OPEN: Reset timeout elapsed, a single probe call decides the next state

The breaker opens once the rolling window holds at least ``volume_threshold``
calls and the failure percentage reaches ``error_threshold_percentage``. Calls
exceeding ``timeout`` count as failures.
"""

import asyncio
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple, TypeVar

from app.core.exceptions import CircuitOpenError, TranslationError
from app.metrics.translation_metrics import (
    circuit_breaker_events_total,
    circuit_breaker_state,
)
from app.models.normalize import CircuitBreakerSnapshot, CircuitBreakerStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


@dataclass
class BreakerOptions:
    """Thresholds for one circuit breaker (times in seconds)."""

    timeout: float = 10.0
    error_threshold_percentage: float = 50.0
    reset_timeout: float = 30.0
    volume_threshold: int = 5
    rolling_window: float = 10.0
    rolling_buckets: int = 10
    enabled: bool = True


@dataclass
class _Bucket:
    start: float
    fires: int = 0
    successes: int = 0
    failures: int = 0
    rejects: int = 0
    timeouts: int = 0
    latencies: List[float] = field(default_factory=list)


class CircuitBreaker:
    """Failure-isolation state machine wrapping calls to one provider.

    Attributes:
        name: Provider name this breaker guards
        options: Thresholds and rolling window configuration
    """

    def __init__(
        self,
        name: str,
        options: Optional[BreakerOptions] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Provider name (used in errors, logs and metrics)
            options: Breaker thresholds (defaults when omitted)
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.name = name
        self.options = options or BreakerOptions()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._buckets: Deque[_Bucket] = deque()
        circuit_breaker_state.labels(provider=name).set(0)

    @property
    def enabled(self) -> bool:
        return self.options.enabled

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state_locked()

    # ------------------------------------------------------------------
    # Rolling window
    # ------------------------------------------------------------------

    def _bucket_width(self) -> float:
        return self.options.rolling_window / max(1, self.options.rolling_buckets)

    def _prune_locked(self) -> None:
        horizon = self._clock() - self.options.rolling_window
        while self._buckets and self._buckets[0].start + self._bucket_width() <= horizon:
            self._buckets.popleft()

    def _current_bucket_locked(self) -> _Bucket:
        now = self._clock()
        self._prune_locked()
        if not self._buckets or now >= self._buckets[-1].start + self._bucket_width():
            self._buckets.append(_Bucket(start=now))
        return self._buckets[-1]

    def _window_totals_locked(self) -> _Bucket:
        self._prune_locked()
        totals = _Bucket(start=self._clock())
        for bucket in self._buckets:
            totals.fires += bucket.fires
            totals.successes += bucket.successes
            totals.failures += bucket.failures
            totals.rejects += bucket.rejects
            totals.timeouts += bucket.timeouts
            totals.latencies.extend(bucket.latencies)
        return totals

    # ------------------------------------------------------------------
    # State transitions (all called with the lock held)
    # ------------------------------------------------------------------

    def _set_state_locked(self, state: CircuitState) -> None:
        self._state = state
        circuit_breaker_state.labels(provider=self.name).set(_STATE_GAUGE_VALUES[state])
        circuit_breaker_events_total.labels(provider=self.name, event=state.value).inc()

    def _current_state_locked(self) -> CircuitState:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.options.reset_timeout
        ):
            logger.info(f"Circuit breaker {self.name}: half-open (testing)")
            self._set_state_locked(CircuitState.HALF_OPEN)
            self._probe_in_flight = False
        return self._state

    def _open_locked(self) -> None:
        self._opened_at = self._clock()
        self._probe_in_flight = False
        self._set_state_locked(CircuitState.OPEN)

    def _close_locked(self) -> None:
        self._opened_at = None
        self._probe_in_flight = False
        self._buckets.clear()
        self._set_state_locked(CircuitState.CLOSED)

    def _admit_locked(self) -> Tuple[bool, bool]:
        """Decide whether a call may proceed.

        Returns:
            (allowed, is_probe)
        """
        self._current_bucket_locked().fires += 1
        state = self._current_state_locked()
        if state is CircuitState.CLOSED:
            return True, False
        if state is CircuitState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True, True
        self._current_bucket_locked().rejects += 1
        return False, False

    def _record_success(self, latency: float, is_probe: bool) -> None:
        with self._lock:
            bucket = self._current_bucket_locked()
            bucket.successes += 1
            bucket.latencies.append(latency)
            if is_probe or self._state is CircuitState.HALF_OPEN:
                self._close_locked()
                logger.info(f"Circuit breaker {self.name}: CLOSED (recovered)")
        logger.debug(f"Circuit breaker {self.name}: success ({latency * 1000:.0f}ms)")

    def _record_failure(self, latency: float, is_probe: bool, timed_out: bool) -> None:
        with self._lock:
            bucket = self._current_bucket_locked()
            bucket.failures += 1
            bucket.latencies.append(latency)
            if timed_out:
                bucket.timeouts += 1

            if is_probe or self._state is CircuitState.HALF_OPEN:
                self._open_locked()
                logger.error(f"Circuit breaker {self.name}: OPENED (probe failed)")
                return
            if self._state is not CircuitState.CLOSED:
                return

            totals = self._window_totals_locked()
            calls = totals.successes + totals.failures
            if calls < self.options.volume_threshold:
                return
            error_percentage = totals.failures / calls * 100
            if error_percentage >= self.options.error_threshold_percentage:
                self._open_locked()
                logger.error(
                    f"Circuit breaker {self.name}: OPENED (too many failures, "
                    f"{totals.failures}/{calls} = {error_percentage:.0f}%)"
                )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def call(
        self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Invoke fn through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (fn is not invoked)
            TranslationError: If fn exceeded the call timeout
            Exception: Whatever fn raised, after recording the failure
        """
        if not self.options.enabled:
            return await fn(*args, **kwargs)

        with self._lock:
            allowed, is_probe = self._admit_locked()
        if not allowed:
            circuit_breaker_events_total.labels(provider=self.name, event="reject").inc()
            logger.warning(f"Circuit breaker {self.name}: rejected (circuit open)")
            raise CircuitOpenError(self.name)

        start = self._clock()
        try:
            result = await asyncio.wait_for(fn(*args, **kwargs), timeout=self.options.timeout)
        except asyncio.TimeoutError:
            self._record_failure(self._clock() - start, is_probe, timed_out=True)
            circuit_breaker_events_total.labels(provider=self.name, event="timeout").inc()
            logger.warning(
                f"Circuit breaker {self.name}: timeout after {self.options.timeout}s"
            )
            raise TranslationError(
                f"Translation provider {self.name} timed out after {self.options.timeout}s",
                provider=self.name,
            )
        except asyncio.CancelledError:
            # Cancelled by the caller: release the probe slot, count nothing
            with self._lock:
                if is_probe:
                    self._probe_in_flight = False
            raise
        except Exception:
            self._record_failure(self._clock() - start, is_probe, timed_out=False)
            raise
        self._record_success(self._clock() - start, is_probe)
        return result

    def reset(self) -> None:
        """Force the breaker closed (administrative override)."""
        with self._lock:
            self._close_locked()
        logger.info(f"Circuit breaker {self.name}: manually reset")

    def snapshot(self) -> CircuitBreakerSnapshot:
        with self._lock:
            state = self._current_state_locked()
            totals = self._window_totals_locked()
        latencies = sorted(totals.latencies)
        latency_mean = sum(latencies) / len(latencies) * 1000 if latencies else 0.0
        latency_p99 = None
        if latencies:
            index = max(0, math.ceil(0.99 * len(latencies)) - 1)
            latency_p99 = latencies[index] * 1000
        return CircuitBreakerSnapshot(
            name=self.name,
            state=state.value,
            enabled=self.options.enabled,
            stats=CircuitBreakerStats(
                fires=totals.fires,
                successes=totals.successes,
                failures=totals.failures,
                rejects=totals.rejects,
                timeouts=totals.timeouts,
                latency_mean=latency_mean,
                latency_p99=latency_p99,
            ),
        )


class CircuitBreakerRegistry:
    """Owns one CircuitBreaker per provider name for the process lifetime."""

    def __init__(
        self,
        default_options: Optional[BreakerOptions] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_options = default_options or BreakerOptions()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self, name: str, options: Optional[BreakerOptions] = None
    ) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name, options or self.default_options, clock=self._clock
                )
                self._breakers[name] = breaker
                logger.info(f"Circuit breaker created for {name}: {breaker.options}")
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def names(self) -> List[str]:
        return list(self._breakers)

    def snapshot(self, name: str) -> Optional[CircuitBreakerSnapshot]:
        breaker = self._breakers.get(name)
        return breaker.snapshot() if breaker else None

    def snapshots(self) -> List[CircuitBreakerSnapshot]:
        return [breaker.snapshot() for breaker in list(self._breakers.values())]

    def reset(self, name: str) -> bool:
        """Reset a specific circuit breaker.

        Returns:
            False if no breaker exists for name.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def reset_all(self) -> None:
        for breaker in list(self._breakers.values()):
            breaker.reset()
